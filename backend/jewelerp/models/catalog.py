from __future__ import annotations

from ..extensions import db
from jewelerp.money import as_str, q3, percent_of, to_decimal
from jewelerp.time_utils import to_utc_z, utcnow

MAKING_CHARGE_TYPES = ("per_gram", "percentage", "fixed", "slab")
PRODUCT_STATUSES = ("in_stock", "sold", "reserved", "in_repair", "with_karigar")


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    hsn_code = db.Column(db.String(8), nullable=False, default="71131900")
    tax_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=3)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "hsn_code": self.hsn_code,
            "tax_percentage": as_str(self.tax_percentage),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MetalType(db.Model):
    """Gold 22K, Silver 925, ... with the purity used for fine weight."""
    __tablename__ = "metal_types"
    __table_args__ = (
        db.UniqueConstraint("metal_code", name="uq_metal_types_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    name = db.Column(db.String(50), nullable=False)
    metal_code = db.Column(db.String(20), nullable=False)
    purity_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "metal_code": self.metal_code,
            "purity_percentage": as_str(self.purity_percentage),
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }


class MetalRate(db.Model):
    """Daily per-gram rate. Rows are append-only; the latest rate_date wins."""
    __tablename__ = "metal_rates"
    __table_args__ = (
        db.Index("ix_metal_rates_type_date", "metal_type_id", "rate_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    metal_type_id = db.Column(db.Integer, db.ForeignKey("metal_types.id"), nullable=False, index=True)
    rate_per_gram = db.Column(db.Numeric(10, 2), nullable=False)
    rate_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    source = db.Column(db.String(50), nullable=False, default="manual")
    created_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    metal_type = db.relationship("MetalType", backref=db.backref("rates", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "metal_type_id": self.metal_type_id,
            "metal_type": self.metal_type.name if self.metal_type else None,
            "rate_per_gram": as_str(self.rate_per_gram),
            "rate_date": to_utc_z(self.rate_date),
            "source": self.source,
            "created_by": self.created_by,
        }


class Product(db.Model):
    """
    A stocked piece of jewellery.

    Invoice items copy the weights, purity and charges off the product at sale
    time, so editing a product never changes a historical invoice.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("product_code", name="uq_products_code"),
        db.Index("ix_products_barcode", "barcode"),
        db.Index("ix_products_category_status", "category_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    product_code = db.Column(db.String(50), nullable=False)
    barcode = db.Column(db.String(100), nullable=True, unique=True)
    huid = db.Column(db.String(6), nullable=True)
    product_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    metal_type_id = db.Column(db.Integer, db.ForeignKey("metal_types.id"), nullable=False)

    # Weights in grams
    gross_weight = db.Column(db.Numeric(10, 3), nullable=False)
    stone_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    net_weight = db.Column(db.Numeric(10, 3), nullable=False)
    fine_weight = db.Column(db.Numeric(10, 3), nullable=True)
    purity = db.Column(db.Numeric(5, 2), nullable=True)

    wastage_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    making_charge_type = db.Column(db.String(16), nullable=False, default="per_gram")
    making_charge = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    stone_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=1)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="in_stock", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    metal_type = db.relationship("MetalType", backref=db.backref("products", lazy=True))

    def calculate_weights(self) -> None:
        """net = gross - stone when not given; fine = net x purity / 100."""
        if self.net_weight is None:
            self.net_weight = q3(to_decimal(self.gross_weight) - to_decimal(self.stone_weight))
        if self.purity is not None:
            self.fine_weight = q3(percent_of(self.net_weight, self.purity))

    def is_low_stock(self) -> bool:
        return (self.current_stock or 0) <= (self.min_stock_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_code": self.product_code,
            "barcode": self.barcode,
            "huid": self.huid,
            "product_name": self.product_name,
            "description": self.description,
            "category_id": self.category_id,
            "metal_type_id": self.metal_type_id,
            "gross_weight": as_str(self.gross_weight),
            "stone_weight": as_str(self.stone_weight),
            "net_weight": as_str(self.net_weight),
            "fine_weight": as_str(self.fine_weight),
            "purity": as_str(self.purity),
            "wastage_percentage": as_str(self.wastage_percentage),
            "making_charge_type": self.making_charge_type,
            "making_charge": as_str(self.making_charge),
            "stone_amount": as_str(self.stone_amount),
            "unit_price": as_str(self.unit_price),
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
