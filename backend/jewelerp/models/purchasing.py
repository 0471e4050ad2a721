from __future__ import annotations

from ..extensions import db
from jewelerp.money import ZERO, as_str, q2, q3, to_decimal
from jewelerp.time_utils import to_utc_z, utcnow
from .invoices import split_gst

VENDOR_TYPES = ("metal_supplier", "diamond_supplier", "stone_supplier", "other")
PURCHASE_ORDER_STATUSES = ("pending", "partial", "received", "cancelled")
PURCHASE_GST_RATE = 3


class Vendor(db.Model):
    """A supplier of metal, stones or finished pieces."""
    __tablename__ = "vendors"
    __table_args__ = (
        db.UniqueConstraint("vendor_code", name="uq_vendors_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    vendor_code = db.Column(db.String(20), nullable=False)
    vendor_name = db.Column(db.String(200), nullable=False)
    contact_person = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    gstin = db.Column(db.String(15), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    pincode = db.Column(db.String(10), nullable=True)
    vendor_type = db.Column(db.String(32), nullable=False, default="metal_supplier")
    current_balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)  # owed to the vendor
    credit_limit = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    payment_terms = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "vendor_code": self.vendor_code,
            "vendor_name": self.vendor_name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "gstin": self.gstin,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "vendor_type": self.vendor_type,
            "current_balance": as_str(self.current_balance),
            "credit_limit": as_str(self.credit_limit),
            "payment_terms": self.payment_terms,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrder(db.Model):
    """
    Order for metal by weight from a vendor.

    quantity is in grams. When the order is for finished pieces of a
    catalog product, pieces counts them and receipts add to its stock.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("po_number", name="uq_purchase_orders_number"),
        db.Index("ix_purchase_orders_vendor_status", "vendor_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    po_number = db.Column(db.String(50), nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False)
    po_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expected_delivery_date = db.Column(db.Date, nullable=True)

    metal_type_id = db.Column(db.Integer, db.ForeignKey("metal_types.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    quantity = db.Column(db.Numeric(10, 3), nullable=False)
    received_quantity = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    pieces = db.Column(db.Integer, nullable=False, default=0)
    received_pieces = db.Column(db.Integer, nullable=False, default=0)
    rate_per_gram = db.Column(db.Numeric(10, 2), nullable=False)

    gst_type = db.Column(db.String(8), nullable=False, default="intra")
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    cgst_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    sgst_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    igst_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    vendor = db.relationship("Vendor", backref=db.backref("purchase_orders", lazy=True))

    def calculate_totals(self) -> None:
        self.total_amount = q2(to_decimal(self.quantity) * to_decimal(self.rate_per_gram))
        gst = split_gst(self.total_amount, PURCHASE_GST_RATE, self.gst_type)
        self.cgst_amount = gst["cgst"]
        self.sgst_amount = gst["sgst"]
        self.igst_amount = gst["igst"]
        self.grand_total = self.total_amount + gst["total"]

    @property
    def pending_quantity(self):
        return q3(max(to_decimal(self.quantity) - to_decimal(self.received_quantity), ZERO))

    def value_of(self, grams):
        """Share of the grand total owed for grams received."""
        quantity = to_decimal(self.quantity)
        if quantity <= 0:
            return ZERO
        return q2(to_decimal(self.grand_total) * to_decimal(grams) / quantity)

    def update_status(self) -> None:
        received = to_decimal(self.received_quantity)
        if received >= to_decimal(self.quantity):
            self.status = "received"
        elif received > 0:
            self.status = "partial"
        else:
            self.status = "pending"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "po_number": self.po_number,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor.vendor_name if self.vendor else None,
            "po_date": to_utc_z(self.po_date),
            "expected_delivery_date": self.expected_delivery_date.isoformat() if self.expected_delivery_date else None,
            "metal_type_id": self.metal_type_id,
            "product_id": self.product_id,
            "quantity": as_str(self.quantity),
            "received_quantity": as_str(self.received_quantity),
            "pending_quantity": as_str(self.pending_quantity),
            "pieces": self.pieces,
            "received_pieces": self.received_pieces,
            "rate_per_gram": as_str(self.rate_per_gram),
            "gst_type": self.gst_type,
            "total_amount": as_str(self.total_amount),
            "cgst_amount": as_str(self.cgst_amount),
            "sgst_amount": as_str(self.sgst_amount),
            "igst_amount": as_str(self.igst_amount),
            "grand_total": as_str(self.grand_total),
            "status": self.status,
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
