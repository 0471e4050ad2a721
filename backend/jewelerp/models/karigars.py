from __future__ import annotations

from ..extensions import db
from jewelerp.money import ZERO, as_str, percent_of, q2, q3, to_decimal
from jewelerp.time_utils import to_utc_z, utcnow

KARIGAR_PAYMENT_TYPES = ("per_piece", "per_gram", "fixed")
ORDER_STATUSES = ("pending", "in_progress", "completed", "delivered", "cancelled")


class Karigar(db.Model):
    """An artisan who takes job-work on consigned metal."""
    __tablename__ = "karigars"
    __table_args__ = (
        db.UniqueConstraint("karigar_code", name="uq_karigars_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    karigar_code = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    mobile = db.Column(db.String(15), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(100), nullable=True)
    specialization = db.Column(db.String(32), nullable=False, default="general")
    payment_type = db.Column(db.String(16), nullable=False, default="per_gram")
    payment_rate = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    outstanding_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_orders_completed = db.Column(db.Integer, nullable=False, default=0)
    total_orders_pending = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "karigar_code": self.karigar_code,
            "name": self.name,
            "mobile": self.mobile,
            "email": self.email,
            "city": self.city,
            "specialization": self.specialization,
            "payment_type": self.payment_type,
            "payment_rate": as_str(self.payment_rate),
            "outstanding_balance": as_str(self.outstanding_balance),
            "total_orders_completed": self.total_orders_completed,
            "total_orders_pending": self.total_orders_pending,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class KarigarOrder(db.Model):
    """
    Job-work order. Metal is issued to the karigar and received back;
    the fine-weight difference is the wastage.
    """
    __tablename__ = "karigar_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_karigar_orders_number"),
        db.Index("ix_karigar_orders_karigar_status", "karigar_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    order_number = db.Column(db.String(50), nullable=False)
    karigar_id = db.Column(db.Integer, db.ForeignKey("karigars.id"), nullable=False)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expected_delivery_date = db.Column(db.Date, nullable=False)
    actual_delivery_date = db.Column(db.Date, nullable=True)

    order_type = db.Column(db.String(16), nullable=False, default="new_making")  # new_making, repair, stone_setting, polishing
    description = db.Column(db.Text, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    metal_type = db.Column(db.String(50), nullable=False, default="Gold")
    metal_issued_weight = db.Column(db.Numeric(10, 3), nullable=False)
    metal_issued_purity = db.Column(db.Numeric(5, 2), nullable=False)
    metal_issued_fine_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    metal_received_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    metal_received_purity = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    metal_received_fine_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)

    wastage_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    wastage_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    wastage_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_type = db.Column(db.String(16), nullable=False, default="per_gram")
    payment_rate = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_payment = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    remarks = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    karigar = db.relationship("Karigar", backref=db.backref("orders", lazy=True))

    @staticmethod
    def fine_weight_of(weight, purity):
        return q3(percent_of(weight, purity))

    def calculate_wastage(self, metal_rate=None) -> None:
        issued_fine = to_decimal(self.metal_issued_fine_weight)
        self.wastage_weight = q3(issued_fine - to_decimal(self.metal_received_fine_weight))
        if issued_fine > 0:
            self.wastage_percentage = q2(self.wastage_weight / issued_fine * 100)
        else:
            self.wastage_percentage = ZERO
        rate = to_decimal(metal_rate)
        if rate > 0:
            self.wastage_amount = q2(self.wastage_weight * rate)

    def calculate_labour_charges(self):
        rate = to_decimal(self.payment_rate)
        if self.payment_type == "per_piece":
            total = rate * int(self.quantity or 0)
        elif self.payment_type == "per_gram":
            total = rate * to_decimal(self.metal_received_weight)
        elif self.payment_type == "fixed":
            total = rate
        else:
            total = ZERO
        self.total_payment = q2(total)
        return self.total_payment

    def update_payment_status(self) -> None:
        paid = to_decimal(self.amount_paid)
        if paid > 0 and paid >= to_decimal(self.total_payment):
            self.payment_status = "paid"
        elif paid > 0:
            self.payment_status = "partial"
        else:
            self.payment_status = "pending"

    def is_delayed(self, today=None) -> bool:
        if self.status in ("delivered", "cancelled"):
            return False
        return (today or utcnow().date()) > self.expected_delivery_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "order_number": self.order_number,
            "karigar_id": self.karigar_id,
            "order_date": to_utc_z(self.order_date),
            "expected_delivery_date": self.expected_delivery_date.isoformat() if self.expected_delivery_date else None,
            "actual_delivery_date": self.actual_delivery_date.isoformat() if self.actual_delivery_date else None,
            "order_type": self.order_type,
            "description": self.description,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "metal_type": self.metal_type,
            "metal_issued_weight": as_str(self.metal_issued_weight),
            "metal_issued_purity": as_str(self.metal_issued_purity),
            "metal_issued_fine_weight": as_str(self.metal_issued_fine_weight),
            "metal_received_weight": as_str(self.metal_received_weight),
            "metal_received_purity": as_str(self.metal_received_purity),
            "metal_received_fine_weight": as_str(self.metal_received_fine_weight),
            "wastage_weight": as_str(self.wastage_weight),
            "wastage_percentage": as_str(self.wastage_percentage),
            "wastage_amount": as_str(self.wastage_amount),
            "payment_type": self.payment_type,
            "payment_rate": as_str(self.payment_rate),
            "total_payment": as_str(self.total_payment),
            "amount_paid": as_str(self.amount_paid),
            "payment_status": self.payment_status,
            "status": self.status,
            "is_delayed": self.is_delayed() if self.expected_delivery_date else False,
            "remarks": self.remarks,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
