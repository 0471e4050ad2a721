from __future__ import annotations

from ..extensions import db
from jewelerp.money import as_str
from jewelerp.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data.

    outstanding_balance is a running total of unpaid invoice balances and
    disbursed loan principal; it never goes below zero.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("customer_code", name="uq_customers_code"),
        db.Index("ix_customers_mobile", "mobile"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    customer_code = db.Column(db.String(20), nullable=False)

    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)
    mobile = db.Column(db.String(15), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    pincode = db.Column(db.String(6), nullable=True)
    gstin = db.Column(db.String(15), nullable=True)
    pan_number = db.Column(db.String(10), nullable=True)
    aadhar_number = db.Column(db.String(12), nullable=True)

    customer_type = db.Column(db.String(16), nullable=False, default="retail")  # retail, wholesale, vip
    outstanding_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_code": self.customer_code,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "mobile": self.mobile,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "gstin": self.gstin,
            "pan_number": self.pan_number,
            "customer_type": self.customer_type,
            "outstanding_balance": as_str(self.outstanding_balance),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
