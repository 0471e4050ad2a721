from __future__ import annotations

import math
from datetime import date

from ..extensions import db
from jewelerp.money import ZERO, as_str, percent_of, q2, q3, to_decimal
from jewelerp.time_utils import add_months, to_utc_z, utcnow

INTEREST_CALCULATION_TYPES = ("monthly", "quarterly", "maturity")
LOAN_STATUSES = (
    "sanctioned",
    "disbursed",
    "active",
    "partial_repaid",
    "closed",
    "foreclosed",
    "defaulted",
)
OPEN_LOAN_STATUSES = ("disbursed", "active", "partial_repaid")
LOAN_PAYMENT_MODES = ("cash", "card", "upi", "bank_transfer", "cheque")


class GoldLoan(db.Model):
    """
    Loan against pledged gold.

    Lifecycle: sanctioned -> disbursed -> active / partial_repaid ->
    closed | foreclosed | defaulted.

    balance_due is always total_payable - amount_paid. Penalties are tracked
    separately in penalty_paid and never reduce the balance.
    """
    __tablename__ = "gold_loans"
    __table_args__ = (
        db.UniqueConstraint("loan_number", name="uq_gold_loans_number"),
        db.Index("ix_gold_loans_branch_status", "branch_id", "status"),
        db.Index("ix_gold_loans_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    loan_number = db.Column(db.String(50), nullable=False)
    loan_date = db.Column(db.Date, nullable=False, default=lambda: utcnow().date())
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)

    # Customer snapshot
    customer_name = db.Column(db.String(200), nullable=False)
    customer_mobile = db.Column(db.String(15), nullable=False)
    customer_address = db.Column(db.Text, nullable=True)
    customer_aadhar = db.Column(db.String(12), nullable=True)
    customer_pan = db.Column(db.String(10), nullable=True)

    # Collateral
    item_description = db.Column(db.Text, nullable=False)
    gross_weight = db.Column(db.Numeric(10, 3), nullable=False)
    stone_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    net_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    purity_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    fine_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)

    # Valuation
    current_gold_rate = db.Column(db.Numeric(10, 2), nullable=False)
    appraised_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    ltv_ratio = db.Column(db.Numeric(5, 2), nullable=False, default=75)

    # Terms
    loan_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    interest_rate = db.Column(db.Numeric(5, 2), nullable=False)
    interest_calculation_type = db.Column(db.String(16), nullable=False, default="monthly")
    tenure_months = db.Column(db.Integer, nullable=False)
    maturity_date = db.Column(db.Date, nullable=False)

    total_interest = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    processing_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_payable = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    penalty_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance_due = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="sanctioned", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")  # pending, partial, paid, overdue

    requires_approval = db.Column(db.Boolean, nullable=False, default=True)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    disbursed_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_date = db.Column(db.DateTime(timezone=True), nullable=True)
    defaulted_date = db.Column(db.DateTime(timezone=True), nullable=True)

    is_overdue = db.Column(db.Boolean, nullable=False, default=False)
    days_overdue = db.Column(db.Integer, nullable=False, default=0)
    risk_level = db.Column(db.String(8), nullable=False, default="low")  # low, medium, high

    special_conditions = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("gold_loans", lazy=True))
    payments = db.relationship("LoanPayment", backref="loan", lazy=True, order_by="LoanPayment.id")
    __mapper_args__ = {"version_id_col": version_id}

    # Valuation

    def calculate_fine_weight(self):
        self.net_weight = q3(to_decimal(self.gross_weight) - to_decimal(self.stone_weight))
        self.fine_weight = q3(percent_of(self.net_weight, self.purity_percentage))
        return self.fine_weight

    def calculate_appraised_value(self):
        self.appraised_value = q2(to_decimal(self.fine_weight) * to_decimal(self.current_gold_rate))
        return self.appraised_value

    def calculate_loan_amount(self):
        return q2(percent_of(self.appraised_value, self.ltv_ratio))

    def calculate_interest(self):
        """Simple interest over the whole tenure for the selected schedule."""
        principal = to_decimal(self.loan_amount)
        rate = to_decimal(self.interest_rate)
        tenure = int(self.tenure_months or 0)
        kind = self.interest_calculation_type
        if kind == "monthly":
            interest = principal * rate / 12 / 100 * tenure
        elif kind == "quarterly":
            interest = principal * rate / 4 / 100 * math.ceil(tenure / 3)
        elif kind == "maturity":
            interest = principal * rate * tenure / 12 / 100
        else:
            interest = ZERO
        self.total_interest = q2(interest)
        return self.total_interest

    def calculate_total_payable(self):
        self.total_payable = q2(
            to_decimal(self.loan_amount) + to_decimal(self.total_interest) + to_decimal(self.processing_fee)
        )
        return self.total_payable

    def calculate_maturity_date(self) -> date:
        self.maturity_date = add_months(self.loan_date or utcnow().date(), int(self.tenure_months))
        return self.maturity_date

    def update_balance_due(self):
        self.balance_due = q2(to_decimal(self.total_payable) - to_decimal(self.amount_paid))
        return self.balance_due

    def update_payment_status(self) -> None:
        paid = to_decimal(self.amount_paid)
        if paid <= 0:
            self.payment_status = "pending"
        elif paid >= to_decimal(self.total_payable):
            self.payment_status = "paid"
        else:
            self.payment_status = "partial"

    # Guards

    def can_be_disbursed(self) -> bool:
        if self.requires_approval and not self.approved_by:
            return False
        if self.status != "sanctioned":
            return False
        return self.disbursed_date is None

    def can_accept_payment(self) -> bool:
        if self.status in ("closed", "foreclosed"):
            return False
        if self.disbursed_date is None:
            return False
        return to_decimal(self.balance_due) > 0

    def check_overdue_status(self, today: date | None = None) -> None:
        today = today or utcnow().date()
        if self.status in OPEN_LOAN_STATUSES and self.maturity_date and today > self.maturity_date:
            self.is_overdue = True
            self.days_overdue = (today - self.maturity_date).days
            self.risk_level = "medium" if self.days_overdue <= 30 else "high"
            if self.payment_status != "paid":
                self.payment_status = "overdue"
        else:
            self.is_overdue = False
            self.days_overdue = 0
            self.risk_level = "low"

    def calculate_current_interest(self, today: date | None = None):
        """Interest accrued day by day since disbursement."""
        if not self.disbursed_date:
            return ZERO
        today = today or utcnow().date()
        days = max((today - self.disbursed_date.date()).days, 0)
        return q2(to_decimal(self.loan_amount) * to_decimal(self.interest_rate) / 365 / 100 * days)

    # Transitions

    def close(self, user_id: int | None) -> None:
        if to_decimal(self.balance_due) > 0:
            raise ValueError("Loan cannot be closed with outstanding balance")
        self.status = "closed"
        self.payment_status = "paid"
        self.closed_date = utcnow()
        self.updated_by = user_id

    def mark_as_default(self, user_id: int | None, reason: str | None = None) -> None:
        self.status = "defaulted"
        self.defaulted_date = utcnow()
        self.updated_by = user_id
        if reason:
            note = f"Default Reason: {reason}"
            self.notes = f"{self.notes}\n\n{note}" if self.notes else note

    def to_dict(self, include_payments: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "loan_number": self.loan_number,
            "loan_date": self.loan_date.isoformat() if self.loan_date else None,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_mobile": self.customer_mobile,
            "item_description": self.item_description,
            "gross_weight": as_str(self.gross_weight),
            "stone_weight": as_str(self.stone_weight),
            "net_weight": as_str(self.net_weight),
            "purity_percentage": as_str(self.purity_percentage),
            "fine_weight": as_str(self.fine_weight),
            "current_gold_rate": as_str(self.current_gold_rate),
            "appraised_value": as_str(self.appraised_value),
            "ltv_ratio": as_str(self.ltv_ratio),
            "loan_amount": as_str(self.loan_amount),
            "interest_rate": as_str(self.interest_rate),
            "interest_calculation_type": self.interest_calculation_type,
            "tenure_months": self.tenure_months,
            "maturity_date": self.maturity_date.isoformat() if self.maturity_date else None,
            "total_interest": as_str(self.total_interest),
            "processing_fee": as_str(self.processing_fee),
            "total_payable": as_str(self.total_payable),
            "amount_paid": as_str(self.amount_paid),
            "penalty_paid": as_str(self.penalty_paid),
            "balance_due": as_str(self.balance_due),
            "status": self.status,
            "payment_status": self.payment_status,
            "requires_approval": self.requires_approval,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "disbursed_date": to_utc_z(self.disbursed_date) if self.disbursed_date else None,
            "last_payment_date": to_utc_z(self.last_payment_date) if self.last_payment_date else None,
            "closed_date": to_utc_z(self.closed_date) if self.closed_date else None,
            "is_overdue": self.is_overdue,
            "days_overdue": self.days_overdue,
            "risk_level": self.risk_level,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_payments:
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class LoanPayment(db.Model):
    """One repayment event, with the loan balance before and after."""
    __tablename__ = "loan_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    payment_number = db.Column(db.String(50), nullable=False, unique=True)
    loan_id = db.Column(db.Integer, db.ForeignKey("gold_loans.id"), nullable=False, index=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    payment_type = db.Column(db.String(16), nullable=False, default="partial")  # partial, full, interest_only, foreclosure
    payment_mode = db.Column(db.String(16), nullable=False, default="cash")

    principal_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    interest_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    penalty_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    transaction_reference = db.Column(db.String(100), nullable=True)
    card_last_4_digits = db.Column(db.String(4), nullable=True)
    upi_transaction_id = db.Column(db.String(100), nullable=True)
    bank_name = db.Column(db.String(100), nullable=True)
    cheque_number = db.Column(db.String(50), nullable=True)
    cheque_date = db.Column(db.Date, nullable=True)

    payment_status = db.Column(db.String(16), nullable=False, default="verified")
    loan_balance_before = db.Column(db.Numeric(12, 2), nullable=False)
    loan_balance_after = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def calculate_total(self):
        self.total_amount = q2(
            to_decimal(self.principal_amount) + to_decimal(self.interest_amount) + to_decimal(self.penalty_amount)
        )
        return self.total_amount

    def validate_payment_details(self) -> list[str]:
        mode = self.payment_mode
        if mode not in LOAN_PAYMENT_MODES:
            return [f"unsupported payment_mode '{mode}'"]
        missing: list[str] = []
        if mode == "card":
            if not self.card_last_4_digits or len(self.card_last_4_digits) != 4:
                missing.append("card_last_4_digits")
            if not self.transaction_reference:
                missing.append("transaction_reference")
        elif mode == "upi":
            if not self.upi_transaction_id:
                missing.append("upi_transaction_id")
        elif mode == "bank_transfer":
            for field in ("transaction_reference", "bank_name"):
                if not getattr(self, field):
                    missing.append(field)
        elif mode == "cheque":
            for field in ("cheque_number", "cheque_date", "bank_name"):
                if not getattr(self, field):
                    missing.append(field)
        return missing

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_number": self.payment_number,
            "loan_id": self.loan_id,
            "payment_date": to_utc_z(self.payment_date),
            "payment_type": self.payment_type,
            "payment_mode": self.payment_mode,
            "principal_amount": as_str(self.principal_amount),
            "interest_amount": as_str(self.interest_amount),
            "penalty_amount": as_str(self.penalty_amount),
            "total_amount": as_str(self.total_amount),
            "transaction_reference": self.transaction_reference,
            "payment_status": self.payment_status,
            "loan_balance_before": as_str(self.loan_balance_before),
            "loan_balance_after": as_str(self.loan_balance_after),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
