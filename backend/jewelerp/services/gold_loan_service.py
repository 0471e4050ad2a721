# Overview: Gold loan lifecycle: origination, approval, disbursement, repayments, foreclosure, default and portfolio views.

"""
Gold Loan Service

State machine:
    sanctioned -> disbursed -> active / partial_repaid -> closed | foreclosed | defaulted

balance_due = total_payable - amount_paid at all times. Principal and
interest count towards amount_paid; penalties are kept in penalty_paid.
"""

from __future__ import annotations

from datetime import date, timedelta

from ..extensions import db
from ..models import Customer, GoldLoan, LoanPayment
from ..models.loans import INTEREST_CALCULATION_TYPES, LOAN_STATUSES, OPEN_LOAN_STATUSES
from ..money import ZERO, q2, to_decimal
from ..pagination import paginate
from ..time_utils import parse_iso_date, utcnow
from . import sync_service
from .branch_service import BranchContext
from .concurrency import lock_for_update, run_with_retry
from .customer_service import adjust_outstanding_balance
from .document_service import PREFIX_LOAN, PREFIX_LOAN_PAYMENT, next_document_number

DEFAULT_LTV_RATIO = 75

# Manual status changes allowed through update_status
MANUAL_TRANSITIONS = {
    "disbursed": ("active",),
    "partial_repaid": ("active",),
}


class GoldLoanError(Exception):
    """Raised when gold loan operations fail."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class GoldLoanNotFoundError(GoldLoanError):
    pass


def _required_decimal(data: dict, field: str, *, allow_zero: bool = False):
    if data.get(field) in (None, ""):
        raise GoldLoanError(f"{field} is required")
    value = to_decimal(data[field])
    if value < 0 or (value == 0 and not allow_zero):
        raise GoldLoanError(f"{field} must be greater than zero")
    return value


def _locked_loan(loan_id: int) -> GoldLoan:
    loan = lock_for_update(db.session.query(GoldLoan).filter_by(id=loan_id)).first()
    if loan is None:
        raise GoldLoanNotFoundError("Loan not found")
    return loan


def _locked_customer(customer_id: int) -> Customer | None:
    return lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()


def create_gold_loan(ctx: BranchContext, data: dict) -> GoldLoan:
    """
    Value the collateral and sanction a loan.

    loan_amount defaults to appraised_value x LTV; an explicit amount may be
    given but never above the appraised value.
    """
    gross = _required_decimal(data, "gross_weight")
    stone = to_decimal(data.get("stone_weight"))
    if stone < 0 or stone >= gross:
        raise GoldLoanError("stone_weight must be less than gross_weight")
    purity = _required_decimal(data, "purity_percentage")
    if purity > 100:
        raise GoldLoanError("purity_percentage must be between 0 and 100")
    gold_rate = _required_decimal(data, "current_gold_rate")
    ltv = to_decimal(data.get("ltv_ratio") if data.get("ltv_ratio") is not None else DEFAULT_LTV_RATIO)
    if ltv <= 0 or ltv > 100:
        raise GoldLoanError("ltv_ratio must be between 0 and 100")
    interest_rate = _required_decimal(data, "interest_rate", allow_zero=True)
    kind = data.get("interest_calculation_type") or "monthly"
    if kind not in INTEREST_CALCULATION_TYPES:
        raise GoldLoanError(f"interest_calculation_type must be one of {', '.join(INTEREST_CALCULATION_TYPES)}")
    try:
        tenure = int(data.get("tenure_months"))
    except (TypeError, ValueError):
        raise GoldLoanError("tenure_months must be a positive integer")
    if tenure < 1:
        raise GoldLoanError("tenure_months must be a positive integer")
    description = (data.get("item_description") or "").strip()
    if not description:
        raise GoldLoanError("item_description is required")
    fee = to_decimal(data.get("processing_fee"))
    if fee < 0:
        raise GoldLoanError("processing_fee cannot be negative")

    if not data.get("customer_id"):
        raise GoldLoanError("customer_id is required")

    def _op() -> GoldLoan:
        customer = db.session.get(Customer, data["customer_id"])
        if customer is None or not customer.is_active:
            raise GoldLoanNotFoundError("Customer not found")

        loan = GoldLoan(
            branch_id=ctx.branch_id,
            loan_date=parse_iso_date(data["loan_date"]) if data.get("loan_date") else utcnow().date(),
            customer_id=customer.id,
            customer_name=customer.full_name,
            customer_mobile=customer.mobile,
            customer_address=customer.address,
            customer_aadhar=customer.aadhar_number,
            customer_pan=customer.pan_number,
            item_description=description,
            gross_weight=gross,
            stone_weight=stone,
            purity_percentage=purity,
            current_gold_rate=gold_rate,
            ltv_ratio=ltv,
            interest_rate=interest_rate,
            interest_calculation_type=kind,
            tenure_months=tenure,
            processing_fee=q2(fee),
            amount_paid=ZERO,
            penalty_paid=ZERO,
            status="sanctioned",
            payment_status="pending",
            requires_approval=bool(data.get("requires_approval", True)),
            special_conditions=data.get("special_conditions"),
            notes=data.get("notes"),
            created_by=ctx.user_id,
        )
        loan.calculate_fine_weight()
        loan.calculate_appraised_value()

        if data.get("loan_amount") not in (None, ""):
            manual = q2(data["loan_amount"])
            if manual <= 0:
                raise GoldLoanError("loan_amount must be greater than zero")
            if manual > loan.appraised_value:
                raise GoldLoanError(
                    "loan_amount cannot exceed the appraised value",
                    details={"appraised_value": str(loan.appraised_value)},
                )
            loan.loan_amount = manual
        else:
            loan.loan_amount = loan.calculate_loan_amount()

        loan.calculate_interest()
        loan.calculate_total_payable()
        loan.update_balance_due()
        loan.calculate_maturity_date()
        loan.loan_number = next_document_number(
            branch_id=ctx.branch_id, document_type="gold_loan", prefix=PREFIX_LOAN, on_date=loan.loan_date
        )

        db.session.add(loan)
        sync_service.queue_record(ctx, loan, "insert")
        db.session.commit()
        return loan

    return run_with_retry(_op)


def approve_loan(ctx: BranchContext, loan_id: int) -> GoldLoan:
    def _op() -> GoldLoan:
        loan = _locked_loan(loan_id)
        if loan.status != "sanctioned":
            raise GoldLoanError("Only sanctioned loans can be approved")
        loan.approved_by = ctx.user_id
        loan.approved_at = utcnow()
        loan.updated_by = ctx.user_id
        sync_service.queue_record(ctx, loan, "update")
        db.session.commit()
        return loan

    return run_with_retry(_op)


def disburse_loan(ctx: BranchContext, loan_id: int) -> GoldLoan:
    """Hand over the money: the loan amount is added to the customer's outstanding balance."""
    def _op() -> GoldLoan:
        loan = _locked_loan(loan_id)
        if not loan.can_be_disbursed():
            raise GoldLoanError("Loan cannot be disbursed. Check approval status.")
        loan.status = "disbursed"
        loan.disbursed_date = utcnow()
        loan.updated_by = ctx.user_id

        customer = _locked_customer(loan.customer_id)
        if customer is not None:
            adjust_outstanding_balance(customer, loan.loan_amount)
            sync_service.queue_record(ctx, customer, "update")

        sync_service.queue_record(ctx, loan, "update")
        db.session.commit()
        return loan

    return run_with_retry(_op)


def update_status(ctx: BranchContext, loan_id: int, status: str) -> GoldLoan:
    if status not in LOAN_STATUSES:
        raise GoldLoanError(f"Unknown loan status '{status}'")

    def _op() -> GoldLoan:
        loan = _locked_loan(loan_id)
        if status not in MANUAL_TRANSITIONS.get(loan.status, ()):
            raise GoldLoanError(f"Cannot move a {loan.status} loan to {status}")
        loan.status = status
        loan.updated_by = ctx.user_id
        sync_service.queue_record(ctx, loan, "update")
        db.session.commit()
        return loan

    return run_with_retry(_op)


def _build_payment(ctx: BranchContext, loan: GoldLoan, data: dict, *, principal, interest, penalty) -> LoanPayment:
    payment = LoanPayment(
        branch_id=ctx.branch_id,
        loan_id=loan.id,
        payment_date=utcnow(),
        payment_type=data.get("payment_type") or "partial",
        payment_mode=data.get("payment_mode") or "cash",
        principal_amount=principal,
        interest_amount=interest,
        penalty_amount=penalty,
        transaction_reference=data.get("transaction_reference"),
        card_last_4_digits=data.get("card_last_4_digits"),
        upi_transaction_id=data.get("upi_transaction_id"),
        bank_name=data.get("bank_name"),
        cheque_number=data.get("cheque_number"),
        cheque_date=parse_iso_date(data["cheque_date"]) if data.get("cheque_date") else None,
        payment_status="verified",
        notes=data.get("notes"),
        created_by=ctx.user_id,
    )
    payment.calculate_total()
    missing = payment.validate_payment_details()
    if missing:
        raise GoldLoanError(
            f"Missing payment details for {payment.payment_mode}: {', '.join(missing)}",
            details={"payment_mode": payment.payment_mode, "missing": missing},
        )
    return payment


def record_payment(ctx: BranchContext, loan_id: int, data: dict) -> LoanPayment:
    """
    Apply a repayment. A payment that clears the balance closes the loan;
    anything less leaves it partial_repaid.
    """
    principal = q2(data.get("principal_amount"))
    interest = q2(data.get("interest_amount"))
    penalty = q2(data.get("penalty_amount"))
    if principal < 0 or interest < 0 or penalty < 0:
        raise GoldLoanError("Payment amounts cannot be negative")
    if principal + interest + penalty <= 0:
        raise GoldLoanError("Payment amount must be greater than zero")

    def _op() -> LoanPayment:
        loan = _locked_loan(loan_id)
        if not loan.can_accept_payment():
            raise GoldLoanError("Loan cannot accept payment. Check loan status.")

        balance_before = to_decimal(loan.balance_due)
        applied = principal + interest
        if applied > balance_before:
            raise GoldLoanError(
                "Payment exceeds the outstanding balance",
                details={"balance_due": str(balance_before), "applied": str(applied)},
            )

        payment = _build_payment(ctx, loan, data, principal=principal, interest=interest, penalty=penalty)
        payment.payment_number = next_document_number(
            branch_id=ctx.branch_id, document_type="loan_payment", prefix=PREFIX_LOAN_PAYMENT
        )

        loan.amount_paid = to_decimal(loan.amount_paid) + applied
        loan.penalty_paid = to_decimal(loan.penalty_paid) + penalty
        loan.update_balance_due()
        loan.last_payment_date = payment.payment_date
        loan.updated_by = ctx.user_id

        payment.loan_balance_before = balance_before
        payment.loan_balance_after = loan.balance_due

        if to_decimal(loan.balance_due) <= 0:
            loan.status = "closed"
            loan.payment_status = "paid"
            loan.closed_date = utcnow()
            payment.payment_type = "full"
        else:
            loan.status = "partial_repaid"
            loan.update_payment_status()

        customer = _locked_customer(loan.customer_id)
        if customer is not None and applied > 0:
            adjust_outstanding_balance(customer, -applied)
            sync_service.queue_record(ctx, customer, "update")

        db.session.add(payment)
        sync_service.queue_record(ctx, payment, "insert")
        sync_service.queue_record(ctx, loan, "update")
        db.session.commit()
        return payment

    return run_with_retry(_op)


def foreclose_loan(ctx: BranchContext, loan_id: int, *, penalty_amount=0, notes: str | None = None) -> LoanPayment:
    """Settle early: one payment of balance_due + penalty, loan becomes foreclosed."""
    penalty = q2(penalty_amount)
    if penalty < 0:
        raise GoldLoanError("penalty_amount cannot be negative")

    def _op() -> LoanPayment:
        loan = _locked_loan(loan_id)
        if not loan.can_accept_payment():
            raise GoldLoanError("Loan cannot be foreclosed")

        balance = to_decimal(loan.balance_due)
        payment = LoanPayment(
            branch_id=ctx.branch_id,
            loan_id=loan.id,
            payment_date=utcnow(),
            payment_type="foreclosure",
            payment_mode="cash",
            principal_amount=balance,
            interest_amount=ZERO,
            penalty_amount=penalty,
            loan_balance_before=balance,
            loan_balance_after=ZERO,
            payment_status="verified",
            notes=notes or "Foreclosure payment",
            created_by=ctx.user_id,
        )
        payment.calculate_total()
        payment.payment_number = next_document_number(
            branch_id=ctx.branch_id, document_type="loan_payment", prefix=PREFIX_LOAN_PAYMENT
        )

        loan.amount_paid = to_decimal(loan.amount_paid) + balance
        loan.penalty_paid = to_decimal(loan.penalty_paid) + penalty
        loan.update_balance_due()
        loan.status = "foreclosed"
        loan.payment_status = "paid"
        loan.closed_date = utcnow()
        loan.last_payment_date = payment.payment_date
        loan.updated_by = ctx.user_id
        if notes:
            entry = f"Foreclosure: {notes}"
            loan.notes = f"{loan.notes}\n\n{entry}" if loan.notes else entry

        customer = _locked_customer(loan.customer_id)
        if customer is not None:
            adjust_outstanding_balance(customer, -balance)
            sync_service.queue_record(ctx, customer, "update")

        db.session.add(payment)
        sync_service.queue_record(ctx, payment, "insert")
        sync_service.queue_record(ctx, loan, "update")
        db.session.commit()
        return payment

    return run_with_retry(_op)


def close_loan(ctx: BranchContext, loan_id: int) -> GoldLoan:
    def _op() -> GoldLoan:
        loan = _locked_loan(loan_id)
        if loan.status in ("closed", "foreclosed"):
            raise GoldLoanError("Loan is already closed")
        try:
            loan.close(ctx.user_id)
        except ValueError as exc:
            raise GoldLoanError(str(exc), details={"balance_due": str(loan.balance_due)})
        sync_service.queue_record(ctx, loan, "update")
        db.session.commit()
        return loan

    return run_with_retry(_op)


def mark_default(ctx: BranchContext, loan_id: int, reason: str | None = None) -> GoldLoan:
    def _op() -> GoldLoan:
        loan = _locked_loan(loan_id)
        loan.mark_as_default(ctx.user_id, reason)
        sync_service.queue_record(ctx, loan, "update")
        db.session.commit()
        return loan

    return run_with_retry(_op)


def get_loan(loan_id: int) -> GoldLoan:
    loan = db.session.get(GoldLoan, loan_id)
    if loan is None:
        raise GoldLoanNotFoundError("Loan not found")
    return loan


def _filtered_query(filters: dict):
    query = db.session.query(GoldLoan)
    if filters.get("customer_id"):
        query = query.filter(GoldLoan.customer_id == int(filters["customer_id"]))
    if filters.get("status"):
        query = query.filter(GoldLoan.status == filters["status"])
    if filters.get("payment_status"):
        query = query.filter(GoldLoan.payment_status == filters["payment_status"])
    if filters.get("risk_level"):
        query = query.filter(GoldLoan.risk_level == filters["risk_level"])
    if filters.get("is_overdue") is not None:
        query = query.filter(GoldLoan.is_overdue.is_(bool(filters["is_overdue"])))
    if filters.get("from_date"):
        query = query.filter(GoldLoan.loan_date >= filters["from_date"])
    if filters.get("to_date"):
        query = query.filter(GoldLoan.loan_date <= filters["to_date"])
    if filters.get("search"):
        like = f"%{filters['search'].strip()}%"
        query = query.filter(db.or_(
            GoldLoan.loan_number.ilike(like),
            GoldLoan.customer_name.ilike(like),
            GoldLoan.customer_mobile.ilike(like),
        ))
    return query


def list_loans(filters: dict | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = _filtered_query(filters or {}).order_by(GoldLoan.loan_date.desc(), GoldLoan.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda row: row.to_dict())


def get_loan_stats(filters: dict | None = None) -> dict:
    loans = _filtered_query(filters or {}).all()
    open_loans = [row for row in loans if row.status in OPEN_LOAN_STATUSES]

    def total(rows, attr):
        return q2(sum((to_decimal(getattr(r, attr)) for r in rows), ZERO))

    average_ltv = q2(total(loans, "ltv_ratio") / len(loans)) if loans else ZERO
    return {
        "total_loans": len(loans),
        "active_loans": len(open_loans),
        "closed_loans": sum(1 for row in loans if row.status in ("closed", "foreclosed")),
        "defaulted_loans": sum(1 for row in loans if row.status == "defaulted"),
        "overdue_loans": sum(1 for row in loans if row.is_overdue),
        "total_disbursed_amount": str(total([row for row in loans if row.disbursed_date], "loan_amount")),
        "total_outstanding_balance": str(total(open_loans, "balance_due")),
        "total_amount_paid": str(total(loans, "amount_paid")),
        "total_penalty_collected": str(total(loans, "penalty_paid")),
        "total_collateral_value": str(total(loans, "appraised_value")),
        "average_ltv": str(average_ltv),
        "high_risk_loans": sum(1 for row in loans if row.risk_level == "high"),
        "medium_risk_loans": sum(1 for row in loans if row.risk_level == "medium"),
        "low_risk_loans": sum(1 for row in loans if row.risk_level == "low"),
    }


def refresh_overdue_status(ctx: BranchContext, today: date | None = None) -> list[GoldLoan]:
    """Recompute overdue/risk flags on every open loan; returns the overdue ones."""
    today = today or utcnow().date()

    def _op() -> list[GoldLoan]:
        loans = lock_for_update(
            db.session.query(GoldLoan).filter(GoldLoan.status.in_(OPEN_LOAN_STATUSES))
        ).all()
        overdue = []
        for loan in loans:
            before = (loan.is_overdue, loan.days_overdue, loan.risk_level, loan.payment_status)
            loan.check_overdue_status(today)
            if (loan.is_overdue, loan.days_overdue, loan.risk_level, loan.payment_status) != before:
                sync_service.queue_record(ctx, loan, "update")
            if loan.is_overdue:
                overdue.append(loan)
        db.session.commit()
        return overdue

    return run_with_retry(_op)


def get_overdue_loans(ctx: BranchContext, today: date | None = None) -> list[GoldLoan]:
    overdue = refresh_overdue_status(ctx, today)
    return sorted(overdue, key=lambda row: row.maturity_date)


def get_maturing_soon(days: int = 30, today: date | None = None) -> list[GoldLoan]:
    today = today or utcnow().date()
    return (
        db.session.query(GoldLoan)
        .filter(
            GoldLoan.status.in_(OPEN_LOAN_STATUSES),
            GoldLoan.maturity_date >= today,
            GoldLoan.maturity_date <= today + timedelta(days=days),
        )
        .order_by(GoldLoan.maturity_date.asc())
        .all()
    )


def calculate_current_interest(loan_id: int, today: date | None = None) -> dict:
    loan = get_loan(loan_id)
    if not loan.disbursed_date:
        raise GoldLoanError("Loan not yet disbursed")
    today = today or utcnow().date()
    accrued = loan.calculate_current_interest(today)
    return {
        "loan_amount": str(loan.loan_amount),
        "interest_rate": str(loan.interest_rate),
        "days_elapsed": max((today - loan.disbursed_date.date()).days, 0),
        "accrued_interest": str(accrued),
        "total_interest_due": str(loan.total_interest),
        "remaining_interest": str(q2(to_decimal(loan.total_interest) - accrued)),
    }

