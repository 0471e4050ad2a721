# Overview: Customer master data and the running outstanding balance.

from __future__ import annotations

from ..extensions import db
from ..models import Customer
from ..money import ZERO, q2, to_decimal
from ..pagination import paginate
from ..validation import (
    CUSTOMER_POLICY,
    ConflictError,
    enforce_rules_customer,
    validate_payload,
)
from . import sync_service
from .branch_service import BranchContext
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_CUSTOMER, next_document_number


class CustomerError(Exception):
    """Raised when customer operations fail."""
    pass


class CustomerNotFoundError(CustomerError):
    pass


def create_customer(ctx: BranchContext, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch)
    if db.session.query(Customer).filter_by(mobile=patch["mobile"], is_active=True).first():
        raise ConflictError("A customer with this mobile number already exists")

    def _op() -> Customer:
        customer = Customer(branch_id=ctx.branch_id, created_by=ctx.user_id, **patch)
        customer.customer_code = next_document_number(
            branch_id=ctx.branch_id, document_type="customer", prefix=PREFIX_CUSTOMER
        )
        db.session.add(customer)
        sync_service.queue_record(ctx, customer, "insert")
        db.session.commit()
        return customer

    return run_with_retry(_op)


def update_customer(ctx: BranchContext, customer_id: int, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch)

    def _op() -> Customer:
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if customer is None:
            raise CustomerNotFoundError("Customer not found")
        mobile = patch.get("mobile")
        if mobile and mobile != customer.mobile:
            clash = db.session.query(Customer).filter(
                Customer.mobile == mobile, Customer.id != customer.id, Customer.is_active.is_(True)
            ).first()
            if clash:
                raise ConflictError("A customer with this mobile number already exists")
        for k, v in patch.items():
            setattr(customer, k, v)
        sync_service.queue_record(ctx, customer, "update")
        db.session.commit()
        return customer

    return run_with_retry(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFoundError("Customer not found")
    return customer


def search_customers(term: str | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Customer).filter(Customer.is_active.is_(True))
    if term:
        like = f"%{term.strip()}%"
        query = query.filter(db.or_(
            Customer.first_name.ilike(like),
            Customer.last_name.ilike(like),
            Customer.mobile.ilike(like),
            Customer.customer_code.ilike(like),
            Customer.email.ilike(like),
        ))
    query = query.order_by(Customer.first_name.asc(), Customer.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda c: c.to_dict())


def adjust_outstanding_balance(customer: Customer, delta) -> None:
    """Move the balance inside the caller's transaction; floors at zero."""
    new_balance = q2(to_decimal(customer.outstanding_balance) + to_decimal(delta))
    customer.outstanding_balance = new_balance if new_balance > 0 else ZERO
