# Overview: Vendor master data: create, update, lookup and payable balance.

"""
Vendor Service

Vendors supply the metal and pieces bought through purchase orders.
current_balance is what the shop owes the vendor; it grows as purchase
orders are received. Vendor codes run on one per-branch sequence
(VEN0100001) and never reset.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Vendor
from ..money import to_decimal
from ..pagination import paginate
from ..validation import ConflictError, VENDOR_POLICY, enforce_rules_vendor, validate_payload
from . import sync_service
from .branch_service import BranchContext
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_VENDOR, next_document_number


class VendorError(Exception):
    """Raised when vendor operations fail."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class VendorNotFoundError(VendorError):
    pass


def _phone_taken(phone: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Vendor).filter(Vendor.phone == phone, Vendor.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Vendor.id != exclude_id)
    return query.first() is not None


def create_vendor(ctx: BranchContext, payload: dict) -> Vendor:
    patch = validate_payload(model=Vendor, payload=payload, policy=VENDOR_POLICY, partial=False)
    enforce_rules_vendor(patch)
    if _phone_taken(patch["phone"]):
        raise ConflictError("Vendor with this phone number already exists")

    def _op() -> Vendor:
        vendor = Vendor(branch_id=ctx.branch_id, created_by=ctx.user_id, **patch)
        vendor.vendor_code = next_document_number(
            branch_id=ctx.branch_id, document_type="vendor", prefix=PREFIX_VENDOR
        )
        db.session.add(vendor)
        sync_service.queue_record(ctx, vendor, "insert")
        db.session.commit()
        return vendor

    return run_with_retry(_op)


def update_vendor(ctx: BranchContext, vendor_id: int, payload: dict) -> Vendor:
    patch = validate_payload(model=Vendor, payload=payload, policy=VENDOR_POLICY, partial=True)
    enforce_rules_vendor(patch)

    def _op() -> Vendor:
        vendor = lock_for_update(db.session.query(Vendor).filter_by(id=vendor_id)).first()
        if vendor is None:
            raise VendorNotFoundError("Vendor not found")
        phone = patch.get("phone")
        if phone and phone != vendor.phone and _phone_taken(phone, exclude_id=vendor.id):
            raise ConflictError("Vendor with this phone number already exists")
        for k, v in patch.items():
            setattr(vendor, k, v)
        vendor.updated_by = ctx.user_id
        sync_service.queue_record(ctx, vendor, "update")
        db.session.commit()
        return vendor

    return run_with_retry(_op)


def get_vendor(vendor_id: int) -> Vendor:
    vendor = db.session.get(Vendor, vendor_id)
    if vendor is None:
        raise VendorNotFoundError("Vendor not found")
    return vendor


def list_vendors(*, search: str | None = None, vendor_type: str | None = None,
                 include_inactive: bool = False, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Vendor)
    if not include_inactive:
        query = query.filter(Vendor.is_active.is_(True))
    if vendor_type:
        query = query.filter(Vendor.vendor_type == vendor_type)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Vendor.vendor_name.ilike(like),
            Vendor.vendor_code.ilike(like),
            Vendor.phone.ilike(like),
        ))
    query = query.order_by(Vendor.vendor_name.asc(), Vendor.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda v: v.to_dict())


def get_vendor_balance(vendor_id: int) -> dict:
    vendor = get_vendor(vendor_id)
    balance = to_decimal(vendor.current_balance)
    limit = to_decimal(vendor.credit_limit)
    return {
        "vendor_id": vendor.id,
        "vendor_name": vendor.vendor_name,
        "current_balance": str(balance),
        "credit_limit": str(limit),
        "over_limit": limit > 0 and balance > limit,
    }
