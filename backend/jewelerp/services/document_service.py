# Overview: Human-readable document numbers (INV-20250124-001) from per-branch daily sequences.

from __future__ import annotations

from datetime import date

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import date_stamp

PREFIX_INVOICE = "INV"
PREFIX_RECEIPT = "RCP"
PREFIX_OLD_GOLD = "OG"
PREFIX_LOAN = "LN"
PREFIX_LOAN_PAYMENT = "LP"
PREFIX_KARIGAR_ORDER = "KOR"
PREFIX_CUSTOMER = "CUST"
PREFIX_KARIGAR = "KAR"
PREFIX_PRODUCT = "PRD"
PREFIX_VENDOR = "VEN"
PREFIX_PURCHASE_ORDER = "PO"

# Master-data codes run on one sequence forever instead of resetting daily
UNDATED_PREFIXES = {PREFIX_CUSTOMER, PREFIX_KARIGAR, PREFIX_PRODUCT, PREFIX_VENDOR}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(branch_id: int, document_type: str, period: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(branch_id=branch_id, document_type=document_type, period=period)
            .scalar()
        )
        return current - 1

    db.session.add(DocumentSequence(
        branch_id=branch_id,
        document_type=document_type,
        period=period,
        next_number=2,
    ))
    db.session.flush()
    return 1


def next_document_number(
    *,
    branch_id: int,
    document_type: str,
    prefix: str,
    on_date: date | None = None,
    pad: int = 3,
) -> str:
    """
    Allocate the next number for a branch/type inside the caller's transaction.

    The increment is a single UPDATE, so two writers never read the same
    value; the number is only consumed if the surrounding transaction commits.
    """
    if not branch_id:
        raise DocumentSequenceError("branch_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    if prefix in UNDATED_PREFIXES:
        seq = _allocate(branch_id, document_type, "")
        return f"{prefix}{branch_id:02d}{seq:05d}"

    stamp = date_stamp(on_date)
    seq = _allocate(branch_id, document_type, stamp)
    return f"{prefix}-{stamp}-{seq:0{pad}d}"
