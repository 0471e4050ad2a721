# Overview: Vendor purchase orders: create, receive against stock, cancel, listings and stats.

"""
Purchase Order Service

LIFECYCLE: pending -> partial -> received, or pending/partial -> cancelled.

A purchase order is for grams of metal at a rate per gram plus 3% GST,
split CGST/SGST when the vendor is in the business's state and IGST
otherwise. When it names a catalog product, pieces is the number of
finished pieces ordered.

receive_purchase_order, in one transaction:
- adds the received grams (never more than are still outstanding)
- adds received pieces to the product's stock
- adds the value of the received grams to the vendor's payable balance
- queues every changed row in the sync outbox
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import MetalType, Product, PurchaseOrder, Vendor
from ..money import ZERO, q2, q3, to_decimal
from ..pagination import paginate
from ..time_utils import parse_iso_date, utcnow
from . import sync_service
from .branch_service import BranchContext
from .catalog_service import apply_stock_delta
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_PURCHASE_ORDER, next_document_number
from .invoice_service import determine_gst_type

OPEN_STATUSES = ("pending", "partial")


class PurchaseOrderError(Exception):
    """Raised when purchase order operations fail."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PurchaseOrderNotFoundError(PurchaseOrderError):
    pass


def _whole_number(value, field: str) -> int:
    if value in (None, ""):
        return 0
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise PurchaseOrderError(f"{field} must be a whole number >= 0")
    return value


def _locked_order(po_id: int) -> PurchaseOrder:
    po = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=po_id)).first()
    if po is None:
        raise PurchaseOrderNotFoundError("Purchase order not found")
    return po


def create_purchase_order(ctx: BranchContext, data: dict) -> PurchaseOrder:
    if not isinstance(data, dict):
        raise PurchaseOrderError("Invalid purchase order payload")
    quantity = q3(data.get("quantity"))
    rate = q2(data.get("rate_per_gram"))
    if quantity <= 0:
        raise PurchaseOrderError("quantity must be greater than zero")
    if rate <= 0:
        raise PurchaseOrderError("rate_per_gram must be greater than zero")
    pieces = _whole_number(data.get("pieces"), "pieces")
    if pieces and not data.get("product_id"):
        raise PurchaseOrderError("pieces can only be ordered against a product")
    expected = parse_iso_date(data["expected_delivery_date"]) if data.get("expected_delivery_date") else None

    def _op() -> PurchaseOrder:
        vendor = db.session.get(Vendor, data.get("vendor_id")) if data.get("vendor_id") else None
        if vendor is None:
            raise PurchaseOrderNotFoundError("Vendor not found")
        if not vendor.is_active:
            raise PurchaseOrderError("Vendor is inactive")

        metal_type_id = data.get("metal_type_id")
        if metal_type_id and db.session.get(MetalType, metal_type_id) is None:
            raise PurchaseOrderNotFoundError("Metal type not found")
        product_id = data.get("product_id")
        if product_id:
            product = db.session.get(Product, product_id)
            if product is None or not product.is_active:
                raise PurchaseOrderNotFoundError("Product not found")
            metal_type_id = metal_type_id or product.metal_type_id

        po = PurchaseOrder(
            branch_id=ctx.branch_id,
            po_number=next_document_number(
                branch_id=ctx.branch_id, document_type="purchase_order", prefix=PREFIX_PURCHASE_ORDER
            ),
            vendor_id=vendor.id,
            po_date=utcnow(),
            expected_delivery_date=expected,
            metal_type_id=metal_type_id,
            product_id=product_id,
            quantity=quantity,
            received_quantity=ZERO,
            pieces=pieces,
            received_pieces=0,
            rate_per_gram=rate,
            gst_type=determine_gst_type(vendor.state, ctx.business_state),
            status="pending",
            notes=data.get("notes"),
            created_by=ctx.user_id,
        )
        po.calculate_totals()
        db.session.add(po)
        sync_service.queue_record(ctx, po, "insert")
        db.session.commit()
        return po

    return run_with_retry(_op)


def receive_purchase_order(ctx: BranchContext, po_id: int, data: dict) -> PurchaseOrder:
    """Book a delivery against an open purchase order."""
    if not isinstance(data, dict):
        raise PurchaseOrderError("Invalid receipt payload")
    grams = q3(data.get("received_quantity"))
    if grams <= 0:
        raise PurchaseOrderError("received_quantity must be greater than zero")
    pieces = _whole_number(data.get("received_pieces"), "received_pieces")

    def _op() -> PurchaseOrder:
        po = _locked_order(po_id)
        if po.status not in OPEN_STATUSES:
            raise PurchaseOrderError(f"Cannot receive a {po.status} purchase order")

        outstanding = po.pending_quantity
        if grams > outstanding:
            raise PurchaseOrderError(
                "Received quantity exceeds the quantity outstanding",
                details={"outstanding": str(outstanding), "received": str(grams)},
            )
        if pieces and not po.product_id:
            raise PurchaseOrderError("This purchase order is not for catalog pieces")
        if po.received_pieces + pieces > po.pieces:
            raise PurchaseOrderError(
                "Received pieces exceed the pieces ordered",
                details={"ordered": po.pieces, "already_received": po.received_pieces, "received": pieces},
            )

        po.received_quantity = to_decimal(po.received_quantity) + grams
        po.received_pieces += pieces
        po.update_status()
        if po.status == "received":
            po.received_at = utcnow()
        po.updated_by = ctx.user_id
        sync_service.queue_record(ctx, po, "update")

        if pieces:
            product = lock_for_update(db.session.query(Product).filter_by(id=po.product_id)).first()
            if product is None:
                raise PurchaseOrderNotFoundError("Product not found")
            apply_stock_delta(product, pieces)
            sync_service.queue_record(ctx, product, "update")

        vendor = lock_for_update(db.session.query(Vendor).filter_by(id=po.vendor_id)).first()
        vendor.current_balance = q2(to_decimal(vendor.current_balance) + po.value_of(grams))
        sync_service.queue_record(ctx, vendor, "update")

        db.session.commit()
        return po

    return run_with_retry(_op)


def cancel_purchase_order(ctx: BranchContext, po_id: int, reason: str) -> PurchaseOrder:
    """Cancel an open order. Goods already received stay booked."""
    reason = (reason or "").strip()
    if not reason:
        raise PurchaseOrderError("A cancellation reason is required")

    def _op() -> PurchaseOrder:
        po = _locked_order(po_id)
        if po.status not in OPEN_STATUSES:
            raise PurchaseOrderError(f"Cannot cancel a {po.status} purchase order")
        po.status = "cancelled"
        po.cancellation_reason = reason
        po.cancelled_at = utcnow()
        po.updated_by = ctx.user_id
        sync_service.queue_record(ctx, po, "update")
        db.session.commit()
        return po

    return run_with_retry(_op)


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if po is None:
        raise PurchaseOrderNotFoundError("Purchase order not found")
    return po


def list_purchase_orders(filters: dict | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    filters = filters or {}
    query = db.session.query(PurchaseOrder)
    if filters.get("status"):
        query = query.filter(PurchaseOrder.status == filters["status"])
    if filters.get("vendor_id"):
        query = query.filter(PurchaseOrder.vendor_id == int(filters["vendor_id"]))
    if filters.get("from_date"):
        query = query.filter(PurchaseOrder.po_date >= filters["from_date"])
    if filters.get("to_date"):
        query = query.filter(PurchaseOrder.po_date <= filters["to_date"])
    query = query.order_by(PurchaseOrder.po_date.desc(), PurchaseOrder.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda po: po.to_dict())


def get_purchase_order_stats() -> dict:
    """Counts by status; total_value excludes cancelled orders."""
    by_status = dict(
        db.session.query(PurchaseOrder.status, func.count(PurchaseOrder.id)).group_by(PurchaseOrder.status).all()
    )
    total_value = (
        db.session.query(func.coalesce(func.sum(PurchaseOrder.grand_total), 0))
        .filter(PurchaseOrder.status != "cancelled")
        .scalar()
    )
    return {
        "total_pos": sum(by_status.values()),
        "pending_pos": by_status.get("pending", 0),
        "partial_pos": by_status.get("partial", 0),
        "received_pos": by_status.get("received", 0),
        "cancelled_pos": by_status.get("cancelled", 0),
        "total_value": str(q2(total_value)),
    }
