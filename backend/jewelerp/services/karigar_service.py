# Overview: Karigar (artisan) master data and job-work orders: metal issue/receipt, wastage, labour and payments.

from __future__ import annotations

from ..extensions import db
from ..models import Karigar, KarigarOrder, Product
from ..models.karigars import KARIGAR_PAYMENT_TYPES
from ..money import ZERO, q2, q3, to_decimal
from ..pagination import paginate
from ..time_utils import parse_iso_date, utcnow
from ..validation import ConflictError, KARIGAR_POLICY, validate_payload
from . import sync_service
from .branch_service import BranchContext
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_KARIGAR, PREFIX_KARIGAR_ORDER, next_document_number

ORDER_TYPES = ("new_making", "repair", "stone_setting", "polishing")
OPEN_ORDER_STATUSES = ("pending", "in_progress")


class KarigarError(Exception):
    """Raised when karigar operations fail."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class KarigarNotFoundError(KarigarError):
    pass


def _check_payment_terms(payment_type, payment_rate) -> None:
    if payment_type is not None and payment_type not in KARIGAR_PAYMENT_TYPES:
        raise KarigarError(f"payment_type must be one of {', '.join(KARIGAR_PAYMENT_TYPES)}")
    if payment_rate is not None and to_decimal(payment_rate) < 0:
        raise KarigarError("payment_rate cannot be negative")


def _locked_order(order_id: int) -> KarigarOrder:
    order = lock_for_update(db.session.query(KarigarOrder).filter_by(id=order_id)).first()
    if order is None:
        raise KarigarNotFoundError("Order not found")
    return order


def _locked_karigar(karigar_id: int) -> Karigar:
    karigar = lock_for_update(db.session.query(Karigar).filter_by(id=karigar_id)).first()
    if karigar is None:
        raise KarigarNotFoundError("Karigar not found")
    return karigar


# =============================================================================
# Karigars
# =============================================================================

def create_karigar(ctx: BranchContext, payload: dict) -> Karigar:
    patch = validate_payload(model=Karigar, payload=payload, policy=KARIGAR_POLICY, partial=False)
    _check_payment_terms(patch.get("payment_type"), patch.get("payment_rate"))
    if db.session.query(Karigar).filter_by(mobile=patch["mobile"]).first():
        raise ConflictError("Karigar with this mobile number already exists")

    def _op() -> Karigar:
        karigar = Karigar(branch_id=ctx.branch_id, created_by=ctx.user_id, **patch)
        karigar.karigar_code = next_document_number(
            branch_id=ctx.branch_id, document_type="karigar", prefix=PREFIX_KARIGAR
        )
        db.session.add(karigar)
        sync_service.queue_record(ctx, karigar, "insert")
        db.session.commit()
        return karigar

    return run_with_retry(_op)


def update_karigar(ctx: BranchContext, karigar_id: int, payload: dict) -> Karigar:
    patch = validate_payload(model=Karigar, payload=payload, policy=KARIGAR_POLICY, partial=True)
    _check_payment_terms(patch.get("payment_type"), patch.get("payment_rate"))

    def _op() -> Karigar:
        karigar = _locked_karigar(karigar_id)
        mobile = patch.get("mobile")
        if mobile and mobile != karigar.mobile:
            if db.session.query(Karigar).filter(Karigar.mobile == mobile, Karigar.id != karigar.id).first():
                raise ConflictError("Karigar with this mobile number already exists")
        if patch.get("is_active") is False and karigar.total_orders_pending:
            raise KarigarError(f"Cannot deactivate karigar with {karigar.total_orders_pending} pending order(s)")
        for k, v in patch.items():
            setattr(karigar, k, v)
        sync_service.queue_record(ctx, karigar, "update")
        db.session.commit()
        return karigar

    return run_with_retry(_op)


def get_karigar(karigar_id: int) -> Karigar:
    karigar = db.session.get(Karigar, karigar_id)
    if karigar is None:
        raise KarigarNotFoundError("Karigar not found")
    return karigar


def list_karigars(*, search: str | None = None, specialization: str | None = None,
                  include_inactive: bool = False, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Karigar)
    if not include_inactive:
        query = query.filter(Karigar.is_active.is_(True))
    if specialization:
        query = query.filter(Karigar.specialization == specialization)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Karigar.name.ilike(like),
            Karigar.mobile.ilike(like),
            Karigar.karigar_code.ilike(like),
        ))
    query = query.order_by(Karigar.name.asc(), Karigar.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda k: k.to_dict())


# =============================================================================
# Orders
# =============================================================================

def create_order(ctx: BranchContext, data: dict) -> KarigarOrder:
    """Issue metal to a karigar against a new job-work order."""
    weight = to_decimal(data.get("metal_issued_weight"))
    purity = to_decimal(data.get("metal_issued_purity"))
    if weight <= 0:
        raise KarigarError("metal_issued_weight must be greater than zero")
    if purity <= 0 or purity > 100:
        raise KarigarError("metal_issued_purity must be between 0 and 100")
    description = (data.get("description") or "").strip()
    if not description:
        raise KarigarError("description is required")
    expected = parse_iso_date(data.get("expected_delivery_date"))
    if expected is None:
        raise KarigarError("expected_delivery_date is required")
    order_type = data.get("order_type") or "new_making"
    if order_type not in ORDER_TYPES:
        raise KarigarError(f"order_type must be one of {', '.join(ORDER_TYPES)}")
    try:
        quantity = int(data.get("quantity") or 1)
    except (TypeError, ValueError):
        raise KarigarError("quantity must be a positive integer")
    if quantity < 1:
        raise KarigarError("quantity must be a positive integer")
    _check_payment_terms(data.get("payment_type"), data.get("payment_rate"))

    def _op() -> KarigarOrder:
        karigar = _locked_karigar(data.get("karigar_id"))
        if not karigar.is_active:
            raise KarigarError("Karigar is inactive")
        if data.get("product_id") and db.session.get(Product, data["product_id"]) is None:
            raise KarigarNotFoundError("Product not found")

        order = KarigarOrder(
            branch_id=ctx.branch_id,
            karigar_id=karigar.id,
            order_date=utcnow(),
            expected_delivery_date=expected,
            order_type=order_type,
            description=description,
            product_id=data.get("product_id"),
            quantity=quantity,
            metal_type=data.get("metal_type") or "Gold",
            metal_issued_weight=q3(weight),
            metal_issued_purity=purity,
            metal_issued_fine_weight=KarigarOrder.fine_weight_of(weight, purity),
            payment_type=data.get("payment_type") or karigar.payment_type,
            payment_rate=to_decimal(
                data["payment_rate"] if data.get("payment_rate") is not None else karigar.payment_rate
            ),
            remarks=data.get("remarks"),
            status="pending",
            payment_status="pending",
            created_by=ctx.user_id,
        )
        order.order_number = next_document_number(
            branch_id=ctx.branch_id, document_type="karigar_order", prefix=PREFIX_KARIGAR_ORDER
        )
        karigar.total_orders_pending = (karigar.total_orders_pending or 0) + 1

        db.session.add(order)
        sync_service.queue_record(ctx, order, "insert")
        sync_service.queue_record(ctx, karigar, "update")
        db.session.commit()
        return order

    return run_with_retry(_op)


def start_order(ctx: BranchContext, order_id: int) -> KarigarOrder:
    def _op() -> KarigarOrder:
        order = _locked_order(order_id)
        if order.status != "pending":
            raise KarigarError(f"Cannot start a {order.status} order")
        order.status = "in_progress"
        order.started_at = utcnow()
        sync_service.queue_record(ctx, order, "update")
        db.session.commit()
        return order

    return run_with_retry(_op)


def receive_order(ctx: BranchContext, order_id: int, data: dict) -> KarigarOrder:
    """
    Take the finished work back. Wastage is the fine weight that did not
    come back; labour is charged on the agreed terms and added to what
    the shop owes the karigar.
    """
    weight = to_decimal(data.get("metal_received_weight"))
    purity = to_decimal(data.get("metal_received_purity"))
    if weight <= 0:
        raise KarigarError("metal_received_weight must be greater than zero")
    if purity <= 0 or purity > 100:
        raise KarigarError("metal_received_purity must be between 0 and 100")
    metal_rate = data.get("metal_rate")
    if metal_rate is not None and to_decimal(metal_rate) < 0:
        raise KarigarError("metal_rate cannot be negative")

    def _op() -> KarigarOrder:
        order = _locked_order(order_id)
        if order.status not in OPEN_ORDER_STATUSES:
            raise KarigarError(f"Cannot receive a {order.status} order")

        received_fine = KarigarOrder.fine_weight_of(weight, purity)
        if received_fine > to_decimal(order.metal_issued_fine_weight):
            raise KarigarError(
                "Received fine weight exceeds the metal issued",
                details={"issued": str(order.metal_issued_fine_weight), "received": str(received_fine)},
            )

        order.metal_received_weight = q3(weight)
        order.metal_received_purity = purity
        order.metal_received_fine_weight = received_fine
        order.calculate_wastage(metal_rate)
        order.calculate_labour_charges()
        order.update_payment_status()
        order.status = "completed"
        order.completed_at = utcnow()
        if data.get("remarks"):
            order.remarks = data["remarks"]

        karigar = _locked_karigar(order.karigar_id)
        karigar.total_orders_pending = max((karigar.total_orders_pending or 0) - 1, 0)
        karigar.total_orders_completed = (karigar.total_orders_completed or 0) + 1
        karigar.outstanding_balance = q2(
            to_decimal(karigar.outstanding_balance) + to_decimal(order.total_payment) - to_decimal(order.amount_paid)
        )

        sync_service.queue_record(ctx, order, "update")
        sync_service.queue_record(ctx, karigar, "update")
        db.session.commit()
        return order

    return run_with_retry(_op)


def deliver_order(ctx: BranchContext, order_id: int) -> KarigarOrder:
    def _op() -> KarigarOrder:
        order = _locked_order(order_id)
        if order.status != "completed":
            raise KarigarError("Only completed orders can be delivered")
        order.status = "delivered"
        order.delivered_at = utcnow()
        order.actual_delivery_date = utcnow().date()
        sync_service.queue_record(ctx, order, "update")
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(ctx: BranchContext, order_id: int, reason: str | None = None) -> KarigarOrder:
    def _op() -> KarigarOrder:
        order = _locked_order(order_id)
        if order.status == "delivered":
            raise KarigarError("Delivered orders cannot be cancelled")
        if order.status == "cancelled":
            raise KarigarError("Order is already cancelled")

        karigar = _locked_karigar(order.karigar_id)
        if order.status in OPEN_ORDER_STATUSES:
            karigar.total_orders_pending = max((karigar.total_orders_pending or 0) - 1, 0)
        else:
            # completed: labour already booked against the karigar
            karigar.total_orders_completed = max((karigar.total_orders_completed or 0) - 1, 0)
            unpaid = to_decimal(order.total_payment) - to_decimal(order.amount_paid)
            if unpaid > 0:
                karigar.outstanding_balance = q2(max(to_decimal(karigar.outstanding_balance) - unpaid, ZERO))

        order.status = "cancelled"
        order.cancelled_at = utcnow()
        order.cancellation_reason = reason

        sync_service.queue_record(ctx, order, "update")
        sync_service.queue_record(ctx, karigar, "update")
        db.session.commit()
        return order

    return run_with_retry(_op)


def record_karigar_payment(ctx: BranchContext, order_id: int, amount) -> KarigarOrder:
    amount = q2(amount)
    if amount <= 0:
        raise KarigarError("Payment amount must be greater than zero")

    def _op() -> KarigarOrder:
        order = _locked_order(order_id)
        if order.status not in ("completed", "delivered"):
            raise KarigarError("Labour can only be paid once the work is received")
        due = to_decimal(order.total_payment) - to_decimal(order.amount_paid)
        if amount > due:
            raise KarigarError("Payment exceeds the labour due", details={"due": str(q2(due))})

        order.amount_paid = to_decimal(order.amount_paid) + amount
        order.update_payment_status()

        karigar = _locked_karigar(order.karigar_id)
        karigar.outstanding_balance = q2(max(to_decimal(karigar.outstanding_balance) - amount, ZERO))

        sync_service.queue_record(ctx, order, "update")
        sync_service.queue_record(ctx, karigar, "update")
        db.session.commit()
        return order

    return run_with_retry(_op)


def get_order(order_id: int) -> KarigarOrder:
    order = db.session.get(KarigarOrder, order_id)
    if order is None:
        raise KarigarNotFoundError("Order not found")
    return order


def list_orders(filters: dict | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    filters = filters or {}
    query = db.session.query(KarigarOrder)
    if filters.get("karigar_id"):
        query = query.filter(KarigarOrder.karigar_id == int(filters["karigar_id"]))
    if filters.get("status"):
        query = query.filter(KarigarOrder.status == filters["status"])
    if filters.get("order_type"):
        query = query.filter(KarigarOrder.order_type == filters["order_type"])
    query = query.order_by(KarigarOrder.order_date.desc(), KarigarOrder.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda o: o.to_dict())


def get_karigar_stats(karigar_id: int | None = None) -> dict:
    query = db.session.query(KarigarOrder)
    if karigar_id:
        query = query.filter(KarigarOrder.karigar_id == karigar_id)
    orders = query.all()
    received = [o for o in orders if o.status in ("completed", "delivered")]
    return {
        "total_orders": len(orders),
        "pending_orders": sum(1 for o in orders if o.status in OPEN_ORDER_STATUSES),
        "completed_orders": len(received),
        "cancelled_orders": sum(1 for o in orders if o.status == "cancelled"),
        "delayed_orders": sum(1 for o in orders if o.is_delayed()),
        "total_metal_issued": str(q3(sum((to_decimal(o.metal_issued_fine_weight) for o in orders), ZERO))),
        "total_wastage": str(q3(sum((to_decimal(o.wastage_weight) for o in received), ZERO))),
        "total_labour": str(q2(sum((to_decimal(o.total_payment) for o in received), ZERO))),
        "total_paid": str(q2(sum((to_decimal(o.amount_paid) for o in received), ZERO))),
    }
