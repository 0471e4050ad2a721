# Overview: Invoice creation with GST, old-gold exchange and payments; payment receipts, cancellation, listings.

"""
Invoice Service

create_invoice prices every line, applies the invoice discount and the old
gold credit, rounds to whole rupees and then, in one transaction:
- writes the invoice, its items, the old gold row and the payments
- takes the sold quantity out of stock
- adds any unpaid balance to the customer's outstanding balance
- queues every changed row in the sync outbox

Any failure rolls back all of it.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, OldGoldTransaction, Payment, Product
from ..money import ZERO, q2, to_decimal
from ..pagination import paginate
from ..time_utils import parse_iso_date, utcnow
from . import sync_service
from .branch_service import BranchContext
from .catalog_service import CatalogError, apply_stock_delta
from .concurrency import lock_for_update, run_with_retry
from .customer_service import adjust_outstanding_balance
from .document_service import (
    PREFIX_INVOICE,
    PREFIX_OLD_GOLD,
    PREFIX_RECEIPT,
    next_document_number,
)
from .metal_rate_service import get_latest_rate

INVOICE_TYPES = ("sale", "estimate", "proforma")

PAYMENT_FIELDS = (
    "transaction_ref", "card_type", "card_last4", "upi_id", "cheque_number",
    "bank_name", "bank_account", "metal_type", "notes",
)


class InvoiceError(Exception):
    """Raised when invoice operations fail."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvoiceNotFoundError(InvoiceError):
    pass


def determine_gst_type(customer_state: str | None, business_state: str | None) -> str:
    """
    intra when the customer is in the business's state, inter otherwise.
    A customer with no state on file is billed intra-state.
    """
    if not customer_state or not customer_state.strip() or not business_state:
        return "intra"
    return "intra" if customer_state.strip().lower() == business_state.strip().lower() else "inter"


def _positive_int(value, field: str) -> int:
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvoiceError(f"{field} must be a positive integer")
    return value


def _percentage(value, field: str):
    pct = to_decimal(value)
    if pct < 0 or pct > 100:
        raise InvoiceError(f"{field} must be between 0 and 100")
    return pct


def build_payment(ctx: BranchContext, data: dict) -> Payment:
    """Validate a payment request and return an unsaved Payment."""
    if not isinstance(data, dict):
        raise InvoiceError("Invalid payment payload")
    amount = q2(data.get("amount"))
    if amount <= 0:
        raise InvoiceError("Payment amount must be greater than zero")

    payment = Payment(
        branch_id=ctx.branch_id,
        payment_mode=data.get("payment_mode") or "cash",
        amount=amount,
        cheque_date=parse_iso_date(data["cheque_date"]) if data.get("cheque_date") else None,
        metal_weight=to_decimal(data["metal_weight"]) if data.get("metal_weight") else None,
        metal_rate=to_decimal(data["metal_rate"]) if data.get("metal_rate") else None,
        payment_status="completed",
        created_by=ctx.user_id,
    )
    for field in PAYMENT_FIELDS:
        if data.get(field):
            setattr(payment, field, str(data[field]).strip())

    missing = payment.validate_payment_details()
    if missing:
        raise InvoiceError(
            f"Missing payment details for {payment.payment_mode}: {', '.join(missing)}",
            details={"payment_mode": payment.payment_mode, "missing": missing},
        )
    return payment


def build_old_gold(ctx: BranchContext, customer_id: int, data: dict) -> OldGoldTransaction:
    if not isinstance(data, dict):
        raise InvoiceError("Invalid old gold payload")
    gross = to_decimal(data.get("gross_weight"))
    stone = to_decimal(data.get("stone_weight"))
    rate = to_decimal(data.get("current_rate"))
    purity = data.get("purity")
    tested = data.get("tested_purity") if data.get("tested_purity") is not None else purity

    if gross <= 0:
        raise InvoiceError("Old gold gross_weight must be greater than zero")
    if stone < 0 or stone >= gross:
        raise InvoiceError("Old gold stone_weight must be less than gross_weight")
    if rate <= 0:
        raise InvoiceError("Old gold current_rate must be greater than zero")
    if tested is None:
        raise InvoiceError("Old gold tested_purity is required")
    tested = _percentage(tested, "tested_purity")
    loss = data.get("melting_loss_percentage")

    old_gold = OldGoldTransaction(
        branch_id=ctx.branch_id,
        customer_id=customer_id,
        metal_type=data.get("metal_type") or "Gold",
        gross_weight=gross,
        stone_weight=stone,
        purity=_percentage(purity if purity is not None else tested, "purity"),
        test_method=data.get("test_method") or "touchstone",
        tested_purity=tested,
        tested_by=data.get("tested_by"),
        current_rate=rate,
        melting_loss_percentage=_percentage(loss, "melting_loss_percentage") if loss is not None else None,
        item_description=data.get("item_description"),
        status="settled",
        created_by=ctx.user_id,
    )
    old_gold.calculate_values()
    return old_gold


def _build_item(ctx: BranchContext, product: Product, data: dict, gst_type: str) -> InvoiceItem:
    rate = data.get("metal_rate")
    if rate is None:
        latest = get_latest_rate(product.metal_type_id)
        if latest is None:
            raise InvoiceError(f"No metal rate given or on file for product {product.product_code}")
        rate = latest.rate_per_gram
    rate = to_decimal(rate)
    if rate <= 0:
        raise InvoiceError("metal_rate must be greater than zero")

    category = product.category
    item = InvoiceItem(
        branch_id=ctx.branch_id,
        product_id=product.id,
        product_code=product.product_code,
        product_name=product.product_name,
        barcode=product.barcode,
        huid=product.huid,
        category_name=category.name if category else None,
        metal_type_name=product.metal_type.name if product.metal_type else None,
        gross_weight=product.gross_weight,
        net_weight=product.net_weight,
        stone_weight=product.stone_weight,
        fine_weight=product.fine_weight,
        purity=product.purity,
        metal_rate=rate,
        quantity=_positive_int(data.get("quantity", 1), "quantity"),
        wastage_percentage=to_decimal(product.wastage_percentage),
        making_charge_type=product.making_charge_type,
        making_charge_rate=to_decimal(product.making_charge),
        stone_amount=to_decimal(product.stone_amount),
        hsn_code=category.hsn_code if category else "71131900",
        tax_rate=category.tax_percentage if category else 3,
        discount_percentage=_percentage(data.get("discount_percentage") or 0, "discount_percentage"),
        notes=data.get("notes"),
    )
    item.calculate_line_total(gst_type)
    return item


def create_invoice(
    ctx: BranchContext,
    *,
    customer_id: int,
    items: list[dict],
    old_gold: dict | None = None,
    payments: list[dict] | None = None,
    discount_percentage=0,
    invoice_type: str = "sale",
    notes: str | None = None,
) -> Invoice:
    if not items:
        raise InvoiceError("At least one item is required")
    if invoice_type not in INVOICE_TYPES:
        raise InvoiceError(f"invoice_type must be one of {', '.join(INVOICE_TYPES)}")
    invoice_discount = _percentage(discount_percentage or 0, "discount_percentage")
    payments = payments or []

    def _op() -> Invoice:
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if customer is None or not customer.is_active:
            raise InvoiceNotFoundError("Customer not found")

        gst_type = determine_gst_type(customer.state, ctx.business_state)

        priced: list[tuple[Product, InvoiceItem]] = []
        for line in items:
            if not isinstance(line, dict) or not line.get("product_id"):
                raise InvoiceError("Each item needs a product_id")
            product = lock_for_update(db.session.query(Product).filter_by(id=line["product_id"])).first()
            if product is None or not product.is_active:
                raise InvoiceError(f"Product {line['product_id']} not found", details={"product_id": line["product_id"]})
            item = _build_item(ctx, product, line, gst_type)
            try:
                apply_stock_delta(product, -item.quantity)
            except CatalogError as exc:
                raise InvoiceError(str(exc), details=exc.details)
            priced.append((product, item))

        old_gold_row = build_old_gold(ctx, customer.id, old_gold) if old_gold else None
        payment_rows = [build_payment(ctx, p) for p in payments]

        invoice = Invoice(
            branch_id=ctx.branch_id,
            invoice_number=next_document_number(branch_id=ctx.branch_id, document_type="invoice", prefix=PREFIX_INVOICE),
            invoice_date=utcnow(),
            customer_id=customer.id,
            invoice_type=invoice_type,
            customer_name=customer.full_name,
            customer_mobile=customer.mobile,
            customer_email=customer.email,
            customer_address=customer.address,
            customer_gstin=customer.gstin,
            customer_pan=customer.pan_number,
            customer_state=customer.state,
            gst_type=gst_type,
            discount_percentage=invoice_discount,
            old_gold_amount=old_gold_row.final_value if old_gold_row else ZERO,
            old_gold_weight=old_gold_row.final_weight if old_gold_row else ZERO,
            amount_paid=sum((p.amount for p in payment_rows), ZERO),
            payment_mode=payment_rows[0].payment_mode if len(payment_rows) == 1 else ("split" if payment_rows else None),
            notes=notes,
            created_by=ctx.user_id,
        )
        invoice.calculate_totals([item for _, item in priced])
        invoice.update_payment_status()
        db.session.add(invoice)
        db.session.flush()
        # Parent first: the cloud tables reference invoices by foreign key
        sync_service.queue_record(ctx, invoice, "insert")

        for product, item in priced:
            item.invoice_id = invoice.id
            db.session.add(item)
            sync_service.queue_record(ctx, item, "insert")
            sync_service.queue_record(ctx, product, "update")

        if old_gold_row is not None:
            old_gold_row.invoice_id = invoice.id
            old_gold_row.transaction_number = next_document_number(
                branch_id=ctx.branch_id, document_type="old_gold", prefix=PREFIX_OLD_GOLD
            )
            db.session.add(old_gold_row)
            sync_service.queue_record(ctx, old_gold_row, "insert")

        for payment in payment_rows:
            payment.invoice_id = invoice.id
            payment.receipt_number = next_document_number(
                branch_id=ctx.branch_id, document_type="receipt", prefix=PREFIX_RECEIPT
            )
            db.session.add(payment)
            sync_service.queue_record(ctx, payment, "insert")

        if to_decimal(invoice.balance_due) > 0:
            adjust_outstanding_balance(customer, invoice.balance_due)
            sync_service.queue_record(ctx, customer, "update")

        db.session.commit()
        return invoice

    return run_with_retry(_op)


def add_payment(ctx: BranchContext, invoice_id: int, data: dict) -> Payment:
    """
    Record a receipt against an existing invoice.

    The customer's outstanding balance drops by the part of the payment
    that actually settles the invoice.
    """
    def _op() -> Payment:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise InvoiceNotFoundError("Invoice not found")
        if invoice.is_cancelled:
            raise InvoiceError("Cannot add a payment to a cancelled invoice")
        balance = to_decimal(invoice.balance_due)
        if balance <= 0:
            raise InvoiceError("Invoice is already fully paid")

        payment = build_payment(ctx, data)
        payment.invoice_id = invoice.id
        payment.receipt_number = next_document_number(
            branch_id=ctx.branch_id, document_type="receipt", prefix=PREFIX_RECEIPT
        )
        db.session.add(payment)

        applied = min(payment.amount, balance)
        invoice.amount_paid = to_decimal(invoice.amount_paid) + payment.amount
        invoice.calculate_balance_due()
        invoice.update_payment_status()
        invoice.updated_by = ctx.user_id

        customer = lock_for_update(db.session.query(Customer).filter_by(id=invoice.customer_id)).first()
        if customer is not None:
            adjust_outstanding_balance(customer, -applied)
            sync_service.queue_record(ctx, customer, "update")

        sync_service.queue_record(ctx, payment, "insert")
        sync_service.queue_record(ctx, invoice, "update")
        db.session.commit()
        return payment

    return run_with_retry(_op)


def cancel_invoice(ctx: BranchContext, invoice_id: int, reason: str) -> Invoice:
    """Cancel within 24 hours of issue: stock goes back, unpaid balance leaves the customer."""
    reason = (reason or "").strip()
    if not reason:
        raise InvoiceError("A cancellation reason is required")

    def _op() -> Invoice:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise InvoiceNotFoundError("Invoice not found")
        if invoice.is_cancelled:
            raise InvoiceError("Invoice is already cancelled")
        if not invoice.can_be_cancelled():
            raise InvoiceError("Invoices can only be cancelled within 24 hours of issue")

        for item in invoice.items:
            product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
            if product is not None:
                apply_stock_delta(product, item.quantity)
                sync_service.queue_record(ctx, product, "update")

        balance = to_decimal(invoice.balance_due)
        if balance > 0:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=invoice.customer_id)).first()
            if customer is not None:
                adjust_outstanding_balance(customer, -balance)
                sync_service.queue_record(ctx, customer, "update")

        invoice.is_cancelled = True
        invoice.cancelled_at = utcnow()
        invoice.cancelled_by = ctx.user_id
        invoice.cancellation_reason = reason
        invoice.updated_by = ctx.user_id

        sync_service.queue_record(ctx, invoice, "update")
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError("Invoice not found")
    return invoice


def _filtered_query(filters: dict):
    query = db.session.query(Invoice)
    if filters.get("customer_id"):
        query = query.filter(Invoice.customer_id == int(filters["customer_id"]))
    if filters.get("payment_status"):
        query = query.filter(Invoice.payment_status == filters["payment_status"])
    if filters.get("invoice_type"):
        query = query.filter(Invoice.invoice_type == filters["invoice_type"])
    if filters.get("is_cancelled") is not None:
        query = query.filter(Invoice.is_cancelled.is_(bool(filters["is_cancelled"])))
    if filters.get("from_date"):
        query = query.filter(Invoice.invoice_date >= filters["from_date"])
    if filters.get("to_date"):
        query = query.filter(Invoice.invoice_date <= filters["to_date"])
    if filters.get("min_amount") is not None:
        query = query.filter(Invoice.grand_total >= to_decimal(filters["min_amount"]))
    if filters.get("max_amount") is not None:
        query = query.filter(Invoice.grand_total <= to_decimal(filters["max_amount"]))
    if filters.get("search"):
        like = f"%{filters['search'].strip()}%"
        query = query.filter(db.or_(
            Invoice.invoice_number.ilike(like),
            Invoice.customer_name.ilike(like),
            Invoice.customer_mobile.ilike(like),
        ))
    return query


def list_invoices(filters: dict | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = _filtered_query(filters or {}).order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda i: i.to_dict())


def get_invoice_summary(from_date: datetime | None = None, to_date: datetime | None = None) -> dict:
    """Totals over non-cancelled invoices in the window."""
    query = _filtered_query({"from_date": from_date, "to_date": to_date, "is_cancelled": False})
    sub = query.subquery()
    totals = db.session.query(
        func.count(sub.c.id),
        func.coalesce(func.sum(sub.c.grand_total), 0),
        func.coalesce(func.sum(sub.c.total_gst), 0),
        func.coalesce(func.sum(sub.c.amount_paid), 0),
        func.coalesce(func.sum(sub.c.balance_due), 0),
        func.coalesce(func.sum(sub.c.old_gold_amount), 0),
    ).one()

    by_status = {
        status: count
        for status, count in db.session.query(sub.c.payment_status, func.count(sub.c.id)).group_by(sub.c.payment_status)
    }

    return {
        "invoice_count": totals[0],
        "total_sales": str(q2(totals[1])),
        "total_gst": str(q2(totals[2])),
        "total_collected": str(q2(totals[3])),
        "total_outstanding": str(q2(totals[4])),
        "total_old_gold": str(q2(totals[5])),
        "by_payment_status": by_status,
    }
