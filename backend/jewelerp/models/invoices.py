from __future__ import annotations

import logging

from ..extensions import db
from jewelerp.money import ZERO, as_str, percent_of, q2, q3, round_rupee, to_decimal
from jewelerp.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

# GST slabs for jewellery (percent)
METAL_GST_RATE = 3
MAKING_GST_RATE = 5

DEFAULT_MELTING_LOSS_PERCENTAGE = "0.5"

PAYMENT_MODES = ("cash", "card", "upi", "cheque", "bank_transfer", "metal_account", "emi")


def split_gst(taxable, rate, gst_type: str) -> dict:
    """
    Split GST on a taxable amount.

    intra: CGST and SGST at half the rate each, every half rounded to paise
    on its own before they are summed. inter: the whole rate as IGST.
    """
    taxable = to_decimal(taxable)
    rate = to_decimal(rate)
    if gst_type == "intra":
        half = q2(taxable * rate / 2 / 100)
        return {"cgst": half, "sgst": half, "igst": ZERO, "total": half + half}
    igst = q2(taxable * rate / 100)
    return {"cgst": ZERO, "sgst": ZERO, "igst": igst, "total": igst}


class Invoice(db.Model):
    """
    Sales invoice.

    Customer details are copied onto the invoice so later edits to the
    customer record never alter an issued bill.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_number"),
        db.Index("ix_invoices_branch_date", "branch_id", "invoice_date"),
        db.Index("ix_invoices_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    invoice_number = db.Column(db.String(50), nullable=False)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    invoice_type = db.Column(db.String(16), nullable=False, default="sale")  # sale, estimate, proforma

    # Customer snapshot
    customer_name = db.Column(db.String(200), nullable=False)
    customer_mobile = db.Column(db.String(15), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)
    customer_gstin = db.Column(db.String(15), nullable=True)
    customer_pan = db.Column(db.String(10), nullable=True)
    customer_state = db.Column(db.String(100), nullable=True)

    # Amounts
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    metal_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stone_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_charges = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    wastage_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # GST
    gst_type = db.Column(db.String(8), nullable=False, default="intra")  # intra, inter
    metal_cgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    metal_sgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    metal_igst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_metal_gst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_cgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_sgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_igst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_making_gst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cgst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    sgst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    igst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_gst = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    round_off = db.Column(db.Numeric(6, 2), nullable=False, default=0)

    old_gold_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    old_gold_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)

    taxable_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance_due = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, partial, paid, overdue
    payment_mode = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_cancelled = db.Column(db.Boolean, nullable=False, default=False)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    items = db.relationship("InvoiceItem", backref="invoice", lazy=True, order_by="InvoiceItem.id")
    payments = db.relationship("Payment", backref="invoice", lazy=True, order_by="Payment.id")
    __mapper_args__ = {"version_id_col": version_id}

    def calculate_totals(self, items=None) -> None:
        """Aggregate priced items into the invoice header."""
        items = list(self.items if items is None else items)

        def total(attr):
            return sum((to_decimal(getattr(i, attr)) for i in items), ZERO)

        self.subtotal = total("subtotal")
        self.metal_amount = total("metal_amount")
        self.stone_amount = total("stone_amount")
        self.making_charges = total("making_charge_amount")
        self.wastage_amount = total("wastage_amount")

        self.metal_cgst = total("metal_cgst")
        self.metal_sgst = total("metal_sgst")
        self.metal_igst = total("metal_igst")
        self.total_metal_gst = total("metal_gst_amount")
        self.making_cgst = total("making_cgst")
        self.making_sgst = total("making_sgst")
        self.making_igst = total("making_igst")
        self.total_making_gst = total("making_gst_amount")
        self.cgst_amount = self.metal_cgst + self.making_cgst
        self.sgst_amount = self.metal_sgst + self.making_sgst
        self.igst_amount = self.metal_igst + self.making_igst
        self.total_gst = self.total_metal_gst + self.total_making_gst

        pct = to_decimal(self.discount_percentage)
        self.discount_amount = q2(percent_of(self.subtotal, pct)) if pct > 0 else ZERO

        self.taxable_amount = self.subtotal - self.discount_amount

        raw = total("line_total") - self.discount_amount - to_decimal(self.old_gold_amount)
        rounded = round_rupee(raw)
        self.round_off = rounded - raw
        self.grand_total = rounded
        self.calculate_balance_due()

    def calculate_balance_due(self) -> None:
        """Never negative: an overpayment leaves nothing due."""
        self.balance_due = max(to_decimal(self.grand_total) - to_decimal(self.amount_paid), ZERO)

    def update_payment_status(self, now=None) -> None:
        """paid / partial / pending; unpaid past 30 days becomes overdue."""
        balance = to_decimal(self.balance_due)
        paid = to_decimal(self.amount_paid)
        if balance <= 0:
            self.payment_status = "paid"
            return
        issued = self.invoice_date or utcnow()
        if ((now or utcnow()) - issued).days > 30:
            self.payment_status = "overdue"
        elif paid > 0:
            self.payment_status = "partial"
        else:
            self.payment_status = "pending"

    def can_be_cancelled(self, now=None) -> bool:
        """Only invoices younger than 24 hours can be cancelled."""
        if self.is_cancelled:
            return False
        issued = self.invoice_date or utcnow()
        return ((now or utcnow()) - issued).total_seconds() < 24 * 3600

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "invoice_number": self.invoice_number,
            "invoice_date": to_utc_z(self.invoice_date),
            "customer_id": self.customer_id,
            "invoice_type": self.invoice_type,
            "customer_name": self.customer_name,
            "customer_mobile": self.customer_mobile,
            "customer_state": self.customer_state,
            "customer_gstin": self.customer_gstin,
            "subtotal": as_str(self.subtotal),
            "metal_amount": as_str(self.metal_amount),
            "stone_amount": as_str(self.stone_amount),
            "making_charges": as_str(self.making_charges),
            "wastage_amount": as_str(self.wastage_amount),
            "gst_type": self.gst_type,
            "cgst_amount": as_str(self.cgst_amount),
            "sgst_amount": as_str(self.sgst_amount),
            "igst_amount": as_str(self.igst_amount),
            "total_metal_gst": as_str(self.total_metal_gst),
            "total_making_gst": as_str(self.total_making_gst),
            "total_gst": as_str(self.total_gst),
            "discount_percentage": as_str(self.discount_percentage),
            "discount_amount": as_str(self.discount_amount),
            "round_off": as_str(self.round_off),
            "old_gold_amount": as_str(self.old_gold_amount),
            "old_gold_weight": as_str(self.old_gold_weight),
            "taxable_amount": as_str(self.taxable_amount),
            "grand_total": as_str(self.grand_total),
            "amount_paid": as_str(self.amount_paid),
            "balance_due": as_str(self.balance_due),
            "payment_status": self.payment_status,
            "payment_mode": self.payment_mode,
            "notes": self.notes,
            "is_cancelled": self.is_cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class InvoiceItem(db.Model):
    """
    One priced line. Product attributes are snapshotted at sale time.
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    product_code = db.Column(db.String(50), nullable=False)
    product_name = db.Column(db.String(200), nullable=False)
    barcode = db.Column(db.String(100), nullable=True)
    huid = db.Column(db.String(6), nullable=True)
    category_name = db.Column(db.String(100), nullable=True)
    metal_type_name = db.Column(db.String(50), nullable=True)

    gross_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    net_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    stone_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    fine_weight = db.Column(db.Numeric(10, 3), nullable=True)
    purity = db.Column(db.Numeric(5, 2), nullable=True)

    metal_rate = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    wastage_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    wastage_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    making_charge_type = db.Column(db.String(16), nullable=False, default="per_gram")
    making_charge_rate = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    making_charge_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stone_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    hsn_code = db.Column(db.String(8), nullable=False, default="71131900")
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=METAL_GST_RATE)

    metal_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    metal_cgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    metal_sgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    metal_igst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    metal_gst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_cgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_sgst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_igst = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    making_gst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_gst = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")

    def calculate_metal_amount(self):
        return q2(to_decimal(self.net_weight) * to_decimal(self.metal_rate))

    def calculate_wastage_amount(self):
        pct = to_decimal(self.wastage_percentage)
        if pct <= 0:
            return ZERO
        return q2(to_decimal(self.net_weight) * pct / 100 * to_decimal(self.metal_rate))

    def calculate_making_charge(self):
        rate = to_decimal(self.making_charge_rate)
        kind = self.making_charge_type
        if kind == "per_gram":
            return q2(rate * to_decimal(self.net_weight))
        if kind == "percentage":
            return q2(percent_of(self.metal_amount, rate))
        if kind == "fixed":
            return q2(rate)
        if kind == "slab":
            # No slab table exists yet; the flat rate is charged as-is.
            logger.warning("slab making charge on product %s billed as a flat rate", self.product_code)
            return q2(rate)
        return ZERO

    def calculate_line_total(self, gst_type: str):
        """Price the line in place and return line_total."""
        self.metal_amount = self.calculate_metal_amount()
        self.wastage_amount = self.calculate_wastage_amount()
        self.making_charge_amount = self.calculate_making_charge()
        self.stone_amount = q2(self.stone_amount)

        self.subtotal = self.metal_amount + self.wastage_amount + self.making_charge_amount + self.stone_amount

        metal = split_gst(self.metal_amount + self.wastage_amount, METAL_GST_RATE, gst_type)
        self.metal_cgst = metal["cgst"]
        self.metal_sgst = metal["sgst"]
        self.metal_igst = metal["igst"]
        self.metal_gst_amount = metal["total"]

        making = split_gst(self.making_charge_amount, MAKING_GST_RATE, gst_type)
        self.making_cgst = making["cgst"]
        self.making_sgst = making["sgst"]
        self.making_igst = making["igst"]
        self.making_gst_amount = making["total"]

        self.total_gst = self.metal_gst_amount + self.making_gst_amount

        pct = to_decimal(self.discount_percentage)
        self.discount_amount = q2(percent_of(self.subtotal, pct)) if pct > 0 else ZERO

        self.line_total = self.subtotal + self.total_gst - self.discount_amount
        return self.line_total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "barcode": self.barcode,
            "huid": self.huid,
            "category_name": self.category_name,
            "metal_type_name": self.metal_type_name,
            "gross_weight": as_str(self.gross_weight),
            "net_weight": as_str(self.net_weight),
            "stone_weight": as_str(self.stone_weight),
            "fine_weight": as_str(self.fine_weight),
            "purity": as_str(self.purity),
            "metal_rate": as_str(self.metal_rate),
            "quantity": self.quantity,
            "wastage_percentage": as_str(self.wastage_percentage),
            "wastage_amount": as_str(self.wastage_amount),
            "making_charge_type": self.making_charge_type,
            "making_charge_rate": as_str(self.making_charge_rate),
            "making_charge_amount": as_str(self.making_charge_amount),
            "stone_amount": as_str(self.stone_amount),
            "hsn_code": self.hsn_code,
            "metal_amount": as_str(self.metal_amount),
            "subtotal": as_str(self.subtotal),
            "metal_cgst": as_str(self.metal_cgst),
            "metal_sgst": as_str(self.metal_sgst),
            "metal_igst": as_str(self.metal_igst),
            "metal_gst_amount": as_str(self.metal_gst_amount),
            "making_cgst": as_str(self.making_cgst),
            "making_sgst": as_str(self.making_sgst),
            "making_igst": as_str(self.making_igst),
            "making_gst_amount": as_str(self.making_gst_amount),
            "total_gst": as_str(self.total_gst),
            "discount_percentage": as_str(self.discount_percentage),
            "discount_amount": as_str(self.discount_amount),
            "line_total": as_str(self.line_total),
        }


class Payment(db.Model):
    """
    Receipt against an invoice. Required details depend on payment_mode.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    receipt_number = db.Column(db.String(50), nullable=True, unique=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    payment_mode = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    transaction_ref = db.Column(db.String(100), nullable=True)
    card_type = db.Column(db.String(50), nullable=True)
    card_last4 = db.Column(db.String(4), nullable=True)
    upi_id = db.Column(db.String(100), nullable=True)
    cheque_number = db.Column(db.String(50), nullable=True)
    cheque_date = db.Column(db.Date, nullable=True)
    bank_name = db.Column(db.String(100), nullable=True)
    bank_account = db.Column(db.String(50), nullable=True)

    metal_weight = db.Column(db.Numeric(10, 3), nullable=True)
    metal_rate = db.Column(db.Numeric(10, 2), nullable=True)
    metal_type = db.Column(db.String(50), nullable=True)

    payment_status = db.Column(db.String(16), nullable=False, default="completed")
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def validate_payment_details(self) -> list[str]:
        """Return the list of missing details for this payment mode."""
        mode = self.payment_mode
        missing: list[str] = []
        if mode not in PAYMENT_MODES:
            return [f"unsupported payment_mode '{mode}'"]
        if mode == "card":
            if not self.card_last4:
                missing.append("card_last4")
            if not self.transaction_ref:
                missing.append("transaction_ref")
        elif mode == "upi":
            if not self.transaction_ref:
                missing.append("transaction_ref")
        elif mode == "cheque":
            for field in ("cheque_number", "cheque_date", "bank_name"):
                if not getattr(self, field):
                    missing.append(field)
        elif mode == "bank_transfer":
            for field in ("transaction_ref", "bank_name"):
                if not getattr(self, field):
                    missing.append(field)
        elif mode == "metal_account":
            if not self.metal_weight:
                missing.append("metal_weight")
            if not self.metal_rate:
                missing.append("metal_rate")
        return missing

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "receipt_number": self.receipt_number,
            "payment_date": to_utc_z(self.payment_date),
            "payment_mode": self.payment_mode,
            "amount": as_str(self.amount),
            "transaction_ref": self.transaction_ref,
            "card_type": self.card_type,
            "card_last4": self.card_last4,
            "upi_id": self.upi_id,
            "cheque_number": self.cheque_number,
            "cheque_date": self.cheque_date.isoformat() if self.cheque_date else None,
            "bank_name": self.bank_name,
            "metal_weight": as_str(self.metal_weight),
            "metal_rate": as_str(self.metal_rate),
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class OldGoldTransaction(db.Model):
    """Old gold taken in exchange, valued at the tested purity."""
    __tablename__ = "old_gold_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    transaction_number = db.Column(db.String(50), nullable=True, unique=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    metal_type = db.Column(db.String(50), nullable=False, default="Gold")
    gross_weight = db.Column(db.Numeric(10, 3), nullable=False)
    stone_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    net_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    purity = db.Column(db.Numeric(5, 2), nullable=False)
    fine_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)

    test_method = db.Column(db.String(16), nullable=False, default="touchstone")
    tested_purity = db.Column(db.Numeric(5, 2), nullable=False)
    tested_by = db.Column(db.String(100), nullable=True)

    current_rate = db.Column(db.Numeric(10, 2), nullable=False)
    metal_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    melting_loss_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=DEFAULT_MELTING_LOSS_PERCENTAGE)
    melting_loss_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    melting_loss_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    final_weight = db.Column(db.Numeric(10, 3), nullable=False, default=0)
    final_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    item_description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="accepted")  # accepted, rejected, settled
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    invoice = db.relationship("Invoice", backref=db.backref("old_gold_transactions", lazy=True))

    def calculate_values(self) -> None:
        rate = to_decimal(self.current_rate)
        loss_pct = to_decimal(
            self.melting_loss_percentage
            if self.melting_loss_percentage is not None
            else DEFAULT_MELTING_LOSS_PERCENTAGE
        )
        self.melting_loss_percentage = loss_pct
        self.net_weight = q3(to_decimal(self.gross_weight) - to_decimal(self.stone_weight))
        self.fine_weight = q3(percent_of(self.net_weight, self.tested_purity))
        self.metal_value = q2(self.fine_weight * rate)
        self.melting_loss_weight = q3(percent_of(self.fine_weight, loss_pct))
        self.melting_loss_amount = q2(self.melting_loss_weight * rate)
        self.final_weight = q3(self.fine_weight - self.melting_loss_weight)
        self.final_value = q2(self.final_weight * rate)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "metal_type": self.metal_type,
            "gross_weight": as_str(self.gross_weight),
            "stone_weight": as_str(self.stone_weight),
            "net_weight": as_str(self.net_weight),
            "purity": as_str(self.purity),
            "tested_purity": as_str(self.tested_purity),
            "fine_weight": as_str(self.fine_weight),
            "current_rate": as_str(self.current_rate),
            "metal_value": as_str(self.metal_value),
            "melting_loss_percentage": as_str(self.melting_loss_percentage),
            "melting_loss_weight": as_str(self.melting_loss_weight),
            "melting_loss_amount": as_str(self.melting_loss_amount),
            "final_weight": as_str(self.final_weight),
            "final_value": as_str(self.final_value),
            "status": self.status,
        }
