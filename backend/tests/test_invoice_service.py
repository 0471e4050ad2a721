"""
Invoice service tests: GST, old gold exchange, payments, stock and cancellation.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from jewelerp.models import Invoice, OldGoldTransaction, Payment, SyncQueue
from jewelerp.services import customer_service, invoice_service, metal_rate_service
from jewelerp.services.invoice_service import InvoiceError, InvoiceNotFoundError
from jewelerp.time_utils import utcnow


def _sell(ctx, customer, product, **kwargs):
    items = kwargs.pop("items", None) or [{"product_id": product.id, "quantity": 1, "metal_rate": "5000"}]
    return invoice_service.create_invoice(ctx, customer_id=customer.id, items=items, **kwargs)


class TestCreateInvoice:

    def test_intra_state_invoice_totals(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)

        assert invoice.invoice_number.startswith("INV-")
        assert invoice.gst_type == "intra"
        assert invoice.subtotal == Decimal("55000.00")
        assert invoice.cgst_amount == Decimal("875.00")
        assert invoice.sgst_amount == Decimal("875.00")
        assert invoice.igst_amount == Decimal("0")
        assert invoice.total_gst == Decimal("1750.00")
        assert invoice.grand_total == Decimal("56750")
        assert invoice.round_off == Decimal("0")
        assert invoice.payment_status == "pending"

        item = invoice.items[0]
        assert item.metal_cgst == Decimal("750.00")
        assert item.making_cgst == Decimal("125.00")
        assert item.product_name == "Gold Ring"

    def test_inter_state_customer_pays_igst(self, ctx, product):
        outsider = customer_service.create_customer(ctx, {
            "first_name": "Amit",
            "mobile": "9123456780",
            "state": "Maharashtra",
        })
        invoice = _sell(ctx, outsider, product)

        assert invoice.gst_type == "inter"
        assert invoice.cgst_amount == 0
        assert invoice.igst_amount == Decimal("1750.00")
        assert invoice.items[0].metal_igst == Decimal("1500.00")
        assert invoice.items[0].making_igst == Decimal("250.00")

    def test_customer_without_state_is_intra(self, ctx, product):
        walk_in = customer_service.create_customer(ctx, {"first_name": "Walk", "mobile": "9000000001"})
        invoice = _sell(ctx, walk_in, product)
        assert invoice.gst_type == "intra"

    def test_stock_is_decremented(self, ctx, customer, product):
        _sell(ctx, customer, product)
        assert product.current_stock == 1
        assert product.status == "in_stock"

        _sell(ctx, customer, product)
        assert product.current_stock == 0
        assert product.status == "sold"

    def test_insufficient_stock_rolls_back(self, ctx, customer, product):
        with pytest.raises(InvoiceError):
            _sell(ctx, customer, product, items=[{"product_id": product.id, "quantity": 3, "metal_rate": "5000"}])

        assert product.current_stock == 2
        assert Invoice.query.count() == 0

    def test_unpaid_balance_goes_to_customer(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)
        assert customer.outstanding_balance == invoice.grand_total

    def test_partial_payment_at_sale(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product, payments=[{"payment_mode": "cash", "amount": "20000"}])

        assert invoice.amount_paid == Decimal("20000.00")
        assert invoice.balance_due == Decimal("36750.00")
        assert invoice.payment_status == "partial"
        assert invoice.payment_mode == "cash"
        assert customer.outstanding_balance == Decimal("36750.00")
        assert invoice.payments[0].receipt_number.startswith("RCP-")

    def test_split_payment_mode(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product, payments=[
            {"payment_mode": "cash", "amount": "10000"},
            {"payment_mode": "upi", "amount": "46750", "transaction_ref": "UPI123"},
        ])
        assert invoice.payment_mode == "split"
        assert invoice.payment_status == "paid"
        assert customer.outstanding_balance == Decimal("0")

    def test_card_without_details_rolls_back_everything(self, ctx, customer, product):
        with pytest.raises(InvoiceError) as exc:
            _sell(ctx, customer, product, payments=[{"payment_mode": "card", "amount": "1000"}])

        assert exc.value.details["missing"] == ["card_last4", "transaction_ref"]
        assert product.current_stock == 2
        assert Invoice.query.count() == 0
        assert Payment.query.count() == 0
        assert SyncQueue.query.filter_by(table_name="invoices").count() == 0

    def test_old_gold_exchange_reduces_total(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product, old_gold={
            "gross_weight": "5",
            "tested_purity": "91.6",
            "current_rate": "6000",
        })

        assert invoice.old_gold_amount == Decimal("27342.00")
        assert invoice.old_gold_weight == Decimal("4.557")
        assert invoice.grand_total == Decimal("29408")

        og = OldGoldTransaction.query.one()
        assert og.invoice_id == invoice.id
        assert og.transaction_number.startswith("OG-")
        assert og.melting_loss_weight == Decimal("0.023")

    def test_old_gold_stone_heavier_than_gross_rejected(self, ctx, customer, product):
        with pytest.raises(InvoiceError):
            _sell(ctx, customer, product, old_gold={
                "gross_weight": "5",
                "stone_weight": "5",
                "tested_purity": "91.6",
                "current_rate": "6000",
            })

    def test_metal_rate_falls_back_to_latest(self, ctx, customer, product, metal_type):
        metal_rate_service.update_metal_rates(ctx, {metal_type.id: "5000"})
        invoice = _sell(ctx, customer, product, items=[{"product_id": product.id}])

        assert invoice.items[0].metal_rate == Decimal("5000.00")
        assert invoice.grand_total == Decimal("56750")

    def test_missing_metal_rate_is_an_error(self, ctx, customer, product):
        with pytest.raises(InvoiceError, match="No metal rate"):
            _sell(ctx, customer, product, items=[{"product_id": product.id}])

    def test_invoice_discount(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product, discount_percentage="10")
        assert invoice.discount_amount == Decimal("5500.00")
        assert invoice.grand_total == Decimal("51250")

    @pytest.mark.parametrize("bad", [
        {"items": []},
        {"invoice_type": "quote"},
        {"discount_percentage": "150"},
    ])
    def test_invalid_requests(self, ctx, customer, product, bad):
        kwargs = {"items": [{"product_id": product.id, "metal_rate": "5000"}]}
        kwargs.update(bad)
        with pytest.raises(InvoiceError):
            invoice_service.create_invoice(ctx, customer_id=customer.id, **kwargs)

    def test_unknown_customer(self, ctx, product):
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.create_invoice(ctx, customer_id=99999, items=[{"product_id": product.id, "metal_rate": "5000"}])

    def test_invoice_rows_are_queued_for_sync(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)

        queued = {(row.table_name, row.operation) for row in SyncQueue.query.all()}
        assert ("invoices", "insert") in queued
        assert ("invoice_items", "insert") in queued
        assert ("products", "update") in queued
        assert ("customers", "update") in queued

        row = SyncQueue.query.filter_by(table_name="invoices").one()
        assert row.record_id == invoice.id
        assert row.branch_id == 1
        assert row.data["invoice_number"] == invoice.invoice_number

    def test_invoice_numbers_increase(self, ctx, customer, product):
        first = _sell(ctx, customer, product)
        second = _sell(ctx, customer, product)

        assert first.invoice_number.endswith("-001")
        assert second.invoice_number.endswith("-002")


class TestPayments:

    def test_payment_settles_invoice(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product, payments=[{"payment_mode": "cash", "amount": "20000"}])

        payment = invoice_service.add_payment(ctx, invoice.id, {"payment_mode": "cash", "amount": "36750"})

        assert payment.receipt_number.startswith("RCP-")
        assert invoice.payment_status == "paid"
        assert invoice.balance_due == Decimal("0")
        assert customer.outstanding_balance == Decimal("0")

    def test_overpayment_marks_paid_and_floors_customer_balance(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product, payments=[{"payment_mode": "cash", "amount": "20000"}])

        invoice_service.add_payment(ctx, invoice.id, {"payment_mode": "cash", "amount": "40000"})

        assert invoice.payment_status == "paid"
        assert invoice.amount_paid == Decimal("60000.00")
        assert invoice.balance_due == Decimal("0")
        assert customer.outstanding_balance == Decimal("0")
        assert invoice_service.get_invoice_summary()["total_outstanding"] == "0.00"

    def test_paid_invoice_rejects_more_payments(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product, payments=[{"payment_mode": "cash", "amount": "56750"}])
        with pytest.raises(InvoiceError, match="fully paid"):
            invoice_service.add_payment(ctx, invoice.id, {"payment_mode": "cash", "amount": "1"})

    def test_zero_amount_rejected(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)
        with pytest.raises(InvoiceError):
            invoice_service.add_payment(ctx, invoice.id, {"payment_mode": "cash", "amount": "0"})

    def test_cheque_requires_details(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)
        with pytest.raises(InvoiceError) as exc:
            invoice_service.add_payment(ctx, invoice.id, {"payment_mode": "cheque", "amount": "100"})
        assert set(exc.value.details["missing"]) == {"cheque_number", "cheque_date", "bank_name"}

    def test_cheque_with_details(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)
        payment = invoice_service.add_payment(ctx, invoice.id, {
            "payment_mode": "cheque",
            "amount": "1000",
            "cheque_number": "000123",
            "cheque_date": "2026-10-18",
            "bank_name": "SBI",
        })
        assert payment.cheque_date.isoformat() == "2026-10-18"
        assert invoice.payment_status == "partial"


class TestCancellation:

    def test_cancel_restores_stock_and_balance(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)

        invoice_service.cancel_invoice(ctx, invoice.id, "Customer changed mind")

        assert invoice.is_cancelled
        assert invoice.cancellation_reason == "Customer changed mind"
        assert product.current_stock == 2
        assert customer.outstanding_balance == Decimal("0")

    def test_cancel_requires_reason(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)
        with pytest.raises(InvoiceError, match="reason"):
            invoice_service.cancel_invoice(ctx, invoice.id, "  ")

    def test_cancel_after_24_hours_rejected(self, ctx, customer, product, db_session):
        invoice = _sell(ctx, customer, product)
        invoice.invoice_date = utcnow() - timedelta(hours=25)
        db_session.commit()

        with pytest.raises(InvoiceError, match="24 hours"):
            invoice_service.cancel_invoice(ctx, invoice.id, "Too late")
        assert product.current_stock == 1

    def test_cannot_cancel_twice(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)
        invoice_service.cancel_invoice(ctx, invoice.id, "Mistake")
        with pytest.raises(InvoiceError, match="already cancelled"):
            invoice_service.cancel_invoice(ctx, invoice.id, "Mistake")


class TestListingAndSummary:

    def test_summary_excludes_cancelled(self, ctx, customer, product):
        kept = _sell(ctx, customer, product, payments=[{"payment_mode": "cash", "amount": "20000"}])
        dropped = _sell(ctx, customer, product)
        invoice_service.cancel_invoice(ctx, dropped.id, "Duplicate")

        summary = invoice_service.get_invoice_summary()

        assert summary["invoice_count"] == 1
        assert summary["total_sales"] == "56750.00"
        assert summary["total_gst"] == "1750.00"
        assert summary["total_collected"] == "20000.00"
        assert summary["total_outstanding"] == "36750.00"
        assert summary["by_payment_status"] == {"partial": 1}
        assert kept.payment_status == "partial"

    def test_list_filters_and_search(self, ctx, customer, product):
        invoice = _sell(ctx, customer, product)

        result = invoice_service.list_invoices({"search": "Ravi"})
        assert [row["id"] for row in result["items"]] == [invoice.id]

        assert invoice_service.list_invoices({"payment_status": "paid"})["items"] == []
