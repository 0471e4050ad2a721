# Overview: Flask API routes for invoices: billing, receipts, cancellation, listings and summaries.

from decimal import InvalidOperation

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_MANAGER
from ..responses import fail, ok, server_error
from ..services import invoice_service
from ..services.invoice_service import InvoiceError, InvoiceNotFoundError
from ..time_utils import parse_iso_datetime


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _date_filters() -> dict:
    return {
        "from_date": parse_iso_datetime(request.args.get("from_date")),
        "to_date": parse_iso_datetime(request.args.get("to_date")),
    }


@invoices_bp.post("/")
@require_auth
def create_invoice_route():
    """
    Create a priced invoice.

    Body:
    {
      "customer_id": 1,
      "items": [{"product_id": 5, "quantity": 1, "metal_rate": 6200, "discount_percentage": 0}],
      "old_gold": {"gross_weight": 5, "tested_purity": 91.6, "current_rate": 6000},
      "payments": [{"payment_mode": "cash", "amount": 20000}],
      "discount_percentage": 0
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if not data.get("customer_id"):
            return fail("customer_id required", 400)

        invoice = invoice_service.create_invoice(
            g.branch_context,
            customer_id=data["customer_id"],
            items=data.get("items") or [],
            old_gold=data.get("old_gold"),
            payments=data.get("payments") or [],
            discount_percentage=data.get("discount_percentage") or 0,
            invoice_type=data.get("invoice_type") or "sale",
            notes=data.get("notes"),
        )
        return ok({"invoice": invoice.to_dict(include_items=True)}, "Invoice created successfully", 201)

    except InvoiceNotFoundError as e:
        return fail(str(e), 404)
    except InvoiceError as e:
        return fail(str(e), 400, e.details)
    except (InvalidOperation, ValueError):
        return fail("Invalid numeric or date value", 400)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return server_error()


@invoices_bp.get("/")
@require_auth
def list_invoices_route():
    try:
        filters = {
            **_date_filters(),
            "customer_id": request.args.get("customer_id", type=int),
            "payment_status": request.args.get("payment_status"),
            "invoice_type": request.args.get("invoice_type"),
            "min_amount": request.args.get("min_amount"),
            "max_amount": request.args.get("max_amount"),
            "search": request.args.get("search"),
        }
        result = invoice_service.list_invoices(
            filters,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return ok(result)

    except (InvalidOperation, ValueError):
        return fail("Invalid filter value", 400)


@invoices_bp.get("/summary")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def invoice_summary_route():
    try:
        filters = _date_filters()
        return ok(invoice_service.get_invoice_summary(filters["from_date"], filters["to_date"]))
    except ValueError:
        return fail("from_date and to_date must be ISO-8601 datetimes", 400)


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        return ok({"invoice": invoice.to_dict(include_items=True)})
    except InvoiceNotFoundError as e:
        return fail(str(e), 404)


@invoices_bp.post("/<int:invoice_id>/payments")
@require_auth
def add_payment_route(invoice_id: int):
    try:
        data = request.get_json(silent=True) or {}
        payment = invoice_service.add_payment(g.branch_context, invoice_id, data)
        invoice = invoice_service.get_invoice(invoice_id)
        return ok({"payment": payment.to_dict(), "invoice": invoice.to_dict()}, "Payment added successfully", 201)

    except InvoiceNotFoundError as e:
        return fail(str(e), 404)
    except InvoiceError as e:
        return fail(str(e), 400, e.details)
    except (InvalidOperation, ValueError):
        return fail("Invalid numeric or date value", 400)
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return server_error()


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def cancel_invoice_route(invoice_id: int):
    try:
        data = request.get_json(silent=True) or {}
        invoice = invoice_service.cancel_invoice(g.branch_context, invoice_id, data.get("reason"))
        return ok({"invoice": invoice.to_dict()}, "Invoice cancelled successfully")

    except InvoiceNotFoundError as e:
        return fail(str(e), 404)
    except InvoiceError as e:
        return fail(str(e), 400, e.details)
    except Exception:
        current_app.logger.exception("Failed to cancel invoice")
        return server_error()
