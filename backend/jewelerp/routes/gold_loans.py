# Overview: Flask API routes for gold loans: origination, approval, disbursement, repayments and portfolio views.

from decimal import InvalidOperation

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_MANAGER
from ..responses import fail, ok, server_error
from ..services import gold_loan_service
from ..services.gold_loan_service import GoldLoanError, GoldLoanNotFoundError
from ..time_utils import parse_iso_date


gold_loans_bp = Blueprint("gold_loans", __name__, url_prefix="/api/gold-loans")


def _handle(action: str, fn):
    """Run fn and map loan errors onto the response envelope."""
    try:
        return fn()
    except GoldLoanNotFoundError as e:
        return fail(str(e), 404)
    except GoldLoanError as e:
        return fail(str(e), 400, e.details)
    except (InvalidOperation, ValueError):
        return fail("Invalid numeric or date value", 400)
    except Exception:
        current_app.logger.exception("Failed to %s", action)
        return server_error()


@gold_loans_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_loan_route():
    def _run():
        loan = gold_loan_service.create_gold_loan(g.branch_context, request.get_json(silent=True) or {})
        return ok({"loan": loan.to_dict()}, "Gold loan created successfully", 201)
    return _handle("create gold loan", _run)


@gold_loans_bp.get("/")
@require_auth
def list_loans_route():
    def _run():
        filters = {
            "customer_id": request.args.get("customer_id", type=int),
            "status": request.args.get("status"),
            "payment_status": request.args.get("payment_status"),
            "risk_level": request.args.get("risk_level"),
            "from_date": parse_iso_date(request.args.get("from_date")),
            "to_date": parse_iso_date(request.args.get("to_date")),
            "search": request.args.get("search"),
        }
        result = gold_loan_service.list_loans(
            filters,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return ok(result)
    return _handle("list gold loans", _run)


@gold_loans_bp.get("/stats")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def loan_stats_route():
    filters = {
        "customer_id": request.args.get("customer_id", type=int),
        "status": request.args.get("status"),
    }
    return ok(gold_loan_service.get_loan_stats(filters))


@gold_loans_bp.get("/overdue")
@require_auth
def overdue_loans_route():
    def _run():
        loans = gold_loan_service.get_overdue_loans(g.branch_context)
        return ok({"loans": [loan.to_dict() for loan in loans], "count": len(loans)})
    return _handle("load overdue loans", _run)


@gold_loans_bp.get("/maturing")
@require_auth
def maturing_loans_route():
    days = request.args.get("days", default=30, type=int)
    loans = gold_loan_service.get_maturing_soon(days)
    return ok({"loans": [loan.to_dict() for loan in loans], "count": len(loans)})


@gold_loans_bp.get("/<int:loan_id>")
@require_auth
def get_loan_route(loan_id: int):
    def _run():
        loan = gold_loan_service.get_loan(loan_id)
        return ok({"loan": loan.to_dict(include_payments=True)})
    return _handle("load gold loan", _run)


@gold_loans_bp.get("/<int:loan_id>/interest")
@require_auth
def current_interest_route(loan_id: int):
    return _handle("calculate interest", lambda: ok(gold_loan_service.calculate_current_interest(loan_id)))


@gold_loans_bp.post("/<int:loan_id>/approve")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def approve_loan_route(loan_id: int):
    def _run():
        loan = gold_loan_service.approve_loan(g.branch_context, loan_id)
        return ok({"loan": loan.to_dict()}, "Loan approved successfully")
    return _handle("approve gold loan", _run)


@gold_loans_bp.post("/<int:loan_id>/disburse")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def disburse_loan_route(loan_id: int):
    def _run():
        loan = gold_loan_service.disburse_loan(g.branch_context, loan_id)
        return ok({"loan": loan.to_dict()}, "Loan disbursed successfully")
    return _handle("disburse gold loan", _run)


@gold_loans_bp.post("/<int:loan_id>/status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_status_route(loan_id: int):
    def _run():
        data = request.get_json(silent=True) or {}
        loan = gold_loan_service.update_status(g.branch_context, loan_id, data.get("status"))
        return ok({"loan": loan.to_dict()}, "Loan status updated")
    return _handle("update gold loan status", _run)


@gold_loans_bp.post("/<int:loan_id>/payments")
@require_auth
def record_payment_route(loan_id: int):
    def _run():
        payment = gold_loan_service.record_payment(g.branch_context, loan_id, request.get_json(silent=True) or {})
        loan = gold_loan_service.get_loan(loan_id)
        return ok({"payment": payment.to_dict(), "loan": loan.to_dict()}, "Payment recorded successfully", 201)
    return _handle("record loan payment", _run)


@gold_loans_bp.post("/<int:loan_id>/foreclose")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def foreclose_loan_route(loan_id: int):
    def _run():
        data = request.get_json(silent=True) or {}
        payment = gold_loan_service.foreclose_loan(
            g.branch_context, loan_id, penalty_amount=data.get("penalty_amount") or 0, notes=data.get("notes")
        )
        loan = gold_loan_service.get_loan(loan_id)
        return ok({"payment": payment.to_dict(), "loan": loan.to_dict()}, "Loan foreclosed successfully")
    return _handle("foreclose gold loan", _run)


@gold_loans_bp.post("/<int:loan_id>/close")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def close_loan_route(loan_id: int):
    def _run():
        loan = gold_loan_service.close_loan(g.branch_context, loan_id)
        return ok({"loan": loan.to_dict()}, "Loan closed successfully")
    return _handle("close gold loan", _run)


@gold_loans_bp.post("/<int:loan_id>/default")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def mark_default_route(loan_id: int):
    def _run():
        data = request.get_json(silent=True) or {}
        loan = gold_loan_service.mark_default(g.branch_context, loan_id, data.get("reason"))
        return ok({"loan": loan.to_dict()}, "Loan marked as default successfully")
    return _handle("mark gold loan as default", _run)
