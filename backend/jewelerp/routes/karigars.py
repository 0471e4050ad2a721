# Overview: Flask API routes for karigars and their job-work orders.

from decimal import InvalidOperation

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_MANAGER
from ..responses import fail, ok, server_error
from ..services import karigar_service
from ..services.karigar_service import KarigarError, KarigarNotFoundError
from ..validation import ConflictError, ValidationError


karigars_bp = Blueprint("karigars", __name__, url_prefix="/api/karigars")


def _handle(action: str, fn):
    try:
        return fn()
    except KarigarNotFoundError as e:
        return fail(str(e), 404)
    except KarigarError as e:
        return fail(str(e), 400, e.details)
    except ConflictError as e:
        return fail(str(e), 409)
    except ValidationError as e:
        return fail(str(e), 400)
    except (InvalidOperation, ValueError):
        return fail("Invalid numeric or date value", 400)
    except Exception:
        current_app.logger.exception("Failed to %s", action)
        return server_error()


@karigars_bp.get("/")
@require_auth
def list_karigars_route():
    result = karigar_service.list_karigars(
        search=request.args.get("search"),
        specialization=request.args.get("specialization"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return ok(result)


@karigars_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_karigar_route():
    def _run():
        karigar = karigar_service.create_karigar(g.branch_context, request.get_json(silent=True) or {})
        return ok({"karigar": karigar.to_dict()}, "Karigar created successfully", 201)
    return _handle("create karigar", _run)


@karigars_bp.get("/stats")
@require_auth
def karigar_stats_route():
    return ok(karigar_service.get_karigar_stats(request.args.get("karigar_id", type=int)))


@karigars_bp.get("/<int:karigar_id>")
@require_auth
def get_karigar_route(karigar_id: int):
    return _handle("load karigar", lambda: ok({"karigar": karigar_service.get_karigar(karigar_id).to_dict()}))


@karigars_bp.put("/<int:karigar_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_karigar_route(karigar_id: int):
    def _run():
        karigar = karigar_service.update_karigar(g.branch_context, karigar_id, request.get_json(silent=True) or {})
        return ok({"karigar": karigar.to_dict()}, "Karigar updated successfully")
    return _handle("update karigar", _run)


@karigars_bp.get("/orders")
@require_auth
def list_orders_route():
    filters = {
        "karigar_id": request.args.get("karigar_id", type=int),
        "status": request.args.get("status"),
        "order_type": request.args.get("order_type"),
    }
    result = karigar_service.list_orders(
        filters,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return ok(result)


@karigars_bp.post("/orders")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_order_route():
    def _run():
        order = karigar_service.create_order(g.branch_context, request.get_json(silent=True) or {})
        return ok({"order": order.to_dict()}, "Order created successfully", 201)
    return _handle("create karigar order", _run)


@karigars_bp.get("/orders/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    return _handle("load karigar order", lambda: ok({"order": karigar_service.get_order(order_id).to_dict()}))


@karigars_bp.post("/orders/<int:order_id>/start")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def start_order_route(order_id: int):
    def _run():
        order = karigar_service.start_order(g.branch_context, order_id)
        return ok({"order": order.to_dict()}, "Order started")
    return _handle("start karigar order", _run)


@karigars_bp.post("/orders/<int:order_id>/receive")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def receive_order_route(order_id: int):
    def _run():
        order = karigar_service.receive_order(g.branch_context, order_id, request.get_json(silent=True) or {})
        return ok({"order": order.to_dict()}, "Metal received successfully")
    return _handle("receive karigar order", _run)


@karigars_bp.post("/orders/<int:order_id>/deliver")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def deliver_order_route(order_id: int):
    def _run():
        order = karigar_service.deliver_order(g.branch_context, order_id)
        return ok({"order": order.to_dict()}, "Order delivered")
    return _handle("deliver karigar order", _run)


@karigars_bp.post("/orders/<int:order_id>/cancel")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def cancel_order_route(order_id: int):
    def _run():
        data = request.get_json(silent=True) or {}
        order = karigar_service.cancel_order(g.branch_context, order_id, data.get("reason"))
        return ok({"order": order.to_dict()}, "Order cancelled")
    return _handle("cancel karigar order", _run)


@karigars_bp.post("/orders/<int:order_id>/payments")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
def karigar_payment_route(order_id: int):
    def _run():
        data = request.get_json(silent=True) or {}
        order = karigar_service.record_karigar_payment(g.branch_context, order_id, data.get("amount"))
        return ok({"order": order.to_dict()}, "Payment recorded")
    return _handle("record karigar payment", _run)
