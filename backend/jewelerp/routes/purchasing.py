# Overview: Flask API routes for vendors and vendor purchase orders.

from decimal import InvalidOperation

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..responses import fail, ok, server_error
from ..services import purchase_order_service, vendor_service
from ..services.purchase_order_service import PurchaseOrderError, PurchaseOrderNotFoundError
from ..services.vendor_service import VendorError, VendorNotFoundError
from ..time_utils import parse_iso_datetime
from ..validation import ConflictError, ValidationError


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")
purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def _handle(action: str, fn):
    try:
        return fn()
    except (VendorNotFoundError, PurchaseOrderNotFoundError) as e:
        return fail(str(e), 404)
    except (VendorError, PurchaseOrderError) as e:
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


# =============================================================================
# Vendors
# =============================================================================

@vendors_bp.get("/")
@require_auth
def list_vendors_route():
    result = vendor_service.list_vendors(
        search=request.args.get("search"),
        vendor_type=request.args.get("vendor_type"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return ok(result)


@vendors_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_vendor_route():
    def _run():
        vendor = vendor_service.create_vendor(g.branch_context, request.get_json(silent=True) or {})
        return ok({"vendor": vendor.to_dict()}, "Vendor created successfully", 201)
    return _handle("create vendor", _run)


@vendors_bp.get("/<int:vendor_id>")
@require_auth
def get_vendor_route(vendor_id: int):
    return _handle("load vendor", lambda: ok({"vendor": vendor_service.get_vendor(vendor_id).to_dict()}))


@vendors_bp.put("/<int:vendor_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_vendor_route(vendor_id: int):
    def _run():
        vendor = vendor_service.update_vendor(g.branch_context, vendor_id, request.get_json(silent=True) or {})
        return ok({"vendor": vendor.to_dict()}, "Vendor updated successfully")
    return _handle("update vendor", _run)


@vendors_bp.get("/<int:vendor_id>/balance")
@require_auth
def vendor_balance_route(vendor_id: int):
    return _handle("load vendor balance", lambda: ok(vendor_service.get_vendor_balance(vendor_id)))


# =============================================================================
# Purchase orders
# =============================================================================

@purchase_orders_bp.get("/")
@require_auth
def list_purchase_orders_route():
    def _run():
        filters = {
            "status": request.args.get("status"),
            "vendor_id": request.args.get("vendor_id", type=int),
            "from_date": parse_iso_datetime(request.args.get("from_date")),
            "to_date": parse_iso_datetime(request.args.get("to_date")),
        }
        return ok(purchase_order_service.list_purchase_orders(
            filters,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        ))
    return _handle("list purchase orders", _run)


@purchase_orders_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_purchase_order_route():
    def _run():
        po = purchase_order_service.create_purchase_order(g.branch_context, request.get_json(silent=True) or {})
        return ok({"purchase_order": po.to_dict()}, "Purchase order created successfully", 201)
    return _handle("create purchase order", _run)


@purchase_orders_bp.get("/stats")
@require_auth
def purchase_order_stats_route():
    return ok(purchase_order_service.get_purchase_order_stats())


@purchase_orders_bp.get("/<int:po_id>")
@require_auth
def get_purchase_order_route(po_id: int):
    return _handle(
        "load purchase order",
        lambda: ok({"purchase_order": purchase_order_service.get_purchase_order(po_id).to_dict()}),
    )


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def receive_purchase_order_route(po_id: int):
    def _run():
        po = purchase_order_service.receive_purchase_order(
            g.branch_context, po_id, request.get_json(silent=True) or {}
        )
        return ok({"purchase_order": po.to_dict()}, "Purchase order received successfully")
    return _handle("receive purchase order", _run)


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def cancel_purchase_order_route(po_id: int):
    def _run():
        data = request.get_json(silent=True) or {}
        po = purchase_order_service.cancel_purchase_order(g.branch_context, po_id, data.get("reason"))
        return ok({"purchase_order": po.to_dict()}, "Purchase order cancelled")
    return _handle("cancel purchase order", _run)
