# Overview: Flask API routes for customer master data.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..responses import fail, ok, server_error
from ..services import customer_service
from ..services.customer_service import CustomerNotFoundError
from ..validation import ConflictError, ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/")
@require_auth
def search_customers_route():
    result = customer_service.search_customers(
        request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return ok(result)


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return ok({"customer": customer_service.get_customer(customer_id).to_dict()})
    except CustomerNotFoundError as e:
        return fail(str(e), 404)


@customers_bp.post("/")
@require_auth
def create_customer_route():
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.create_customer(g.branch_context, data)
        return ok({"customer": customer.to_dict()}, "Customer created", 201)

    except ConflictError as e:
        return fail(str(e), 409)
    except ValidationError as e:
        return fail(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return server_error()


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.update_customer(g.branch_context, customer_id, data)
        return ok({"customer": customer.to_dict()}, "Customer updated")

    except CustomerNotFoundError as e:
        return fail(str(e), 404)
    except ConflictError as e:
        return fail(str(e), 409)
    except ValidationError as e:
        return fail(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return server_error()
