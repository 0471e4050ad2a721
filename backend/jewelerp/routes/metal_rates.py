# Overview: Flask API routes for daily metal rates.

from decimal import InvalidOperation

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..responses import fail, ok, server_error
from ..services import metal_rate_service
from ..services.metal_rate_service import MetalRateError
from ..time_utils import parse_iso_datetime


metal_rates_bp = Blueprint("metal_rates", __name__, url_prefix="/api/metal-rates")


@metal_rates_bp.get("/latest")
@require_auth
def latest_rates_route():
    rates = metal_rate_service.get_latest_rates()
    return ok({"rates": [r.to_dict() for r in rates]})


@metal_rates_bp.get("/history")
@require_auth
def historical_rates_route():
    """Query: start, end (ISO-8601), optional metal_type_id."""
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
        if not start or not end:
            return fail("start and end required", 400)
        rates = metal_rate_service.get_historical_rates(
            start, end, request.args.get("metal_type_id", type=int)
        )
        return ok({"rates": [r.to_dict() for r in rates]})

    except ValueError:
        return fail("start and end must be ISO-8601 datetimes", 400)
    except MetalRateError as e:
        return fail(str(e), 400)


@metal_rates_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_rates_route():
    """Body: {"rates": {"<metal_type_id>": <rate_per_gram>}, "source": "manual"}"""
    try:
        data = request.get_json(silent=True) or {}
        rates = metal_rate_service.update_metal_rates(
            g.branch_context, data.get("rates") or {}, data.get("source") or "manual"
        )
        return ok({"rates": [r.to_dict() for r in rates]}, "Metal rates updated", 201)

    except MetalRateError as e:
        return fail(str(e), 400)
    except InvalidOperation:
        return fail("Invalid numeric value", 400)
    except Exception:
        current_app.logger.exception("Failed to update metal rates")
        return server_error()
