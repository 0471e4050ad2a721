# Overview: Flask API routes for cloud sync: status, manual trigger, toggle, interval, queue inspection and maintenance.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..responses import fail, ok, server_error
from ..services import sync_service
from ..services.cloud_store import CloudStoreError
from ..services.sync_service import SyncError


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@require_auth
def sync_status_route():
    return ok(sync_service.get_sync_status(g.branch_context))


@sync_bp.post("/trigger")
@require_auth
def trigger_sync_route():
    """Run one push/pull cycle now. Sync failures come back as success: false with the reason."""
    try:
        result = sync_service.trigger_manual_sync(g.branch_context)
        data = {"pushed": result["pushed"], "pulled": result["pulled"]}
        if result["success"]:
            return ok(data, result["message"])
        return fail(result["message"], 409 if result["message"] == "Sync already in progress" else 400, data)
    except Exception:
        current_app.logger.exception("Manual sync failed")
        return server_error()


@sync_bp.post("/toggle")
@require_auth
@require_role(ROLE_ADMIN)
def toggle_sync_route():
    data = request.get_json(silent=True) or {}
    if "enabled" not in data:
        return fail("enabled required", 400)
    status = sync_service.toggle_sync(g.branch_context, bool(data["enabled"]))
    return ok(status.to_dict(), f"Sync {'enabled' if status.sync_enabled else 'disabled'}")


@sync_bp.post("/interval")
@require_auth
@require_role(ROLE_ADMIN)
def update_interval_route():
    try:
        data = request.get_json(silent=True) or {}
        status = sync_service.update_interval(g.branch_context, data.get("minutes"))
        return ok(status.to_dict(), f"Sync interval set to {status.sync_interval_minutes} minutes")
    except SyncError as e:
        return fail(str(e), 400)


@sync_bp.get("/queue")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_queue_route():
    rows = sync_service.list_queue(
        g.branch_context,
        status=request.args.get("status"),
        limit=request.args.get("limit", default=100, type=int),
    )
    return ok({"items": [r.to_dict() for r in rows], "count": len(rows)})


@sync_bp.post("/retry-failed")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def retry_failed_route():
    count = sync_service.retry_failed(g.branch_context)
    return ok({"reset": count}, f"{count} failed changes queued for retry")


@sync_bp.post("/cleanup")
@require_auth
@require_role(ROLE_ADMIN)
def cleanup_route():
    try:
        data = request.get_json(silent=True) or {}
        days = data.get("days_to_keep", sync_service.DEFAULT_RETENTION_DAYS)
        deleted = sync_service.cleanup(g.branch_context, int(days))
        return ok({"deleted": deleted}, f"Removed {deleted} synced changes")
    except SyncError as e:
        return fail(str(e), 400)
    except (ValueError, TypeError):
        return fail("days_to_keep must be a whole number", 400)


@sync_bp.post("/test-connection")
@require_auth
@require_role(ROLE_ADMIN)
def test_connection_route():
    store = sync_service.get_cloud_store()
    if store is None:
        return fail("Cloud sync is not configured", 400)
    try:
        result = store.test_connection()
    except CloudStoreError as e:
        return fail(str(e), 502)
    if result.get("success"):
        return ok(message=result.get("message", "Connected"))
    return fail(result.get("message", "Connection failed"), 502)
