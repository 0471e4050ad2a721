# backend/jewelerp/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Branch, User
from ..services import sync_service
from ..services.branch_service import build_branch_context
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        user_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"branches": branch_count, "users": user_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_sync_health() -> dict:
    """
    Degraded, not unhealthy, when sync is failing: the shop keeps selling
    offline and the queue drains once the cloud is back.
    """
    try:
        status = sync_service.get_sync_status(build_branch_context())
    except Exception:
        current_app.logger.exception("Sync health check failed")
        return {"status": "unhealthy", "error": "Sync status unavailable"}

    if not status["cloud_configured"]:
        return {"status": "healthy", "mode": "local-only"}
    degraded = bool(status["last_sync_error"]) or status["failed_changes_count"] > 0
    return {
        "status": "degraded" if degraded else "healthy",
        "pending_changes": status["pending_changes_count"],
        "failed_changes": status["failed_changes_count"],
        "last_sync_at": status["last_sync_at"],
        "last_sync_error": status["last_sync_error"],
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable or sync bookkeeping broken
    """
    start_time = time.time()

    database_health = check_database_health()
    sync_health = check_sync_health() if database_health["status"] == "healthy" else {"status": "unhealthy"}

    all_checks = [database_health, sync_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sync": sync_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info."""
    return {
        "api_version": "1.0.0",
        "environment": "production" if not current_app.debug else "development",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
