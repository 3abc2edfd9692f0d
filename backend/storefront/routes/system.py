# backend/storefront/routes/system.py
"""
System health endpoint and public URLs of the local object store.
"""

import time
from datetime import timedelta

from flask import Blueprint, abort, current_app, send_from_directory
from werkzeug.security import safe_join

from ..extensions import db
from ..models import Order, Permission, Role, User
from ..services import order_service
from storefront.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        order_count = db.session.query(Order).count()
        role_count = db.session.query(Role).count()
        permission_count = db.session.query(Permission).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "orders": order_count,
                "roles": role_count,
                "permissions": permission_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_incomplete_orders() -> dict:
    """Interrupted checkouts waiting for the sweep make the system degraded."""
    try:
        grace = current_app.config["INCOMPLETE_ORDER_GRACE_MINUTES"]
        orphans = order_service.find_incomplete_orders(older_than=timedelta(minutes=grace))
    except Exception:
        current_app.logger.exception("Incomplete order check failed")
        return {"status": "unhealthy", "error": "Order check error"}

    if orphans:
        return {
            "status": "degraded",
            "warning": f"{len(orphans)} incomplete order(s); run 'flask orders sweep-incomplete'",
        }
    return {"status": "healthy"}


@system_bp.get("/api/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    orders_health = (
        check_incomplete_orders() if database_health["status"] == "healthy"
        else {"status": "unhealthy", "error": "Database unavailable"}
    )

    all_checks = [database_health, orders_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "orders": orders_health,
        }
    }, http_status


@system_bp.get("/uploads/<bucket>/<path:key>")
def uploaded_file(bucket: str, key: str):
    """Serve objects stored by LocalObjectStore."""
    bucket_dir = safe_join(current_app.config["UPLOAD_FOLDER"], bucket)
    if not bucket_dir:
        abort(404)
    return send_from_directory(bucket_dir, key)
