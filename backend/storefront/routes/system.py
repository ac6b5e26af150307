# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity, payment method configuration and the
notification queue.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Order, Product
from ..services.payment_service import get_payment_service
from ..services.notification_service import get_dispatcher
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "orders": order_count,
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


def check_payments_health() -> dict:
    """Static configuration check only; gateways are never called from here."""
    service = get_payment_service()
    available = service.available_methods()
    unavailable = [m for m in service.supported_methods() if m not in available]
    if not available:
        return {"status": "unhealthy", "error": "No payment method is available"}
    if unavailable:
        return {
            "status": "degraded",
            "warning": f"Not configured: {', '.join(unavailable)}",
            "details": {"available": available},
        }
    return {"status": "healthy", "details": {"available": available}}


def check_notifications_health() -> dict:
    dispatcher = get_dispatcher()
    return {
        "status": "healthy",
        "details": {
            "enabled": dispatcher.enabled,
            "queued": dispatcher.queued(),
        }
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "payments": check_payments_health(),
        "notifications": check_notifications_health(),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
