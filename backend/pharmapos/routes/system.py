# backend/pharmapos/routes/system.py
"""
System health endpoint.

Checks the database and the in-memory cart store so a deployment probe can
tell a broken database from a healthy, idle till.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import CatalogItem, StockEvent
from ..services.cart_service import get_cart_store
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """Check database connectivity with two cheap counts."""
    start_time = time.time()
    try:
        item_count = db.session.query(CatalogItem).count()
        event_count = db.session.query(StockEvent).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "catalog_items": item_count,
                "stock_events": event_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_cart_store_health() -> dict:
    try:
        store = get_cart_store()
        return {"status": "healthy", "details": {"open_carts": len(store)}}
    except Exception:
        current_app.logger.exception("Cart store health check failed")
        return {"status": "unhealthy", "error": "Cart store unavailable"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: all checks healthy
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    cart_health = check_cart_store_health()

    all_checks = [database_health, cart_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "cart_store": cart_health,
        },
    }
    return response, http_status
