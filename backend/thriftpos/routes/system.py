# backend/thriftpos/routes/system.py
"""
System health endpoint.

Checks the database and the configured card processor so a terminal can
tell "server down" from "card rails down".
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Terminal
from ..services import payment_processor
from thriftpos.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        terminal_count = db.session.query(Terminal).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "terminals": terminal_count,
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


def check_payment_processor_health() -> dict:
    try:
        processor = payment_processor.get_processor()
        return {
            "status": "healthy",
            "details": {
                "default": processor.name,
                "available": payment_processor.get_available_processors(),
            }
        }
    except Exception:
        current_app.logger.exception("Payment processor health check failed")
        # Cash, check, gift card and store credit still work
        return {
            "status": "degraded",
            "error": "Default payment processor not configured",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    processor_health = check_payment_processor_health()

    all_checks = [database_health, processor_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "payment_processor": processor_health,
        }
    }

    return response, http_status
