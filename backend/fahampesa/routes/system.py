# backend/fahampesa/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Branch, StaffMember, Subscription
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and the core tables.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        branch_count = db.session.query(Branch).count()
        staff_count = db.session.query(StaffMember).count()
        subscription_count = db.session.query(Subscription).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy" if elapsed_ms < 1000 else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "staff_members": staff_count,
                "subscriptions": subscription_count,
            },
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database connection failed",
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database_health = check_database_health()
    if database_health["status"] == "unhealthy":
        http_status = 503
    else:
        http_status = 200

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
