# backend/tradebook/routes/system.py
"""
System health and version endpoints.

Unauthenticated; used by deployment probes.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import DocumentSequence, Item, SessionToken, User
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and that the system was initialized.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        item_count = db.session.query(Item).count()
        sequence_count = db.session.query(DocumentSequence).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }

    elapsed_ms = (time.time() - start_time) * 1000
    status = "healthy" if user_count > 0 and sequence_count > 0 else "degraded"
    result = {
        "status": status,
        "latency_ms": round(elapsed_ms, 2),
        "details": {
            "users": user_count,
            "items": item_count,
            "document_sequences": sequence_count,
            "active_sessions": active_sessions,
        },
    }
    if status == "degraded":
        result["warning"] = "Run `flask system init` to create the admin user and invoice sequences"
    return result


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (not initialized yet)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
