# backend/stockledger/routes/system.py
"""
System health endpoint.

Reports database reachability and which collaborators the app is wired to.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..services.attachment_service import NullBlobStore, get_blob_store
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_attachment_storage() -> dict:
    # Degraded, not unhealthy: receipts still work without signed URLs
    if isinstance(get_blob_store(), NullBlobStore):
        return {"status": "degraded", "warning": "Attachment storage not configured"}
    return {"status": "healthy", "bucket": current_app.config.get("ATTACHMENT_BUCKET")}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database_health = check_database_health()
    storage_health = check_attachment_storage()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif storage_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
            "attachment_storage": storage_health,
        },
    }, http_status
