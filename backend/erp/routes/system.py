# backend/erp/routes/system.py
"""
System health endpoint.

Liveness plus a database ping, for load balancers and deployment checks.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import StockRow
from erp.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial query and a stock row count.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        stock_rows = db.session.query(StockRow).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"stock_rows": stock_rows},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    overall = "healthy" if database["status"] == "healthy" else "unhealthy"
    body = {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return body, (200 if overall == "healthy" else 503)
