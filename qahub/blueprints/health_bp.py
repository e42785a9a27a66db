"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — process is up, no I/O
    GET /api/v1/health/live   — database round trip + core tables present

Both skip JWT auth and rate limiting.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from qahub.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

# Tables without which no API call can succeed
CORE_TABLES = ("projects", "project_members", "test_cases", "bugs", "tasks", "notifications")


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Report database reachability and schema presence; 503 when degraded."""
    checks = {}

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        }
        present = set(inspect(db.engine).get_table_names())
        missing = [name for name in CORE_TABLES if name not in present]
        checks["schema"] = (
            {"status": "missing_tables", "missing": missing} if missing else {"status": "ok"}
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        logger.error("Health check: database failed: %s", exc)

    healthy = all(c.get("status") == "ok" for c in checks.values())
    checks["app"] = {"name": "QA Hub", "testing": current_app.testing}
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
