"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready    — simple 200 for load balancers
    GET /api/v1/health/live     — detailed health (DB, deferred tasks)
    GET /api/v1/health/db-diag  — row counts of the lifecycle tables
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.models import db
from app.services.task_runner import task_runner

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

_TABLES = ("demandes", "demande_documents", "demande_history", "notifications")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness check — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Deferred tasks ───────────────────────────────────────────────
    checks["deferred_tasks"] = {
        "status": "ok",
        "pending": [t.to_dict() for t in task_runner.pending()],
    }

    # ── Mail transport ───────────────────────────────────────────────
    checks["mail"] = {
        "status": "ok" if current_app.config.get("MAIL_SERVER") else "log_only",
        "notifications_enabled": current_app.config.get("NOTIFICATIONS_ENABLED", True),
    }

    checks["app"] = {
        "name": "Demande Lifecycle Service",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code


@health_bp.route("/db-diag", methods=["GET"])
def db_diagnostic():
    """Check that the lifecycle tables exist and are queryable."""
    results = {}
    for tbl in _TABLES:
        try:
            row = db.session.execute(db.text(f"SELECT COUNT(*) FROM {tbl}")).scalar()
            results[tbl] = {"status": "ok", "count": row}
        except Exception as exc:
            db.session.rollback()
            results[tbl] = {"status": "error", "detail": str(exc)}
    return jsonify(results), 200
