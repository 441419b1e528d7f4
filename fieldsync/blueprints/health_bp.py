"""
Health check blueprint.

Endpoints:
    GET /api/health  — liveness with database check
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from fieldsync.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api")


@health_bp.route("/health", methods=["GET"])
def health():
    """Liveness check with database status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    scheduler = current_app.extensions.get("scheduler")
    running = bool(scheduler and scheduler.is_running())
    checks["scheduler"] = {"status": "running" if running else "stopped"}

    return jsonify({
        "status": "ok" if overall else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": current_app.config.get("APP_VERSION", "1.0.0"),
        "checks": checks,
    }), 200 if overall else 503
