"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — liveness with database status (load balancers)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.models import db
from app.services.live_feed import feed

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    """Liveness check with dependency status."""
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

    # ── Live feed ────────────────────────────────────────────────────
    checks["live_feed"] = {"status": "ok", "subscribers": feed.subscriber_count()}

    checks["app"] = {
        "name": "Restoration Ops Board",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), 200 if overall else 503
