"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category, keyed by the
acting user when a token is present and by remote IP otherwise.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

BOARD_LIMIT = "120/minute"
JOBS_LIMIT = "60/minute"


def rate_limit_key():
    """Dynamic rate limit key: acting user if authenticated, else remote IP."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Board (views + drag/drop moves):  120/minute
        - Job creation / lookup:             60/minute
        - Health check:                      exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("board")
    if bp:
        limiter.limit(BOARD_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("jobs")
    if bp:
        limiter.limit(JOBS_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — board: %s, jobs: %s", BOARD_LIMIT, JOBS_LIMIT)
