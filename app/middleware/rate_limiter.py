"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in app/__init__.py with no default limits; this module
attaches limits per route category, keyed by acting user when the gateway
supplied one and by remote IP otherwise.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "300/minute"


def actor_rate_limit_key():
    """Rate limit key: actor id if known, else remote IP."""
    actor = getattr(g, "actor", None) or {}
    if actor.get("id") is not None:
        return f"actor:{actor['id']}"
    return flask_request.remote_addr or "unknown"


def _is_write() -> bool:
    return flask_request.method in ("POST", "PUT", "PATCH", "DELETE")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per actor / remote IP):
        - Mutations (POST/PUT/DELETE):  60/minute
        - Reads (GET):                  300/minute
        - Health check:                 exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("company_orders", "workspace_management"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=actor_rate_limit_key, exempt_when=lambda: not _is_write())(bp)
            limiter.limit(READ_LIMIT, key_func=actor_rate_limit_key, exempt_when=_is_write)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — write: %s, read: %s", WRITE_LIMIT, READ_LIMIT)
