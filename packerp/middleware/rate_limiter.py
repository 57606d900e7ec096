"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in packerp/__init__.py with no default limits; this module applies
granular limits per route category and HTTP method, keyed by organization
when the route carries one.

Usage:
    from packerp.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]
READ_METHODS = ["GET"]

_API_BLUEPRINTS = ("workflow_automation", "workflow", "inventory", "scheduler", "audit")


def organization_rate_limit_key() -> str:
    """organization_id from the URL if present, else remote IP."""
    org_id = (request.view_args or {}).get("organization_id")
    if org_id:
        return f"org:{org_id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Mutating requests (POST/PUT/PATCH/DELETE):  60/minute
        - Reads (GET):                                200/minute
        - Health:                                     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    for bp_name in _API_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=organization_rate_limit_key,
                          methods=WRITE_METHODS)(bp)
            limiter.limit(READ_LIMIT, key_func=organization_rate_limit_key,
                          methods=READ_METHODS)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: write %s, read %s", WRITE_LIMIT, READ_LIMIT)
