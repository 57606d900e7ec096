"""
PackERP Manufacturing Backend
API key authentication & role checks.

Provides:
    - API key authentication via X-API-Key header
    - Role-based access control decorator
    - Content-Type enforcement for state-changing requests

Configuration (env vars / app config):
    API_KEYS          — "<key>:<role>,<key>:<role>" where role is admin|editor|viewer
    API_AUTH_ENABLED  — "false" disables auth (development and testing)
"""

import functools
import logging
import os

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)

ROLES = {"admin", "editor", "viewer"}

# admin > editor > viewer
ROLE_HIERARCHY = {
    "admin": {"admin", "editor", "viewer"},
    "editor": {"editor", "viewer"},
    "viewer": {"viewer"},
}

_FALSY = ("false", "0", "no", "off")


def _parse_api_keys() -> dict[str, str]:
    """Parse API_KEYS into {key: role}. Keys without a role default to 'viewer'."""
    raw = os.getenv("API_KEYS") or current_app.config.get("API_KEYS", "")
    keys = {}
    for entry in (raw or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" in entry:
            key, role = entry.rsplit(":", 1)
            role = role.strip().lower()
            if role not in ROLES:
                logger.warning("Unknown role '%s' for API key, defaulting to 'viewer'", role)
                role = "viewer"
            keys[key.strip()] = role
        else:
            keys[entry] = "viewer"
    return keys


def _is_auth_enabled() -> bool:
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in _FALSY
    return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in _FALSY


def current_actor() -> str:
    """Actor string recorded on audit rows for the current request."""
    return getattr(g, "actor", None) or "system"


def require_role(minimum_role: str):
    """
    Decorator: require a minimum role level.

    Usage:
        @bp.route("/stock/reconcile", methods=["POST"])
        @require_role("editor")
        def reconcile(organization_id): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_role = getattr(g, "current_user_role", None)
            if not user_role:
                return jsonify({"error": "Authentication required"}), 401
            if minimum_role not in ROLE_HIERARCHY.get(user_role, set()):
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    user_role, minimum_role, request.path,
                )
                return jsonify({"error": "Insufficient permissions"}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


def _check_content_type():
    """JSON-only bodies on mutating requests (HTML forms cannot send JSON)."""
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests"
            }), 415
    return None


def init_auth(app):
    """Install the API key check on every /api/v1 route except health."""

    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path == "/api/v1/health" or request.path.startswith("/api/v1/health/"):
            return None
        if request.method == "OPTIONS":
            return None

        ct_error = _check_content_type()
        if ct_error:
            return ct_error

        if not _is_auth_enabled():
            g.current_user_role = "admin"
            g.actor = "dev-mode"
            return None

        api_key = request.headers.get("X-API-Key", "").strip()
        if not api_key:
            return jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401

        api_keys = _parse_api_keys()
        if not api_keys:
            logger.error("API_KEYS is not configured but API_AUTH_ENABLED=true")
            return jsonify({"error": "Server authentication not configured"}), 500

        role = api_keys.get(api_key)
        if role is None:
            logger.warning("Invalid API key attempt: %s...", api_key[:8])
            return jsonify({"error": "Invalid API key"}), 401

        g.current_user_role = role
        g.actor = f"{role}:{api_key[:8]}"
        return None

    with app.app_context():
        logger.info("Auth middleware installed (enabled=%s)", _is_auth_enabled())
