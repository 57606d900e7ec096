"""
Startup diagnostics — runs once when the Flask app starts.

Checks database and Redis reachability and logs a summary banner.
"""

import logging
import sys

import redis as redis_lib
from flask import Flask
from sqlalchemy import inspect as sa_inspect

from packerp.models import db

logger = logging.getLogger(__name__)


def check_redis(redis_url: str) -> str:
    """'ok', 'not configured' or 'unreachable'."""
    if not redis_url or not redis_url.startswith("redis"):
        return "not configured"
    try:
        redis_lib.from_url(redis_url, socket_timeout=2).ping()
        return "ok"
    except redis_lib.RedisError:
        return "unreachable"


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup."""
    if app.config.get("TESTING"):
        return

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        try:
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except Exception:
            table_count = "?"

        redis_status = check_redis(app.config.get("REDIS_URL", ""))
        if redis_status == "unreachable":
            issues.append("Redis unreachable — rate limiter storage unavailable")

        auth_enabled = str(app.config.get("API_AUTH_ENABLED", "false")).lower() == "true"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  PackERP Manufacturing Backend — Startup Diagnostics         ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Redis       : {redis_status:<46s}║
║  Auth        : {'ENABLED' if auth_enabled else 'DISABLED':<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("All startup checks passed")
