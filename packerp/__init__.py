"""
PackERP Manufacturing Backend
Flask Application Factory.

Usage:
    from packerp import create_app
    app = create_app()           # APP_ENV or "development"
    app = create_app("testing")
"""

import importlib
import logging
import os

import click
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from packerp.auth import init_auth
from packerp.config import config
from packerp.middleware.diagnostics import run_startup_diagnostics
from packerp.middleware.logging_config import configure_logging
from packerp.middleware.rate_limiter import init_rate_limits
from packerp.middleware.security_headers import init_security_headers
from packerp.middleware.timing import init_request_timing
from packerp.models import db

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections.

    Also hands transaction control to SQLAlchemy so SAVEPOINTs work
    (pysqlite otherwise defers BEGIN until the first DML statement).
    """
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        dbapi_conn.isolation_level = None


@_sa_event.listens_for(_sa_engine.Engine, "begin")
def _sqlite_begin(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Logging (must be first) ──────────────────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_auth(app)
    init_security_headers(app)
    init_request_timing(app)

    app.config["MAX_CONTENT_LENGTH"] = app.config.get("MAX_CONTENT_LENGTH") or 2 * 1024 * 1024

    # ── Models (registered on db.metadata for create_all / Alembic) ──────
    from packerp.models import audit as _audit_models            # noqa: F401
    from packerp.models import inventory as _inventory_models    # noqa: F401
    from packerp.models import organization as _org_models       # noqa: F401
    from packerp.models import quality as _quality_models        # noqa: F401
    from packerp.models import scheduling as _scheduling_models  # noqa: F401
    from packerp.models import workflow as _workflow_models      # noqa: F401

    if config_name != "production":
        with app.app_context():
            uri = app.config["SQLALCHEMY_DATABASE_URI"]
            if uri.startswith("sqlite:///") and ":memory:" not in uri:
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from packerp.blueprints.audit_bp import audit_bp
    from packerp.blueprints.health_bp import health_bp
    from packerp.blueprints.inventory_bp import inventory_bp
    from packerp.blueprints.scheduler_bp import scheduler_bp
    from packerp.blueprints.workflow_automation_bp import workflow_automation_bp
    from packerp.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(workflow_automation_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(scheduler_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)

    # ── Scheduler ────────────────────────────────────────────────────────
    from packerp.services.scheduler_service import SchedulerService

    importlib.import_module("packerp.services.scheduled_jobs")
    SchedulerService.init_app(app)
    if config_name != "production":
        SchedulerService.ensure_jobs_registered()

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run a registered scheduled job once (for cron)."""
        SchedulerService.ensure_jobs_registered()
        result = SchedulerService.run_job(job_name)
        click.echo(f"{job_name}: {result['status']}")
        if result["status"] in ("failed", "error"):
            raise SystemExit(1)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": "Request body too large"}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Rate limit exceeded", "detail": str(e.description)}), 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    run_startup_diagnostics(app)

    return app
