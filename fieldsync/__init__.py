"""
fieldsync
Flask Application Factory.

Usage:
    from fieldsync import create_app
    app = create_app()           # defaults to APP_ENV, else "development"
    app = create_app("testing")  # explicit config
"""

import atexit
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from fieldsync.config import config
from fieldsync.core.exceptions import NotFoundError, StoreError, ValidationError
from fieldsync.middleware.logging_config import configure_logging
from fieldsync.middleware.timing import init_request_timing
from fieldsync.models import db
from fieldsync.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-route limits only
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config.get(config_name, config["default"])
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from fieldsync.models import catalog as _catalog_models         # noqa: F401
    from fieldsync.models import scheduling as _scheduling_models   # noqa: F401
    from fieldsync.models import submission as _submission_models   # noqa: F401
    from fieldsync.models import sync as _sync_models               # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from fieldsync.blueprints.catalog_bp import catalog_bp
    from fieldsync.blueprints.health_bp import health_bp
    from fieldsync.blueprints.submission_bp import submission_bp
    from fieldsync.blueprints.sync_bp import sync_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(submission_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(sync_bp)

    _register_error_handlers(app)
    _register_cli(app)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("fieldsync.services.scheduled_jobs")  # registers @register_job handlers
    from fieldsync.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)
    atexit.register(SchedulerService.shutdown)

    return app


def _register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return api_error(E.VALIDATION_CONSTRAINT, str(e), details=e.details)

    @app.errorhandler(NotFoundError)
    def handle_not_found_error(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(StoreError)
    def handle_store_error(e):
        logger.error("Store error on %s %s: %s", request.method, request.path, e)
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return {"error": "Request body too large", "code": E.PAYLOAD_TOO_LARGE}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": E.RATE_LIMITED, "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500


def _register_cli(app):
    @app.cli.command("seed-catalog")
    def seed_catalog_cmd():
        """Seed default salesmen and building types into empty tables."""
        from fieldsync.services.catalog_service import seed_defaults
        added = seed_defaults()
        logger.info("Seeded catalog: %s", added)
        click.echo(f"Seeded {added['salesmen']} salesmen, {added['building_types']} building types")

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run one reconciler job now (coverage_registration, coverage_status, mirror_backfill)."""
        from fieldsync.services.scheduler_service import SchedulerService
        SchedulerService.ensure_jobs_registered()
        result = SchedulerService.run_job(job_name)
        click.echo(f"{job_name}: {result.get('status')} {result.get('result') or result.get('error') or ''}")
        if result.get("status") != "success":
            raise SystemExit(1)
