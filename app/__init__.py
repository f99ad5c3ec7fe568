"""
IP Docket
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_migrate import Migrate

from app.config import config
from app.core.exceptions import (
    ConflictError,
    FeeDataError,
    NotFoundError,
    RuleConfigurationError,
    StaleTaskError,
    TransitionError,
    ValidationError,
)
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.timing import init_request_timing
from app.middleware.diagnostics import run_startup_diagnostics
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


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
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import reference as _reference_models   # noqa: F401
    from app.models import matter as _matter_models         # noqa: F401
    from app.models import task as _task_models             # noqa: F401
    from app.models import scheduling as _scheduling_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "testing":
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.renewal_bp import renewal_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(renewal_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("run-job")
    @click.argument("name")
    def run_job_cmd(name):
        """Run one registered scheduled job (expired_matter_scan, renewal_grace_scan)."""
        from app.services.scheduler_service import SchedulerService

        SchedulerService.ensure_jobs_registered()
        result = SchedulerService.run_job(name)
        click.echo(f"{name}: {result['status']} {result.get('result') or result.get('error') or ''}")
        if result["status"] in ("failed", "error"):
            raise SystemExit(1)

    @app.cli.command("seed-reference-data")
    def seed_reference_data_cmd():
        """Seed event names and country renewal parameters."""
        from app.services.reference_data import seed_reference_data

        counts = seed_reference_data()
        db.session.commit()
        logger.info("Seeded reference data: %s", counts)

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("app.services.scheduled_jobs")  # registers @register_job handlers
    from app.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)

    return app


def _register_error_handlers(app):
    """Map the core exception hierarchy to JSON error responses.

    Every handler rolls the request's transaction back first, so a failed
    operation leaves no partial state behind.
    """

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ValidationError)
    def _validation(exc):
        db.session.rollback()
        return api_error(E.VALIDATION_CONSTRAINT, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(exc),
                         details={"resource": exc.resource, "field": exc.field})

    @app.errorhandler(StaleTaskError)
    def _stale(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_STALE, str(exc), details=exc.context)

    @app.errorhandler(TransitionError)
    def _transition(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_STATE, str(exc), details=exc.context)

    @app.errorhandler(RuleConfigurationError)
    def _rule_config(exc):
        db.session.rollback()
        logger.error("Rule configuration error: %s", exc, extra=exc.context)
        return api_error(E.RULE_CONFIG, str(exc), details=exc.context)

    @app.errorhandler(FeeDataError)
    def _fee_data(exc):
        db.session.rollback()
        details = dict(exc.context)
        if exc.field:
            details["field"] = exc.field
        return api_error(E.FEE_DATA, str(exc), details=details)

    @app.errorhandler(404)
    def _route_not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500
