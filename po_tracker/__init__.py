"""
PO Tracker
Flask Application Factory.

Usage:
    from po_tracker import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from po_tracker.config import config
from po_tracker.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from po_tracker.middleware.diagnostics import run_startup_diagnostics
from po_tracker.middleware.jwt_auth import init_jwt_middleware
from po_tracker.middleware.logging_config import configure_logging
from po_tracker.middleware.rate_limiter import init_rate_limits
from po_tracker.middleware.security_headers import init_security_headers
from po_tracker.middleware.timing import init_request_timing
from po_tracker.models import db
from po_tracker.models.audit import AuditImmutableError
from po_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _register_error_handlers(app):
    """Map service exceptions and HTTP errors to the standard JSON envelope."""

    @app.errorhandler(ValidationError)
    def _handle_validation(error):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ConflictError)
    def _handle_conflict(error):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(AuthenticationError)
    def _handle_unauthenticated(error):
        return api_error(E.UNAUTHENTICATED, str(error))

    @app.errorhandler(PermissionDeniedError)
    def _handle_forbidden(error):
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(StorageError)
    def _handle_storage(error):
        return api_error(E.DATABASE, str(error))

    @app.errorhandler(IntegrityError)
    def _handle_integrity(error):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, "Conflicting record", status=409)

    @app.errorhandler(SQLAlchemyError)
    def _handle_db(error):
        db.session.rollback()
        logger.exception("Unhandled database error on %s %s", request.method, request.path)
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(AuditImmutableError)
    def _handle_audit_immutable(error):
        db.session.rollback()
        logger.error("Blocked audit mutation: %s", error)
        return api_error(E.INTERNAL, "Audit records are append-only", status=500)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return api_error(E.VALIDATION_INVALID, f"File too large (max {limit_mb} MB)", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                         details={"retry_after": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


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
    config_cls = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

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

    # ── Middleware ───────────────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_security_headers(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from po_tracker.models import audit as _audit_models            # noqa: F401
    from po_tracker.models import auth as _auth_models              # noqa: F401
    from po_tracker.models import po_request as _po_request_models  # noqa: F401
    from po_tracker.models import workflow as _workflow_models      # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from po_tracker.blueprints.admin_bp import admin_bp
    from po_tracker.blueprints.auth_bp import auth_bp
    from po_tracker.blueprints.health_bp import health_bp
    from po_tracker.blueprints.po_request_bp import po_request_bp
    from po_tracker.blueprints.step_bp import step_bp
    from po_tracker.blueprints.tree_bp import tree_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(tree_bp)
    app.register_blueprint(step_bp)
    app.register_blueprint(po_request_bp)

    _register_error_handlers(app)

    # ── Auto-create tables and first admin ───────────────────────────────
    if not app.config.get("TESTING"):
        from po_tracker.services.user_service import ensure_default_admin

        db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
        if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
            os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]) or ".", exist_ok=True)

        with app.app_context():
            db.create_all()
            ensure_default_admin()

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-admin")
    def create_admin_cmd():
        """Provision the default administrator if no users exist."""
        from po_tracker.services.user_service import ensure_default_admin

        user = ensure_default_admin()
        if user is None:
            logger.info("Users already exist, nothing to do.")

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
