"""
Editing Process Engine
Flask Application Factory.

Usage:
    from editflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate

from editflow.config import config
from editflow.integrations import init_collaborators
from editflow.middleware.logging_config import configure_logging
from editflow.middleware.timing import init_request_timing
from editflow.models import db
from editflow.utils.errors import register_error_handlers

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
    config_class = config[config_name]
    # ProductionConfig validates its environment on instantiation
    app.config.from_object(config_class() if config_name == "production" else config_class)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── External collaborators (document store, directory, events) ───────
    init_collaborators(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from editflow.models import draft as _draft_models      # noqa: F401
    from editflow.models import editing as _editing_models  # noqa: F401
    from editflow.models import event as _event_models      # noqa: F401
    from editflow.models import module as _module_models    # noqa: F401
    from editflow.models import team as _team_models        # noqa: F401

    # ── Auto-create tables outside production (migrations own prod) ──────
    if config_name != "production":
        with app.app_context():
            if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and \
                    ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
            app.logger.debug("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from editflow.blueprints.draft_bp import draft_bp
    from editflow.blueprints.health_bp import health_bp
    from editflow.blueprints.module_bp import module_bp
    from editflow.blueprints.process_bp import process_bp

    app.register_blueprint(process_bp)
    app.register_blueprint(draft_bp)
    app.register_blueprint(module_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    return app
