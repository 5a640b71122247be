# backend/cashbook/__init__.py
from __future__ import annotations

from flask import Flask

from .config import Config
from .events import EventBus
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Jobs register themselves on import; subscribers fan report events out to them
    from .jobs import job_queue
    from .jobs.report_jobs import register_report_subscribers

    job_queue.init_app(app)
    event_bus = EventBus(app)
    register_report_subscribers(event_bus, job_queue)

    # Register blueprints
    from .routes.reports import reports_bp
    from .routes.transfers import transfers_bp, money_accounts_bp

    app.register_blueprint(reports_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(money_accounts_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
