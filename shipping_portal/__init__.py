"""Shipping portal Flask application factory."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Tuple

import click
from flask import Flask, current_app, g, jsonify, redirect, render_template, request, url_for
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect

from .config import AppConfig, load_config
from .database import create_db_engine, ensure_database_schema
from .errors import NotFoundError, PersistenceError, ValidationError
from .identity import login_manager
from .quote import country_choices
from .realtime import get_change_feed, init_change_feed
from .repositories import (
    NotificationLogRepository,
    ProfileRepository,
    SavedQuoteRepository,
    ShipmentRepository,
)
from .services.notifications import DEFAULT_BATCH_SIZE, Notifier, format_long_date
from .tracking import STATUS_DISPLAY, ShipmentStatus, progress_percent, status_display

csrf = CSRFProtect()
limiter = Limiter(key_func=get_remote_address)

_REPOSITORY_KEYS = ("quote_repo", "shipment_repo", "notification_repo", "profile_repo", "notifier")


def _wants_json() -> bool:
    return request.path.endswith(".json") or request.path.startswith("/quotes/api")


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError) -> Tuple[Any, int]:
        if _wants_json():
            return jsonify({"errors": exc.errors}), 400
        return render_template("errors.html", code=400, messages=exc.messages), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError) -> Tuple[Any, int]:
        if _wants_json():
            return jsonify({"error": "not_found"}), 404
        return (
            render_template("errors.html", code=404, messages=["We could not find that page."]),
            404,
        )

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError) -> Tuple[Any, int]:
        if _wants_json():
            return jsonify({"error": str(exc)}), 503
        return render_template("errors.html", code=503, messages=[str(exc)]), 503

    @app.errorhandler(401)
    def handle_unauthorized(_: Exception) -> Tuple[Any, int]:
        return (
            render_template("errors.html", code=401, messages=["Please sign in to continue."]),
            401,
        )

    @app.errorhandler(403)
    def handle_forbidden(_: Exception) -> Tuple[Any, int]:
        return (
            render_template(
                "errors.html", code=403, messages=["You do not have access to this page."]
            ),
            403,
        )


def create_app(config: AppConfig | None = None) -> Flask:
    """Build and configure the shipping portal application.

    Args:
        config: Optional :class:`AppConfig` override. When ``None`` the
            settings are loaded from environment variables by
            :func:`load_config`.

    Returns:
        Flask: Initialised application. The SQLAlchemy engine is stored on
        ``app.config['DB_ENGINE']`` for the repositories and the change feed
        on ``app.extensions['change_feed']``.
    """

    app = Flask(__name__, instance_relative_config=True)
    app_config = config or load_config()
    Path(app.instance_path).mkdir(parents=True, exist_ok=True)
    app.config.update(app_config.to_flask_config())

    engine = create_db_engine(app_config.database_url)
    ensure_database_schema(engine)
    app.config["DB_ENGINE"] = engine

    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)
    init_change_feed(app)

    app.add_template_filter(format_long_date, "long_date")

    @app.context_processor
    def inject_reference_data() -> dict:
        return {
            "countries": country_choices(),
            "statuses": list(ShipmentStatus),
            "status_table": STATUS_DISPLAY,
            "status_display": status_display,
            "progress_percent": progress_percent,
        }

    from .blueprints.admin import admin_bp
    from .blueprints.booking import booking_bp
    from .blueprints.quotes import quotes_bp
    from .blueprints.tracking import tracking_bp

    app.register_blueprint(quotes_bp, url_prefix="/quotes")
    app.register_blueprint(booking_bp, url_prefix="/book")
    app.register_blueprint(tracking_bp)
    app.register_blueprint(admin_bp, url_prefix="/admin")

    _register_error_handlers(app)

    @app.get("/")
    def index():
        return redirect(url_for("quotes.calculator"))

    @app.teardown_appcontext
    def teardown(_: Any) -> None:
        for key in _REPOSITORY_KEYS:
            g.pop(key, None)

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Create or migrate the database tables."""

        ensure_database_schema(engine)
        click.echo("Database initialized.")

    @app.cli.command("process-notifications")
    @click.option("--limit", default=DEFAULT_BATCH_SIZE, show_default=True)
    def process_notifications_command(limit: int) -> None:
        """Send queued shipment status emails."""

        result = get_notifier().process_pending(limit)
        if not result.processed:
            click.echo("No pending notifications.")
            return
        click.echo(f"Processed {result.processed}: {len(result.sent)} sent, {len(result.failed)} failed.")

    return app


def get_saved_quote_repository() -> SavedQuoteRepository:
    """Return a repository cached on :mod:`flask.g` for the active context."""

    if "quote_repo" not in g:
        g.quote_repo = SavedQuoteRepository(current_app.config["DB_ENGINE"])
    return g.quote_repo


def get_shipment_repository() -> ShipmentRepository:
    if "shipment_repo" not in g:
        g.shipment_repo = ShipmentRepository(current_app.config["DB_ENGINE"])
    return g.shipment_repo


def get_notification_repository() -> NotificationLogRepository:
    if "notification_repo" not in g:
        g.notification_repo = NotificationLogRepository(current_app.config["DB_ENGINE"])
    return g.notification_repo


def get_profile_repository() -> ProfileRepository:
    if "profile_repo" not in g:
        g.profile_repo = ProfileRepository(current_app.config["DB_ENGINE"])
    return g.profile_repo


def get_notifier() -> Notifier:
    if "notifier" not in g:
        g.notifier = Notifier(get_notification_repository(), get_shipment_repository())
    return g.notifier


__all__ = [
    "AppConfig",
    "create_app",
    "csrf",
    "get_change_feed",
    "get_notification_repository",
    "get_notifier",
    "get_profile_repository",
    "get_saved_quote_repository",
    "get_shipment_repository",
    "limiter",
]
