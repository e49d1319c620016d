# backend/marketplace/__init__.py
import logging

from flask import Flask, abort, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .config import Config, DatabaseUnavailable, validate_config
from .errors import Internal, MarketplaceError
from .extensions import db, migrate

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _engine_options(app: Flask) -> None:
    """Pool settings for server databases; SQLite manages its own."""
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite"):
        return
    max_open = app.config["DATABASE_MAX_CONNECTIONS"]
    max_idle = min(app.config["DATABASE_MAX_IDLE_CONNECTIONS"], max_open)
    options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
    options.setdefault("pool_size", max_idle)
    options.setdefault("max_overflow", max(max_open - max_idle, 0))
    options.setdefault("pool_recycle", app.config["DATABASE_CONN_MAX_LIFETIME"])
    options.setdefault("pool_pre_ping", True)


def create_app(overrides: dict | None = None) -> Flask:
    """
    Application factory.

    overrides are applied on top of Config before any extension is
    initialized (tests use this for the database URL and keys).
    Raises ConfigError for unusable configuration.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    validate_config(app.config)
    app.logger.setLevel(LOG_LEVELS.get(str(app.config["LOG_LEVEL"]).lower(), logging.INFO))

    from .services.id_generator import init_id_generator
    init_id_generator(int(app.config["MACHINE_ID"]))

    if app.config.get("ENVIRONMENT") == "production":
        from .services.token_service import load_keys
        load_keys(app.config["JWT_PRIVATE_KEY"], app.config["JWT_PUBLIC_KEY"])

    # Initialize extensions
    _engine_options(app)
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.payment_service import PaymentClient
    app.extensions["payment_client"] = PaymentClient.from_config(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.register import register_bp
    from .routes.users import users_bp
    from .routes.carts import carts_bp
    from .routes.addresses import addresses_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.tax import tax_bp
    from .routes.shipping import shipping_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(register_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(carts_bp)
    app.register_blueprint(addresses_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(tax_bp)
    app.register_blueprint(shipping_bp)

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(exc: MarketplaceError):
        db.session.rollback()
        if exc.status_code >= 500:
            app.logger.error("%s on %s: %s", type(exc).__name__, request.path, exc)
        else:
            app.logger.info("%s on %s: %s", type(exc).__name__, request.path, exc)
        return jsonify({"error": exc.public_message}), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": Internal.public_message}), Internal.status_code

    @app.before_request
    def enforce_body_limit():
        limit = app.config.get("MAX_CONTENT_LENGTH")
        if limit and request.content_length and request.content_length > limit:
            abort(413)

    @app.after_request
    def log_request(response):
        app.logger.debug(
            "%s %s -> %s (%s)",
            request.method,
            request.path,
            response.status_code,
            request.headers.get("X-Forwarded-For", request.remote_addr),
        )
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def check_database(app: Flask) -> None:
    """Raise DatabaseUnavailable when SELECT 1 fails against app's database."""
    with app.app_context():
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise DatabaseUnavailable(f"database unreachable: {exc}") from exc
