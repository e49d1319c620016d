# backend/marketplace/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _read_key(value_var: str, path_var: str) -> str | None:
    value = os.environ.get(value_var)
    if value:
        return value
    path = os.environ.get(path_var)
    if path:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    return None


class ConfigError(RuntimeError):
    """Startup configuration is missing or unusable."""


class DatabaseUnavailable(RuntimeError):
    """The database could not be reached at startup."""


class Config:
    ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "info")
    MACHINE_ID = _int_env("MACHINE_ID", 1)

    # HTTP server (consumed by wsgi.py)
    SERVER_ADDR = os.environ.get("SERVER_ADDR", "127.0.0.1:8080")
    SERVER_READ_TIMEOUT = _int_env("SERVER_READ_TIMEOUT", 10)
    SERVER_WRITE_TIMEOUT = _int_env("SERVER_WRITE_TIMEOUT", 10)
    SERVER_IDLE_TIMEOUT = _int_env("SERVER_IDLE_TIMEOUT", 60)

    # 64 KiB request body cap; larger bodies get 413
    MAX_CONTENT_LENGTH = 64 * 1024

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///marketplace.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DATABASE_MAX_CONNECTIONS = _int_env("DATABASE_MAX_CONNECTIONS", 25)
    DATABASE_MAX_IDLE_CONNECTIONS = _int_env("DATABASE_MAX_IDLE_CONNECTIONS", 10)
    DATABASE_CONN_MAX_LIFETIME = _int_env("DATABASE_CONN_MAX_LIFETIME", 300)

    # Tokens
    HMAC_SECRET = os.environ.get("HMAC_SECRET", "dev-hmac-secret-change-me")
    JWT_EXPIRY = _int_env("JWT_EXPIRY", 15 * 60)
    REFRESH_EXPIRY = _int_env("REFRESH_EXPIRY", 30 * 24 * 3600)
    JWT_PRIVATE_KEY = _read_key("JWT_PRIVATE_KEY", "JWT_PRIVATE_KEY_PATH")
    JWT_PUBLIC_KEY = _read_key("JWT_PUBLIC_KEY", "JWT_PUBLIC_KEY_PATH")
    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    # Payment / tax provider
    STRIPE_BASE_URL = os.environ.get("STRIPE_BASE_URL", "https://api.stripe.com/v1")
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SIGNING_SECRET = os.environ.get("STRIPE_WEBHOOK_SIGNING_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE = _int_env("STRIPE_WEBHOOK_TOLERANCE", 300)
    PROVIDER_TIMEOUT = _int_env("PROVIDER_TIMEOUT", 10)
    CURRENCY = os.environ.get("CURRENCY", "usd")
    FALLBACK_TAX_CODE = os.environ.get("FALLBACK_TAX_CODE", "txcd_99999999")
    TAX_BEHAVIOR = os.environ.get("TAX_BEHAVIOR", "exclusive")

    # Orders and scheduled jobs
    ORDER_STALE_TTL = _int_env("ORDER_STALE_TTL", 24 * 3600)
    SCHEDULER_TICK_SECONDS = _int_env("SCHEDULER_TICK_SECONDS", 600)
    SCHEDULER_JOB_TIMEOUT = _int_env("SCHEDULER_JOB_TIMEOUT", 10)

    # Outbound email; unset MAIL_SERVER logs messages instead of sending
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = _int_env("MAIL_PORT", 25)
    MAIL_SENDER = os.environ.get("MAIL_SENDER", "no-reply@marketplace.local")


REQUIRED_IN_PRODUCTION = (
    "HMAC_SECRET",
    "JWT_PRIVATE_KEY",
    "JWT_PUBLIC_KEY",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SIGNING_SECRET",
)


def validate_config(config) -> None:
    """Raise ConfigError when a production deployment is missing secrets."""
    if not 0 <= int(config.get("MACHINE_ID", 0)) <= 255:
        raise ConfigError("MACHINE_ID must be between 0 and 255")
    if config.get("ENVIRONMENT") != "production":
        return
    missing = [name for name in REQUIRED_IN_PRODUCTION if not config.get(name)]
    if config.get("HMAC_SECRET") == Config.HMAC_SECRET and "HMAC_SECRET" not in missing:
        missing.append("HMAC_SECRET")
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
