# backend/storefront/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound on how long a DB call may wait for a connection or lock
    DB_TIMEOUT_SECONDS = float(os.environ.get("DB_TIMEOUT_SECONDS", "10"))

    # Label stamped on every payment record (no real gateway is integrated)
    PAYMENT_GATEWAY_LABEL = os.environ.get("PAYMENT_GATEWAY_LABEL", "GameON Pay")
    DEFAULT_SHIPPING_COUNTRY = os.environ.get("DEFAULT_SHIPPING_COUNTRY", "India")

    # Optimistic-concurrency retry policy for order writes
    ORDER_WRITE_RETRY_ATTEMPTS = int(os.environ.get("ORDER_WRITE_RETRY_ATTEMPTS", "3"))
    ORDER_WRITE_RETRY_BACKOFF = float(os.environ.get("ORDER_WRITE_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = _csv(os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    ))


def engine_options(database_uri: str, timeout_seconds: float) -> dict:
    """
    Engine options that keep DB calls bounded in time.

    SQLite waits on a locked database for `timeout` seconds before raising
    OperationalError; pooled backends get a matching pool checkout timeout.
    """
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}
    return {"pool_timeout": timeout_seconds, "pool_pre_ping": True}
