# backend/gestock/config.py
from __future__ import annotations
import os

from sqlalchemy.pool import StaticPool


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/gestock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///gestock.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Tenant and actor context is resolved by the upstream gateway
    TENANT_HEADER = os.environ.get("TENANT_HEADER", "X-Tenant-Id")
    ACTOR_HEADER = os.environ.get("ACTOR_HEADER", "X-Actor-Name")
    ROLE_HEADER = os.environ.get("ROLE_HEADER", "X-Actor-Role")

    # Billing defaults
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "1800"))
    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))
    CURRENCY = os.environ.get("CURRENCY", "F CFA")

    # Side effects (audit log, low-stock alerts)
    NOTIFICATION_WEBHOOK_URL = os.environ.get("NOTIFICATION_WEBHOOK_URL")
    NOTIFICATION_TIMEOUT_SECONDS = float(os.environ.get("NOTIFICATION_TIMEOUT_SECONDS", "5"))
    SIDE_EFFECTS_SYNC = _env_flag("SIDE_EFFECTS_SYNC")
    SIDE_EFFECT_WORKERS = int(os.environ.get("SIDE_EFFECT_WORKERS", "4"))


class TestConfig(Config):
    TESTING = True

    # One shared in-memory connection for the whole test session
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }

    NOTIFICATION_WEBHOOK_URL = None
    SIDE_EFFECTS_SYNC = True
