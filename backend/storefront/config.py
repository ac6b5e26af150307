# backend/storefront/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Engine-wide isolation level, e.g. "SERIALIZABLE" on PostgreSQL.
    # SQLite relies on BEGIN IMMEDIATE inside the unit of work instead.
    SQLALCHEMY_ENGINE_OPTIONS = (
        {"isolation_level": os.environ["DB_ISOLATION_LEVEL"]}
        if os.environ.get("DB_ISOLATION_LEVEL")
        else {}
    )

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Payments
    PAYMENT_METHODS = [
        m.strip().lower()
        for m in os.environ.get("PAYMENT_METHODS", "cash,card").split(",")
        if m.strip()
    ]
    CARD_GATEWAY_URL = os.environ.get("CARD_GATEWAY_URL", "https://api.stripe.com")
    CARD_GATEWAY_SECRET_KEY = os.environ.get("CARD_GATEWAY_SECRET_KEY")
    CARD_GATEWAY_WEBHOOK_SECRET = os.environ.get("CARD_GATEWAY_WEBHOOK_SECRET")
    CARD_GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("CARD_GATEWAY_TIMEOUT_SECONDS", "10"))
    CARD_GATEWAY_CURRENCY = os.environ.get("CARD_GATEWAY_CURRENCY", "usd")
    # Tests inject an httpx transport here (httpx.MockTransport)
    CARD_GATEWAY_TRANSPORT = None

    # Notifications (fire-and-forget, never awaited by the order workflow)
    NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", True)
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "log")
    MAIL_FROM = os.environ.get("MAIL_FROM", "Storefront <noreply@storefront.local>")
    SMTP_HOST = os.environ.get("SMTP_HOST", "localhost")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER", "")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
    SMTP_TIMEOUT_SECONDS = float(os.environ.get("SMTP_TIMEOUT_SECONDS", "10"))
