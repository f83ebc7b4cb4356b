# backend/maroc_billing/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/maroc_billing.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///maroc_billing.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Billing policy (amounts in centimes, rates in basis points)
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "MAD")
    FISCAL_STAMP_DEFAULT_CENTS = _int_env("FISCAL_STAMP_DEFAULT_CENTS", 2000)
    DEFAULT_DEPOSIT_PERCENTAGE_BPS = _int_env("DEFAULT_DEPOSIT_PERCENTAGE_BPS", 3000)
    INVOICE_PAYMENT_TERMS_DAYS = _int_env("INVOICE_PAYMENT_TERMS_DAYS", 30)

    # Quotes
    QUOTE_VALIDITY_DAYS = _int_env("QUOTE_VALIDITY_DAYS", 30)
    QUOTE_REMINDER_CADENCE_DAYS = _int_env("QUOTE_REMINDER_CADENCE_DAYS", 7)
    QUOTE_DEFAULT_REMINDER_DAYS = _int_env("QUOTE_DEFAULT_REMINDER_DAYS", 7)

    LOW_STOCK_ALERT_ENABLED = os.environ.get("LOW_STOCK_ALERT_ENABLED", "true").lower() == "true"


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
