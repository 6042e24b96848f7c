# backend/bilkro/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bilkro.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Settlement rules
    DEBT_TERM_DAYS = int(os.environ.get("DEBT_TERM_DAYS", "30"))
    CART_TTL_DAYS = int(os.environ.get("CART_TTL_DAYS", "7"))

    # Expenditures at or below this amount are approved on creation (100.00)
    EXPENDITURE_AUTO_APPROVE_LIMIT_CENTS = int(os.environ.get("EXPENDITURE_AUTO_APPROVE_LIMIT_CENTS", "10000"))
    # Historical reports subtracted posted expenditures from total revenue
    EXPENDITURES_REDUCE_REVENUE = _env_bool("EXPENDITURES_REDUCE_REVENUE", False)

    # Sessions
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))
    AUTH_COOKIE_NAME = "bilkro_session"

    # Outbound mail
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "465"))
    MAIL_USERNAME = os.environ.get("EMAIL")
    MAIL_PASSWORD = os.environ.get("EMAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", os.environ.get("EMAIL"))
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)

    WEBSITE_LINK = os.environ.get("WEBSITE_LINK", "http://localhost:5173")
