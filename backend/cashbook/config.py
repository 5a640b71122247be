# backend/cashbook/config.py
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

    # SQLite DB stored in backend/instance/cashbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cashbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Transactions older than this many calendar months are archived
    DATA_RETENTION_MONTHS = int(os.environ.get("DATA_RETENTION_MONTHS", "6"))

    # Rows fetched per keyset page while exporting a report
    REPORT_EXPORT_BATCH_SIZE = int(os.environ.get("REPORT_EXPORT_BATCH_SIZE", "1000"))

    # Inline: jobs run as soon as they are enqueued. Otherwise they wait for `flask jobs drain`.
    JOBS_INLINE = _env_bool("JOBS_INLINE", True)

    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "25"))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", False)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_FROM = os.environ.get("MAIL_DEFAULT_FROM", "reports@cashbook.local")
    # When set, messages are kept in app.extensions["mail_outbox"] instead of sent
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)
