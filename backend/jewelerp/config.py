# backend/jewelerp/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local database for this branch (SQLite by default, PostgreSQL in the shop)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///jewelerp.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Branch identity; app_settings rows override these per install
    BRANCH_ID = int(os.environ.get("BRANCH_ID", "1"))
    COMPANY_ID = int(os.environ.get("COMPANY_ID", "1"))
    BUSINESS_STATE = os.environ.get("BUSINESS_STATE", "Gujarat")

    # Cloud store (Supabase / PostgREST). Sync is disabled when either is missing.
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_KEY = os.environ.get("SUPABASE_KEY")
    CLOUD_TIMEOUT_SECONDS = float(os.environ.get("CLOUD_TIMEOUT_SECONDS", "30"))

    SYNC_INTERVAL_MINUTES = int(os.environ.get("SYNC_INTERVAL_MINUTES", "5"))
    # Start the background sync thread from create_app()
    SYNC_AUTOSTART = _env_bool("SYNC_AUTOSTART", False)

    # Lower only in tests; bcrypt cost factor for new password hashes
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
