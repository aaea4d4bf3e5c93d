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

    # Entity dataset lives for the process lifetime only (in-memory SQLite)
    DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite://")

    # Remembered sessions and branch preferences survive restarts
    SESSION_DATABASE_URL = os.environ.get(
        "SESSION_DATABASE_URL",
        "sqlite:///backoffice_sessions.sqlite3",
    )

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    RESET_TOKEN_TTL_MINUTES = int(os.environ.get("RESET_TOKEN_TTL_MINUTES", "60"))

    SECOND_FACTOR_TTL_MINUTES = int(os.environ.get("SECOND_FACTOR_TTL_MINUTES", "10"))
    SECOND_FACTOR_MAX_ATTEMPTS = int(os.environ.get("SECOND_FACTOR_MAX_ATTEMPTS", "5"))
    # Demo deployments accept a fixed code instead of a generated one
    SECOND_FACTOR_FIXED_CODE = os.environ.get("SECOND_FACTOR_FIXED_CODE") or None

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "XAF")

    SEED_DEMO_DATA = _env_bool("SEED_DEMO_DATA", False)
