"""Configuration constants for the ChoreKeeper web frontend."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}.") from exc


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


SQLITE_FILE_NAME = os.environ.get("CHOREKEEPER_SQLITE", "chorekeeper.db")
SESSION_SECRET = os.environ.get("SESSION_SECRET", "change-this-session-secret")
PIN_SALT = os.environ.get("PIN_SALT", "_chores_salt")
DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "$")
SESSION_DURATION_DAYS = _int_env("SESSION_DURATION_DAYS", 7)
REMEMBER_ME_DAYS = _int_env("REMEMBER_ME_DAYS", 30)
MAX_PIN_ATTEMPTS = _int_env("MAX_PIN_ATTEMPTS", 5)
PIN_LOCKOUT_MINUTES = _int_env("PIN_LOCKOUT_MINUTES", 15)
_log_path = os.environ.get("CHOREKEEPER_LOG_PATH", "").strip()
LOG_PATH: Optional[Path] = Path(_log_path) if _log_path else None

# Background jobs: the daily driver runs once a day, session cleanup on an interval.
SCHEDULER_ENABLED = _bool_env("CHOREKEEPER_SCHEDULER", True)
SCHEDULER_TIMEZONE = os.environ.get("CHOREKEEPER_TIMEZONE", "UTC")
DAILY_JOBS_HOUR = _int_env("DAILY_JOBS_HOUR", 0)
DAILY_JOBS_MINUTE = _int_env("DAILY_JOBS_MINUTE", 5)
SESSION_CLEANUP_MINUTES = _int_env("SESSION_CLEANUP_MINUTES", 60)

SESSION_TOKEN_KEY = "parent_token"
CHILD_SESSION_KEY = "child_id"


def database_url(file_name: str | None = None) -> str:
    return f"sqlite:///{file_name or SQLITE_FILE_NAME}"


__all__ = [
    "CHILD_SESSION_KEY",
    "DAILY_JOBS_HOUR",
    "DAILY_JOBS_MINUTE",
    "DEFAULT_CURRENCY",
    "LOG_PATH",
    "MAX_PIN_ATTEMPTS",
    "PIN_LOCKOUT_MINUTES",
    "PIN_SALT",
    "REMEMBER_ME_DAYS",
    "SCHEDULER_ENABLED",
    "SCHEDULER_TIMEZONE",
    "SESSION_CLEANUP_MINUTES",
    "SESSION_DURATION_DAYS",
    "SESSION_SECRET",
    "SESSION_TOKEN_KEY",
    "SQLITE_FILE_NAME",
    "database_url",
]
