from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

# Resolve repo root from this file's location:
# app/settings.py → parent = app/ → parent = repo root
REPO_ROOT = Path(__file__).resolve().parents[1]

# Default SQLite database shipped next to the repo
DEFAULT_SQLITE_DB = REPO_ROOT / "data" / "dapi.db"


def _env_raw(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_raw(name)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env_raw(name)
    try:
        return float(raw) if raw is not None else default
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_raw(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """
    Centralized application configuration.

    Does NOT depend on pydantic. Values are loaded from environment
    variables via Settings.from_env().
    """

    # --- DB mode / data sources ---
    db_mode: str = "sqlite"  # "sqlite" or "postgres"
    postgres_dsn: str = ""
    sqlite_path: str = str(DEFAULT_SQLITE_DB)
    sqlite_timeout_sec: float = 5.0

    # --- HTTP surface ---
    api_prefix: str = "/api/v1"

    # --- CRUD safeguards ---
    allow_unfiltered_delete: bool = False

    # --- Transaction batches ---
    transaction_timeout_sec: float = 30.0
    transaction_max_requests: int = 100

    # --- Misc ---
    log_level: str = "INFO"
    app_version: str = "dev"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build Settings from environment variables with sane fallbacks.

        - SQLITE_PATH can be absolute or relative.
        - Relative paths are resolved against REPO_ROOT.
        """
        raw_db = _env_raw("SQLITE_PATH")
        if raw_db:
            db_candidate = Path(raw_db)
            if not db_candidate.is_absolute():
                db_candidate = REPO_ROOT / raw_db
        else:
            db_candidate = DEFAULT_SQLITE_DB

        return cls(
            db_mode=os.getenv("DB_MODE", cls.db_mode),
            postgres_dsn=os.getenv("POSTGRES_DSN", cls.postgres_dsn),
            sqlite_path=str(db_candidate),
            sqlite_timeout_sec=_env_float("SQLITE_TIMEOUT_SEC", cls.sqlite_timeout_sec),
            api_prefix=os.getenv("API_PREFIX", cls.api_prefix).rstrip("/"),
            allow_unfiltered_delete=_env_bool(
                "ALLOW_UNFILTERED_DELETE", cls.allow_unfiltered_delete
            ),
            transaction_timeout_sec=_env_float(
                "TRANSACTION_TIMEOUT_SEC", cls.transaction_timeout_sec
            ),
            transaction_max_requests=_env_int(
                "TRANSACTION_MAX_REQUESTS", cls.transaction_max_requests
            ),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            app_version=os.getenv("APP_VERSION", cls.app_version),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
