# src/daybook/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing required at import time; every value has a usable default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "DAYBOOK"

STORE_BACKENDS = ("sqlite", "http")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Persistence backend ----
    store_backend: str
    api_base_url: str
    http_timeout_seconds: float

    # ---- Engine tuning ----
    debounce_seconds: float
    resync_on_failure: bool
    default_category: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "daybook").strip() or "daybook"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/daybook"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        store_backend = _env(_k("STORE"), "sqlite").strip().lower() or "sqlite"
        api_base_url = _env(_k("API_BASE_URL"), "http://localhost:5000/api").rstrip("/")
        http_timeout_seconds = max(0.5, _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0))

        # Negative windows make no sense; zero means "write on the next loop tick".
        debounce_seconds = max(0.0, _env_float(_k("DEBOUNCE_SECONDS"), 3.0))
        resync_on_failure = _env_bool(_k("RESYNC_ON_FAILURE"), False)

        default_category = _env(_k("DEFAULT_CATEGORY"), "life").strip().lower()
        if default_category not in ("life", "work"):
            default_category = "life"

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            store_backend=store_backend,
            api_base_url=api_base_url,
            http_timeout_seconds=http_timeout_seconds,
            debounce_seconds=debounce_seconds,
            resync_on_failure=resync_on_failure,
            default_category=default_category,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
