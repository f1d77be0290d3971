# src/newtab_tools/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Components receive settings explicitly; get_settings() is only for the composition root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from . import __version__

ENV_PREFIX = "NEWTAB"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
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

    # ---- Host ----
    extension_version: str
    console_enabled: bool

    # ---- Local data paths ----
    data_dir: Path
    db_path: Path
    prefs_path: Path

    # ---- Thumbnails ----
    thumbnail_retention_days: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "newtab-tools") or "newtab-tools"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        extension_version = _env(_k("EXTENSION_VERSION"), __version__).strip() or __version__
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/newtab"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "newtab.sqlite3")
        prefs_path = _env_path(_k("PREFS_PATH"), data_dir / "prefs.json")

        # 0 expires anything not used today.
        thumbnail_retention_days = max(0, _env_int(_k("THUMBNAIL_RETENTION_DAYS"), 14))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            extension_version=extension_version,
            console_enabled=console_enabled,
            data_dir=data_dir,
            db_path=db_path,
            prefs_path=prefs_path,
            thumbnail_retention_days=thumbnail_retention_days,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
