# src/tasklog/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

One Settings object for the whole app. Nothing here touches the disk;
directories are created by the bootstrap.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKLOG"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


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
    log_levels: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    images_dir: Path
    legacy_dir: Path
    log_dir: Path

    # ---- Startup ----
    migrate_on_startup: bool

    @staticmethod
    def from_env() -> "Settings":
        # App name: accept both TASKLOG_APP_NAME and TASKLOG_APP_TITLE.
        app_name = _first_env(_k("APP_NAME"), default=_env(_k("APP_TITLE"), "tasklog")) or "tasklog"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        # Per-logger console levels, e.g. "tasklog.migration=DEBUG,tasklog.store=WARNING".
        log_levels = _env(_k("LOG_LEVELS"), "")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasklog"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "tasklog.db")
        images_dir = _env_path(_k("IMAGES_DIR"), data_dir / "images")
        # Older releases kept their JSON files in the data directory itself.
        legacy_dir = _env_path(_k("LEGACY_DIR"), data_dir)
        log_dir = _env_path(_k("LOG_DIR"), data_dir)

        migrate_on_startup = _env_bool(_k("MIGRATE_ON_STARTUP"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_levels=log_levels,
            data_dir=data_dir,
            db_path=db_path,
            images_dir=images_dir,
            legacy_dir=legacy_dir,
            log_dir=log_dir,
            migrate_on_startup=migrate_on_startup,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
