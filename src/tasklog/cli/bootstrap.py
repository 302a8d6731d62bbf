# src/tasklog/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- opens the store and runs the startup migrations,
- picks the project the console starts on.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from ..config import get_settings
from ..core.state import AppState
from ..migration.legacy import MigrationReport, run_startup_migrations
from ..store.store import TaskLogStore

logger = logging.getLogger(__name__)

CORRUPT_SUFFIX = ".corrupt"


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.images_dir.mkdir(parents=True, exist_ok=True)


def _set_aside(db_path: Path) -> Path:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    aside = db_path.with_name(f"{db_path.name}.{stamp}{CORRUPT_SUFFIX}")
    db_path.replace(aside)
    return aside


def open_store(db_path: Path, report: MigrationReport) -> TaskLogStore:
    """
    Open the store file; an unreadable one is moved to
    <db>.<YYYYmmdd-HHMMSS>.corrupt and a fresh store is started.
    """
    try:
        return TaskLogStore(db_path)
    except (sqlite3.DatabaseError, ValueError):
        logger.exception("Store file is unreadable: %s", db_path)

    aside = _set_aside(db_path)
    report.errors.append(f"store: unreadable file moved to {aside.name}")
    logger.warning("Unreadable store kept as %s; starting with an empty store.", aside)
    return TaskLogStore(db_path)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    report = MigrationReport()
    store = open_store(settings.db_path, report)

    if getattr(settings, "migrate_on_startup", True):
        try:
            startup = run_startup_migrations(store, settings.legacy_dir)
        except Exception:
            # Startup must not fail because of old files lying around.
            logger.exception("Startup migrations failed.")
        else:
            startup.errors[:0] = report.errors
            report = startup

    projects = store.get_projects()
    state = AppState(
        settings=settings,
        store=store,
        images_dir=settings.images_dir,
        current_project_id=projects[0].id if projects else None,
        migration=report,
    )
    return state
