# src/tasklog/migration/legacy.py

"""
Startup import of older on-disk formats.

Before the SQLite store the app kept three JSON arrays (projects.json,
modules.json, tasks.json) next to each other, and its settings first in a
base64-encoded `.config`, later in plain `config.json`. This module moves
whatever it finds into the store and renames the source to `*.backup`.

Runs on every start: with nothing to import it does nothing, and it never
overwrites rows already in the store. Each step catches and logs its own
failure so the app still starts with whatever data it has.
"""

from __future__ import annotations

import base64
import json
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..store.models import APP_CONFIG_KEY, Module, Project, Task
from ..store.store import TaskLogStore

logger = logging.getLogger(__name__)

PROJECTS_FILE = "projects.json"
MODULES_FILE = "modules.json"
TASKS_FILE = "tasks.json"
LEGACY_CONFIG_FILE = ".config"
CONFIG_FILE = "config.json"

BACKUP_SUFFIX = ".backup"


@dataclass(slots=True)
class MigrationReport:
    projects: int = 0
    modules: int = 0
    tasks: int = 0
    skipped: int = 0
    config_source: str | None = None
    renamed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def imported_anything(self) -> bool:
        return bool(self.projects or self.modules or self.tasks or self.config_source)


def mark_migrated(path: Path) -> Path:
    """Rename to <name>.backup (never delete). An older backup is replaced."""
    target = path.with_name(path.name + BACKUP_SUFFIX)
    path.replace(target)
    logger.info("Legacy file kept as backup: %s", target)
    return target


def _read_json_array(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text("utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a JSON array, got {type(data).__name__}")
    return [r for r in data if isinstance(r, dict)]


def insert_project(store: TaskLogStore, raw: dict[str, Any]) -> None:
    p = Project.from_dict(raw)
    store.add_project(
        p.name,
        memo=p.memo,
        project_id=p.id or None,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


class MissingProjectError(LookupError):
    """A module or task points at a project the store does not have."""


def _require_project(store: TaskLogStore, project_id: str) -> None:
    if store.get_project(project_id) is None:
        raise MissingProjectError(f"unknown project {project_id!r}")


def insert_module(store: TaskLogStore, raw: dict[str, Any]) -> None:
    m = Module.from_dict(raw)
    _require_project(store, m.project_id)
    store.add_module(
        m.project_id,
        m.name,
        order=m.order,
        deleted=m.deleted,
        module_id=m.id or None,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def insert_task(store: TaskLogStore, raw: dict[str, Any]) -> None:
    t = Task.from_dict(raw)
    _require_project(store, t.project_id)
    store.add_task(
        t.project_id,
        t.name,
        module=t.module,
        type=t.type,
        initiator=t.initiator,
        remark=t.remark,
        images=t.images,
        code_block=t.code_block,
        check_items=t.check_items,
        check_items_before_complete=t.check_items_before_complete,
        completed=t.completed,
        shelved=t.shelved,
        task_id=t.id or None,
        created_at=t.created_at,
        completed_at=t.completed_at,
        shelved_at=t.shelved_at,
        updated_at=t.updated_at,
    )


def replay_records(
        store: TaskLogStore,
        records: list[dict[str, Any]],
        insert: Callable[[TaskLogStore, dict[str, Any]], None],
        kind: str,
) -> tuple[int, int, int]:
    """
    Insert records one by one; bad ones are logged and skipped.

    Returns (ok, skipped, orphaned). `orphaned` counts the skipped records
    whose project is missing and is included in `skipped`.
    """
    ok = skipped = orphaned = 0
    for raw in records:
        try:
            insert(store, raw)
            ok += 1
        except MissingProjectError as exc:
            skipped += 1
            orphaned += 1
            logger.warning("Skipping legacy %s id=%s: %s", kind, raw.get("id"), exc)
        except (ValueError, sqlite3.IntegrityError) as exc:
            skipped += 1
            logger.warning("Skipping legacy %s id=%s: %s", kind, raw.get("id"), exc)
    return ok, skipped, orphaned


def migrate_json_files(store: TaskLogStore, data_dir: Path, report: MigrationReport) -> None:
    sources = [
        (data_dir / PROJECTS_FILE, insert_project, "projects"),
        (data_dir / MODULES_FILE, insert_module, "modules"),
        (data_dir / TASKS_FILE, insert_task, "tasks"),
    ]
    present = [s for s in sources if s[0].exists()]
    if not present:
        return
    if store.count_projects() > 0:
        logger.info(
            "Store already has projects; legacy JSON files left untouched: %s",
            ", ".join(p.name for p, _, _ in present),
        )
        return

    # All files are read before anything is inserted: modules and tasks
    # without their projects would only be skipped.
    loaded: list[tuple[Path, list[dict[str, Any]], Callable, str]] = []
    for path, insert, kind in present:
        try:
            loaded.append((path, _read_json_array(path), insert, kind))
        except (OSError, ValueError) as exc:
            report.errors.append(f"{path.name}: {exc}")
            logger.exception("Failed to read legacy file %s", path)
    if len(loaded) != len(present):
        logger.warning("Legacy JSON import postponed; all files left in place.")
        return

    migrated: list[Path] = []
    with store.deferred_persist():
        for path, records, insert, kind in loaded:
            ok, skipped, orphaned = replay_records(store, records, insert, kind[:-1])
            setattr(report, kind, ok)
            report.skipped += skipped
            logger.info("Imported %d %s from %s (skipped %d)", ok, kind, path.name, skipped)
            if orphaned:
                logger.warning(
                    "%s has %d record(s) without a project; file left in place.",
                    path.name,
                    orphaned,
                )
                continue
            migrated.append(path)

    for path in migrated:
        report.renamed.append(mark_migrated(path).name)


def migrate_legacy_config(store: TaskLogStore, data_dir: Path, report: MigrationReport) -> None:
    """base64(.config) -> app_config row, unless a newer config already exists."""
    legacy = data_dir / LEGACY_CONFIG_FILE
    if not legacy.exists():
        return
    if (data_dir / CONFIG_FILE).exists() or store.get_config(APP_CONFIG_KEY) is not None:
        logger.info("Newer config present; legacy %s not applied.", legacy.name)
        return

    decoded = base64.b64decode(legacy.read_text("utf-8").strip()).decode("utf-8")
    config = json.loads(decoded)
    store.save_config(APP_CONFIG_KEY, json.dumps(config, ensure_ascii=False))
    report.config_source = LEGACY_CONFIG_FILE
    report.renamed.append(mark_migrated(legacy).name)


def migrate_config_file(store: TaskLogStore, data_dir: Path, report: MigrationReport) -> None:
    """config.json -> app_config row, stored as read."""
    path = data_dir / CONFIG_FILE
    if not path.exists():
        return
    if store.get_config(APP_CONFIG_KEY) is not None:
        logger.info("Store already has %s; %s left untouched.", APP_CONFIG_KEY, path.name)
        return

    content = path.read_text("utf-8")
    json.loads(content)  # refuse to store something that is not JSON
    store.save_config(APP_CONFIG_KEY, content)
    report.config_source = CONFIG_FILE
    report.renamed.append(mark_migrated(path).name)


_STEPS: list[tuple[str, Callable[[TaskLogStore, Path, MigrationReport], None]]] = [
    ("json files", migrate_json_files),
    ("legacy config", migrate_legacy_config),
    ("config file", migrate_config_file),
]


def run_startup_migrations(store: TaskLogStore, data_dir: str | Path) -> MigrationReport:
    data_dir = Path(data_dir)
    report = MigrationReport()
    if not data_dir.is_dir():
        return report

    for name, step in _STEPS:
        try:
            step(store, data_dir, report)
        except Exception as exc:
            report.errors.append(f"{name}: {exc}")
            logger.exception("Startup migration step failed: %s", name)

    if report.imported_anything:
        logger.info(
            "Startup migration done projects=%d modules=%d tasks=%d skipped=%d config=%s",
            report.projects,
            report.modules,
            report.tasks,
            report.skipped,
            report.config_source,
        )
    return report
