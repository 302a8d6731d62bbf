# src/tasklog/migration/backup.py

"""
Backup and restore.

Two formats are read and written:

- a JSON document (`version`, `exportTime`, `config`, `projects`,
  `modules`, `tasks`) in the same camelCase shape as the legacy files;
- a zip archive holding that document as `data.json`, the raw store image
  as `tasklog.db`, the attachment files under `images/`, and a README.

Restoring a zip prefers the raw image when it is present, since it carries
everything the document does and needs no replay.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any

from ..api.results import OpResult
from ..store.models import APP_CONFIG_KEY, decode_json_field, now_iso
from ..store.store import TaskLogStore
from .legacy import insert_module, insert_project, insert_task, replay_records

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"

DATA_MEMBER = "data.json"
STORE_MEMBER = "tasklog.db"
IMAGES_PREFIX = "images/"
README_MEMBER = "README.txt"

_README = """\
Task log backup
===============

data.json   projects, modules, tasks and settings (JSON)
tasklog.db  the complete database file
images/     task attachments

To restore, use the import command with this .zip file. If tasklog.db is
present it replaces the current database (the old file is kept next to it
as <name>.<timestamp>.bak); otherwise data.json is imported.
"""

_REQUIRED_KEYS = ("version", "config", "projects", "modules", "tasks")


def export_document(store: TaskLogStore) -> dict[str, Any]:
    """Everything in the store as one JSON-ready dict. Soft-deleted modules are included."""
    projects = store.get_projects()
    modules: list[dict[str, Any]] = []
    tasks: list[dict[str, Any]] = []
    for p in projects:
        modules.extend(m.to_dict() for m in store.get_modules(p.id, True))
        tasks.extend(t.to_dict() for t in store.get_tasks(p.id))

    config = decode_json_field(store.get_config(APP_CONFIG_KEY), None)
    return {
        "version": EXPORT_VERSION,
        "exportTime": now_iso(),
        "config": config if isinstance(config, dict) else {},
        "projects": [p.to_dict() for p in projects],
        "modules": modules,
        "tasks": tasks,
    }


def export_archive(
        store: TaskLogStore,
        dest: str | Path,
        *,
        images_dir: str | Path | None = None,
        include_store_file: bool = True,
) -> Path:
    """Write a backup zip to dest (tmp file, then os.replace). Returns dest."""
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    doc = export_document(store)

    tmp_zip = dest.with_name(dest.name + ".tmp")
    images = 0
    with zipfile.ZipFile(tmp_zip, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(DATA_MEMBER, json.dumps(doc, ensure_ascii=False, indent=2))
        if include_store_file:
            zf.writestr(STORE_MEMBER, store.snapshot_bytes())
        if images_dir is not None and Path(images_dir).is_dir():
            for path in sorted(Path(images_dir).rglob("*")):
                if path.is_file():
                    zf.write(path, IMAGES_PREFIX + path.relative_to(images_dir).as_posix())
                    images += 1
        zf.writestr(README_MEMBER, _README)
    os.replace(tmp_zip, dest)

    logger.info(
        "Backup written path=%s projects=%d tasks=%d images=%d store_file=%s",
        dest,
        len(doc["projects"]),
        len(doc["tasks"]),
        images,
        include_store_file,
    )
    return dest


def validate_document(doc: Any) -> str | None:
    """Return a message describing what is wrong with doc, or None."""
    if not isinstance(doc, dict):
        return "Backup document must be a JSON object."
    missing = [k for k in _REQUIRED_KEYS if k not in doc]
    if missing:
        return f"Backup document is missing: {', '.join(missing)}."
    if not isinstance(doc["config"], dict):
        return "Backup document 'config' must be an object."
    for key in ("projects", "modules", "tasks"):
        if not isinstance(doc[key], list):
            return f"Backup document '{key}' must be a list."
    return None


def import_document(store: TaskLogStore, doc: Any) -> OpResult:
    """
    Replace the store content with doc.

    Records the store rejects are skipped and counted. If anything else goes
    wrong the previous content is put back and the error propagates.
    """
    problem = validate_document(doc)
    if problem:
        return OpResult.fail(problem)

    previous = store.snapshot_bytes()
    counts: dict[str, int] = {"skipped": 0}
    try:
        with store.deferred_persist():
            store.clear_all()
            if doc["config"]:
                store.save_config(APP_CONFIG_KEY, json.dumps(doc["config"], ensure_ascii=False))
            for key, insert in (
                ("projects", insert_project),
                ("modules", insert_module),
                ("tasks", insert_task),
            ):
                records = [r for r in doc[key] if isinstance(r, dict)]
                ok, skipped, _ = replay_records(store, records, insert, key[:-1])
                counts[key] = ok
                counts["skipped"] += skipped
    except Exception:
        logger.exception("Import failed; putting previous content back.")
        store.restore_bytes(previous)
        raise

    logger.info(
        "Backup document imported version=%s projects=%d modules=%d tasks=%d skipped=%d",
        doc["version"],
        counts["projects"],
        counts["modules"],
        counts["tasks"],
        counts["skipped"],
    )
    return OpResult.ok(counts)


def _member_target(base: Path, member: str) -> Path:
    dest = (base / member).resolve()
    if dest != base and base not in dest.parents:
        raise ValueError(f"Unsafe path in archive: {member}")
    return dest


def extract_images(zf: zipfile.ZipFile, images_dir: str | Path) -> int:
    """Extract images/* into images_dir ensuring no member escapes it."""
    base = Path(images_dir).resolve()
    members = [
        (info, info.filename[len(IMAGES_PREFIX):])
        for info in zf.infolist()
        if info.filename.startswith(IMAGES_PREFIX) and not info.is_dir()
    ]
    targets = [(info, _member_target(base, rel)) for info, rel in members if rel]

    for info, dest in targets:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with zf.open(info) as src, open(dest, "wb") as out:
            shutil.copyfileobj(src, out)
    return len(targets)


def _keep_current_store_file(store: TaskLogStore) -> Path | None:
    db = store.db_path
    if db is None or not db.exists():
        return None
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    backup = db.with_name(f"{db.name}.{stamp}.bak")
    shutil.copy2(db, backup)
    logger.info("Current store file kept as %s", backup)
    return backup


def _import_zip(store: TaskLogStore, src: Path, images_dir: str | Path | None) -> OpResult:
    with zipfile.ZipFile(src, "r") as zf:
        names = set(zf.namelist())
        if images_dir is not None:
            # Refuse the archive before touching the store.
            base = Path(images_dir).resolve()
            for name in names:
                if name.startswith(IMAGES_PREFIX) and name != IMAGES_PREFIX:
                    _member_target(base, name[len(IMAGES_PREFIX):])

        if STORE_MEMBER in names:
            data = zf.read(STORE_MEMBER)
            kept = _keep_current_store_file(store)
            store.restore_bytes(data)
            result = OpResult.ok(
                {"restored": "store", "backup": str(kept) if kept else None}
            )
        elif DATA_MEMBER in names:
            doc = json.loads(zf.read(DATA_MEMBER).decode("utf-8"))
            result = import_document(store, doc)
        else:
            return OpResult.fail(f"Archive contains neither {STORE_MEMBER} nor {DATA_MEMBER}.")

        if result.success and images_dir is not None:
            extracted = extract_images(zf, images_dir)
            logger.info("Restored %d attachment(s) into %s", extracted, images_dir)
    return result


def import_archive(
        store: TaskLogStore,
        src: str | Path,
        *,
        images_dir: str | Path | None = None,
) -> OpResult:
    """Restore from a .zip backup or a bare .json document."""
    src = Path(src)
    if not src.is_file():
        return OpResult.fail(f"Backup file not found: {src}")

    try:
        if zipfile.is_zipfile(src):
            return _import_zip(store, src, images_dir)
        doc = json.loads(src.read_text("utf-8"))
    except (ValueError, zipfile.BadZipFile) as exc:
        logger.exception("Backup import failed: %s", src)
        return OpResult.fail(f"Cannot import {src.name}: {exc}")

    return import_document(store, doc)
