# src/tasklog/store/store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from ..core.ports import SnapshotTarget
from .models import (
    CheckItems,
    CodeBlock,
    Module,
    Project,
    Task,
    images_from_json,
    images_to_json,
    new_id,
    now_iso,
)
from .snapshot import FileSnapshot

logger = logging.getLogger(__name__)

UNSET: Any = object()

SQLITE_HEADER = b"SQLite format 3\x00"

# Columns added after the first release; _ensure_schema adds whichever are missing.
_LATE_COLUMNS: dict[str, list[tuple[str, str]]] = {
    "projects": [
        ("memo", "TEXT NOT NULL DEFAULT ''"),
        ("updated_at", "TEXT"),
    ],
    "modules": [
        ("sort_order", "INTEGER"),
        ("deleted", "INTEGER NOT NULL DEFAULT 0"),
        ("updated_at", "TEXT"),
    ],
    "tasks": [
        ("type", "TEXT NOT NULL DEFAULT ''"),
        ("initiator", "TEXT NOT NULL DEFAULT ''"),
        ("remark", "TEXT NOT NULL DEFAULT ''"),
        ("images", "TEXT NOT NULL DEFAULT '[]'"),
        ("code_block", "TEXT"),
        ("check_items", "TEXT"),
        ("check_items_before_complete", "TEXT"),
        ("shelved", "INTEGER NOT NULL DEFAULT 0"),
        ("shelved_at", "TEXT"),
        ("updated_at", "TEXT"),
    ],
    "config": [
        ("updated_at", "TEXT"),
    ],
}


def _as_code_block(value: CodeBlock | dict[str, Any] | None) -> CodeBlock:
    if isinstance(value, CodeBlock):
        return value
    return CodeBlock.from_dict(value)


def _as_check_items(value: CheckItems | dict[str, Any] | None) -> CheckItems:
    if isinstance(value, CheckItems):
        return value
    return CheckItems.from_dict(value)


def _encode_before_complete(value: CheckItems | dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return _as_check_items(value).to_json()


def _as_flag(value: Any) -> int:
    return 1 if value else 0


# update_task field -> (column, encoder)
_TASK_FIELDS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "module": ("module", str),
    "name": ("name", str),
    "type": ("type", str),
    "initiator": ("initiator", str),
    "remark": ("remark", str),
    "images": ("images", images_to_json),
    "code_block": ("code_block", lambda v: _as_code_block(v).to_json()),
    "check_items": ("check_items", lambda v: _as_check_items(v).to_json()),
    "check_items_before_complete": ("check_items_before_complete", _encode_before_complete),
    "completed": ("completed", _as_flag),
    "shelved": ("shelved", _as_flag),
    "completed_at": ("completed_at", lambda v: v),
    "shelved_at": ("shelved_at", lambda v: v),
    "updated_at": ("updated_at", lambda v: v),
}


class TaskLogStore:
    """
    SQLite store for projects, modules, tasks and config rows.

    The whole database lives in one in-memory connection. It is loaded from
    the snapshot target on open, and after every mutation the full image
    (Connection.serialize) is written back before the call returns. There is
    no journal: each write costs O(store size) I/O.

    Not thread-safe. One caller at a time.
    """

    def __init__(self, target: str | Path | SnapshotTarget) -> None:
        if isinstance(target, (str, Path)):
            self._snapshot: SnapshotTarget = FileSnapshot(target)
        else:
            self._snapshot = target

        self._defer_depth = 0
        self._dirty = False

        self._conn = sqlite3.connect(":memory:")
        self._conn.row_factory = sqlite3.Row

        data = self._snapshot.read()
        created = not data
        if data:
            self._conn.deserialize(data)
        self._configure_conn(self._conn)
        self._ensure_schema()
        if created:
            self._persist()

        logger.info(
            "TaskLogStore ready db=%s created=%s projects=%s",
            self.db_path,
            created,
            self.count_projects(),
        )

    @property
    def db_path(self) -> Path | None:
        return self._snapshot.path

    def close(self) -> None:
        if self._conn is None:
            return
        self._persist()
        self._conn.close()
        self._conn = None  # type: ignore[assignment]
        logger.info("TaskLogStore closed db=%s", self.db_path)

    # ---- low-level helpers ----

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")

    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        try:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id         TEXT PRIMARY KEY,
                    name       TEXT NOT NULL,
                    memo       TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS modules (
                    id         TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    name       TEXT NOT NULL,
                    sort_order INTEGER,
                    deleted    INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id                          TEXT PRIMARY KEY,
                    project_id                  TEXT NOT NULL,
                    module                      TEXT NOT NULL DEFAULT '',
                    name                        TEXT NOT NULL,
                    type                        TEXT NOT NULL DEFAULT '',
                    initiator                   TEXT NOT NULL DEFAULT '',
                    remark                      TEXT NOT NULL DEFAULT '',
                    images                      TEXT NOT NULL DEFAULT '[]',
                    code_block                  TEXT,
                    check_items                 TEXT,
                    check_items_before_complete TEXT,
                    completed                   INTEGER NOT NULL DEFAULT 0,
                    shelved                     INTEGER NOT NULL DEFAULT 0,
                    created_at                  TEXT NOT NULL,
                    completed_at                TEXT,
                    shelved_at                  TEXT,
                    updated_at                  TEXT,
                    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS config (
                    key        TEXT PRIMARY KEY,
                    value      TEXT NOT NULL,
                    updated_at TEXT
                )
                """
            )

            for table, columns in _LATE_COLUMNS.items():
                cur.execute(f"PRAGMA table_info({table})")
                existing = {row["name"] for row in cur.fetchall()}
                for name, decl in columns:
                    if name in existing:
                        continue
                    cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                    logger.info("TaskLogStore migration: added column %s.%s", table, name)

            cur.execute("CREATE INDEX IF NOT EXISTS idx_modules_project_id ON modules(project_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_modules_deleted ON modules(deleted)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project_id ON tasks(project_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_completed ON tasks(completed)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_shelved ON tasks(shelved)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_module ON tasks(module)")

            self._conn.commit()
        finally:
            cur.close()

    def _persist(self) -> None:
        if self._defer_depth > 0:
            self._dirty = True
            return
        self._snapshot.write(self._conn.serialize())
        self._dirty = False

    @contextlib.contextmanager
    def _write(self) -> Iterator[sqlite3.Cursor]:
        """Run statements as one unit: commit + persist, or roll back and re-raise."""
        cur = self._conn.cursor()
        try:
            yield cur
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        finally:
            cur.close()
        self._persist()

    @contextlib.contextmanager
    def deferred_persist(self) -> Iterator[TaskLogStore]:
        """
        Batch many mutations into a single snapshot write.

        Each statement still commits on its own; only the file write is
        postponed until the outermost block exits (also on error).
        """
        self._defer_depth += 1
        try:
            yield self
        finally:
            self._defer_depth -= 1
            if self._defer_depth == 0 and self._dirty:
                self._persist()

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        return self._conn.execute(sql, params).fetchone()

    def _fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, params).fetchall()

    def _count(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        (n,) = self._conn.execute(sql, params).fetchone()
        return int(n)

    def _update_row(self, table: str, row_id: str, assignments: dict[str, Any]) -> bool:
        cols = ", ".join(f"{col} = ?" for col in assignments)
        with self._write() as cur:
            cur.execute(
                f"UPDATE {table} SET {cols} WHERE id = ?",
                (*assignments.values(), row_id),
            )
            return cur.rowcount > 0

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=str(row["id"]),
            name=str(row["name"]),
            memo=str(row["memo"] or ""),
            created_at=str(row["created_at"]),
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_module(row: sqlite3.Row) -> Module:
        order = row["sort_order"]
        return Module(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            name=str(row["name"]),
            order=int(order) if order is not None else None,
            deleted=bool(row["deleted"]),
            created_at=str(row["created_at"]),
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        before = row["check_items_before_complete"]
        return Task(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            module=str(row["module"] or ""),
            name=str(row["name"]),
            type=str(row["type"] or ""),
            initiator=str(row["initiator"] or ""),
            remark=str(row["remark"] or ""),
            images=images_from_json(row["images"]),
            code_block=CodeBlock.from_json(row["code_block"]),
            check_items=CheckItems.from_json(row["check_items"]),
            check_items_before_complete=CheckItems.from_json(before) if before else None,
            completed=bool(row["completed"]),
            shelved=bool(row["shelved"]),
            created_at=str(row["created_at"]),
            completed_at=row["completed_at"],
            shelved_at=row["shelved_at"],
            updated_at=row["updated_at"],
        )

    # ---- projects ----

    def count_projects(self) -> int:
        return self._count("SELECT COUNT(*) FROM projects")

    def get_projects(self) -> list[Project]:
        rows = self._fetch_all("SELECT * FROM projects ORDER BY created_at DESC")
        return [self._row_to_project(r) for r in rows]

    def get_project(self, project_id: str) -> Project | None:
        row = self._fetch_one("SELECT * FROM projects WHERE id = ?", (project_id,))
        return self._row_to_project(row) if row else None

    def add_project(
        self,
        name: str,
        *,
        memo: str = "",
        project_id: str | None = None,
        created_at: str | None = None,
        updated_at: str | None = None,
    ) -> Project:
        if not name or not name.strip():
            raise ValueError("name is required")

        project = Project(
            id=project_id or new_id(),
            name=name.strip(),
            memo=memo or "",
            created_at=created_at or now_iso(),
            updated_at=updated_at,
        )
        with self._write() as cur:
            cur.execute(
                """
                INSERT INTO projects(id, name, memo, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (project.id, project.name, project.memo, project.created_at, project.updated_at),
            )
        logger.debug("Project added id=%s name=%s", project.id, project.name)
        return project

    def update_project(
        self,
        project_id: str,
        *,
        name: str = UNSET,
        memo: str = UNSET,
        updated_at: str | None = UNSET,
    ) -> bool:
        fields: dict[str, Any] = {}
        if name is not UNSET:
            fields["name"] = name
        if memo is not UNSET:
            fields["memo"] = memo or ""
        if not fields and updated_at is UNSET:
            return False
        fields["updated_at"] = now_iso() if updated_at is UNSET else updated_at
        return self._update_row("projects", project_id, fields)

    def delete_project(self, project_id: str) -> bool:
        """Hard delete; modules and tasks go with it (ON DELETE CASCADE)."""
        with self._write() as cur:
            cur.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            deleted = cur.rowcount > 0
        logger.debug("Project deleted id=%s found=%s", project_id, deleted)
        return deleted

    # ---- modules ----

    def get_modules(self, project_id: str, include_deleted: bool = False) -> list[Module]:
        sql = "SELECT * FROM modules WHERE project_id = ?"
        if not include_deleted:
            sql += " AND deleted = 0"
        sql += " ORDER BY sort_order ASC, created_at ASC"
        return [self._row_to_module(r) for r in self._fetch_all(sql, (project_id,))]

    def get_module(self, module_id: str) -> Module | None:
        row = self._fetch_one("SELECT * FROM modules WHERE id = ?", (module_id,))
        return self._row_to_module(row) if row else None

    def add_module(
        self,
        project_id: str,
        name: str,
        *,
        order: int | None = None,
        deleted: bool = False,
        module_id: str | None = None,
        created_at: str | None = None,
        updated_at: str | None = None,
    ) -> Module:
        """
        Insert a module row as given.

        Name uniqueness is NOT checked here; callers decide between
        "already exists", "restore the deleted one" and "create".
        """
        if not project_id:
            raise ValueError("project_id is required")
        if not name or not name.strip():
            raise ValueError("name is required")

        module = Module(
            id=module_id or new_id(),
            project_id=project_id,
            name=name.strip(),
            order=order,
            deleted=bool(deleted),
            created_at=created_at or now_iso(),
            updated_at=updated_at,
        )
        with self._write() as cur:
            cur.execute(
                """
                INSERT INTO modules(id, project_id, name, sort_order, deleted, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    module.id,
                    module.project_id,
                    module.name,
                    module.order,
                    _as_flag(module.deleted),
                    module.created_at,
                    module.updated_at,
                ),
            )
        logger.debug("Module added id=%s project=%s name=%s", module.id, project_id, module.name)
        return module

    def update_module(
        self,
        module_id: str,
        *,
        name: str = UNSET,
        order: int | None = UNSET,
        deleted: bool = UNSET,
        updated_at: str | None = UNSET,
    ) -> bool:
        fields: dict[str, Any] = {}
        if name is not UNSET:
            fields["name"] = name
        if order is not UNSET:
            fields["sort_order"] = order
        if deleted is not UNSET:
            fields["deleted"] = _as_flag(deleted)
        if not fields and updated_at is UNSET:
            return False
        fields["updated_at"] = now_iso() if updated_at is UNSET else updated_at
        return self._update_row("modules", module_id, fields)

    def delete_module(self, module_id: str) -> bool:
        """Soft delete: the row stays, flagged deleted."""
        return self.update_module(module_id, deleted=True, updated_at=now_iso())

    def restore_module(self, module_id: str) -> bool:
        return self.update_module(module_id, deleted=False, updated_at=now_iso())

    def permanent_delete_module(self, module_id: str) -> bool:
        with self._write() as cur:
            cur.execute("DELETE FROM modules WHERE id = ?", (module_id,))
            return cur.rowcount > 0

    def module_exists(self, project_id: str, name: str, exclude_id: str | None = None) -> bool:
        """True if any module row (soft-deleted ones included) has this name."""
        sql = "SELECT 1 FROM modules WHERE project_id = ? AND name = ?"
        params: tuple[Any, ...] = (project_id, name)
        if exclude_id:
            sql += " AND id != ?"
            params = (*params, exclude_id)
        return self._fetch_one(sql + " LIMIT 1", params) is not None

    # ---- tasks ----

    def get_tasks(self, project_id: str) -> list[Task]:
        rows = self._fetch_all(
            "SELECT * FROM tasks WHERE project_id = ? ORDER BY created_at DESC",
            (project_id,),
        )
        return [self._row_to_task(r) for r in rows]

    def get_task(self, task_id: str) -> Task | None:
        row = self._fetch_one("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return self._row_to_task(row) if row else None

    def add_task(
        self,
        project_id: str,
        name: str,
        *,
        module: str = "",
        type: str = "",
        initiator: str = "",
        remark: str = "",
        images: list[str] | None = None,
        code_block: CodeBlock | dict[str, Any] | None = None,
        check_items: CheckItems | dict[str, Any] | None = None,
        check_items_before_complete: CheckItems | dict[str, Any] | None = None,
        completed: bool = False,
        shelved: bool = False,
        task_id: str | None = None,
        created_at: str | None = None,
        completed_at: str | None = None,
        shelved_at: str | None = None,
        updated_at: str | None = None,
    ) -> Task:
        if not project_id:
            raise ValueError("project_id is required")
        if not name or not name.strip():
            raise ValueError("name is required")

        before = check_items_before_complete
        task = Task(
            id=task_id or new_id(),
            project_id=project_id,
            module=module or "",
            name=name.strip(),
            type=type or "",
            initiator=initiator or "",
            remark=remark or "",
            images=[str(i) for i in (images or [])],
            code_block=_as_code_block(code_block),
            check_items=_as_check_items(check_items),
            check_items_before_complete=_as_check_items(before) if before is not None else None,
            completed=bool(completed),
            shelved=bool(shelved),
            created_at=created_at or now_iso(),
            completed_at=completed_at,
            shelved_at=shelved_at,
            updated_at=updated_at,
        )

        with self._write() as cur:
            cur.execute(
                """
                INSERT INTO tasks(
                    id, project_id, module, name, type, initiator, remark,
                    images, code_block, check_items, check_items_before_complete,
                    completed, shelved, created_at, completed_at, shelved_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.project_id,
                    task.module,
                    task.name,
                    task.type,
                    task.initiator,
                    task.remark,
                    images_to_json(task.images),
                    task.code_block.to_json(),
                    task.check_items.to_json(),
                    _encode_before_complete(task.check_items_before_complete),
                    _as_flag(task.completed),
                    _as_flag(task.shelved),
                    task.created_at,
                    task.completed_at,
                    task.shelved_at,
                    task.updated_at,
                ),
            )
        logger.debug("Task added id=%s project=%s module=%s", task.id, project_id, task.module)
        return task

    def update_task(self, task_id: str, **changes: Any) -> Task | None:
        """
        Partial update. Only the keyword arguments given are written; pass
        None explicitly to clear a nullable column.

        Returns the re-read task, or None when no updatable field was given
        or no row has this id.
        """
        unknown = set(changes) - set(_TASK_FIELDS)
        if unknown:
            raise TypeError(f"unknown task field(s): {', '.join(sorted(unknown))}")

        fields: dict[str, Any] = {}
        for key, value in changes.items():
            if key == "updated_at":
                continue
            column, encode = _TASK_FIELDS[key]
            fields[column] = encode(value)
        if not fields:
            return None
        fields["updated_at"] = changes.get("updated_at") or now_iso()

        if not self._update_row("tasks", task_id, fields):
            return None
        return self.get_task(task_id)

    def delete_task(self, task_id: str) -> bool:
        """Hard delete. Attachment files are the caller's business."""
        with self._write() as cur:
            cur.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            return cur.rowcount > 0

    def get_task_count_by_module(self, project_id: str, module_name: str) -> int:
        return self._count(
            "SELECT COUNT(*) FROM tasks WHERE project_id = ? AND module = ?",
            (project_id, module_name),
        )

    def get_pending_task_count_by_module(self, project_id: str, module_name: str) -> int:
        return self._count(
            "SELECT COUNT(*) FROM tasks WHERE project_id = ? AND module = ? AND completed = 0",
            (project_id, module_name),
        )

    def get_pending_task_count(self, project_id: str) -> int:
        return self._count(
            "SELECT COUNT(*) FROM tasks WHERE project_id = ? AND completed = 0",
            (project_id,),
        )

    def update_tasks_module(self, project_id: str, old_name: str, new_name: str) -> int:
        """Rename the module label on every task of the project that carries old_name."""
        with self._write() as cur:
            cur.execute(
                "UPDATE tasks SET module = ? WHERE project_id = ? AND module = ?",
                (new_name, project_id, old_name),
            )
            renamed = cur.rowcount
        logger.debug(
            "Tasks module renamed project=%s %r -> %r rows=%d",
            project_id,
            old_name,
            new_name,
            renamed,
        )
        return renamed

    # ---- config ----

    def get_config(self, key: str) -> str | None:
        row = self._fetch_one("SELECT value FROM config WHERE key = ?", (key,))
        return str(row["value"]) if row else None

    def save_config(self, key: str, value: str) -> bool:
        ts = now_iso()
        with self._write() as cur:
            cur.execute("UPDATE config SET value = ?, updated_at = ? WHERE key = ?", (value, ts, key))
            if cur.rowcount == 0:
                cur.execute(
                    "INSERT INTO config(key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, ts),
                )
        return True

    # ---- whole-store operations ----

    def clear_all(self) -> None:
        with self._write() as cur:
            cur.execute("DELETE FROM tasks")
            cur.execute("DELETE FROM modules")
            cur.execute("DELETE FROM projects")
            cur.execute("DELETE FROM config")
        logger.info("TaskLogStore cleared db=%s", self.db_path)

    def snapshot_bytes(self) -> bytes:
        return self._conn.serialize()

    def restore_bytes(self, data: bytes) -> None:
        """
        Replace the whole store with a raw database image.

        The image is opened in a scratch connection first; on any problem
        ValueError is raised and the current store is left untouched.
        """
        if not data or not data.startswith(SQLITE_HEADER):
            raise ValueError("not a SQLite database image")

        scratch = sqlite3.connect(":memory:")
        try:
            scratch.deserialize(data)
            (status,) = scratch.execute("PRAGMA quick_check").fetchone()
            tables = {
                r[0] for r in scratch.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        except sqlite3.DatabaseError as exc:
            raise ValueError(f"corrupt database image: {exc}") from exc
        finally:
            scratch.close()

        if status != "ok":
            raise ValueError(f"database image failed integrity check: {status}")
        missing = {"projects", "modules", "tasks", "config"} - tables
        if missing:
            raise ValueError(f"database image lacks table(s): {', '.join(sorted(missing))}")

        self._conn.commit()
        self._conn.deserialize(data)
        self._configure_conn(self._conn)
        self._ensure_schema()
        self._persist()
        logger.info(
            "TaskLogStore restored from image db=%s bytes=%d projects=%d",
            self.db_path,
            len(data),
            self.count_projects(),
        )
