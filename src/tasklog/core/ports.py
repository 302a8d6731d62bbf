# src/tasklog/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the store and its callers.

The store writes its whole image through a SnapshotTarget, so the
whole-file strategy can be replaced (journal, real on-disk engine)
without touching callers. Tests use an in-memory target.
"""

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any, Protocol


class SnapshotTarget(Protocol):
    """Where the serialized store image lives between runs."""

    def read(self) -> bytes | None: ...

    def write(self, data: bytes) -> None: ...

    @property
    def path(self) -> Path | None: ...


class TaskRepo(Protocol):
    """Subset of TaskLogStore the operation layer depends on."""

    def deferred_persist(self) -> AbstractContextManager[Any]: ...

    def get_project(self, project_id: str) -> Any | None: ...
    def get_projects(self) -> list[Any]: ...
    def add_project(self, name: str, **kwargs: Any) -> Any: ...
    def update_project(self, project_id: str, **kwargs: Any) -> bool: ...
    def delete_project(self, project_id: str) -> bool: ...

    def get_module(self, module_id: str) -> Any | None: ...
    def get_modules(self, project_id: str, include_deleted: bool = False) -> list[Any]: ...
    def add_module(self, project_id: str, name: str, **kwargs: Any) -> Any: ...
    def update_module(self, module_id: str, **kwargs: Any) -> bool: ...
    def delete_module(self, module_id: str) -> bool: ...
    def restore_module(self, module_id: str) -> bool: ...
    def permanent_delete_module(self, module_id: str) -> bool: ...
    def module_exists(
            self,
            project_id: str,
            name: str,
            exclude_id: str | None = None,
    ) -> bool: ...

    def get_task(self, task_id: str) -> Any | None: ...
    def get_tasks(self, project_id: str) -> list[Any]: ...
    def add_task(self, project_id: str, name: str, **kwargs: Any) -> Any: ...
    def update_task(self, task_id: str, **kwargs: Any) -> Any | None: ...
    def delete_task(self, task_id: str) -> bool: ...
    def get_task_count_by_module(self, project_id: str, module_name: str) -> int: ...
    def get_pending_task_count_by_module(self, project_id: str, module_name: str) -> int: ...
    def get_pending_task_count(self, project_id: str) -> int: ...
    def update_tasks_module(self, project_id: str, old_name: str, new_name: str) -> int: ...

    def get_config(self, key: str) -> str | None: ...
    def save_config(self, key: str, value: str) -> bool: ...
