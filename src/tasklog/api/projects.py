# src/tasklog/api/projects.py

from __future__ import annotations

import logging
from pathlib import Path

from ..core.ports import TaskRepo
from ..store.models import Project
from .attachments import remove_images
from .results import OpResult

logger = logging.getLogger(__name__)

_UNSET: object = object()


def list_projects(store: TaskRepo) -> list[Project]:
    return store.get_projects()


def create_project(store: TaskRepo, name: str, *, memo: str = "") -> OpResult:
    if not name or not name.strip():
        return OpResult.fail("Project name is required.")
    project = store.add_project(name.strip(), memo=memo)
    logger.info("Project created id=%s name=%s", project.id, project.name)
    return OpResult.ok(project)


def update_project(
        store: TaskRepo,
        project_id: str,
        *,
        name: str | None = None,
        memo: str | object = _UNSET,
) -> OpResult:
    """Rename and/or edit the memo. name=None keeps the current name."""
    if store.get_project(project_id) is None:
        return OpResult.fail("Project not found.")

    changes: dict[str, object] = {}
    if name is not None:
        if not name.strip():
            return OpResult.fail("Project name is required.")
        changes["name"] = name.strip()
    if memo is not _UNSET:
        changes["memo"] = memo
    if changes:
        store.update_project(project_id, **changes)
    return OpResult.ok(store.get_project(project_id))


def delete_project(
        store: TaskRepo,
        project_id: str,
        *,
        images_dir: str | Path | None = None,
) -> OpResult:
    """
    Delete a project with its modules and tasks.

    Refused while any task of the project is incomplete. Attachment files
    of the removed tasks are deleted from images_dir.
    """
    if store.get_project(project_id) is None:
        return OpResult.fail("Project not found.")

    pending = store.get_pending_task_count(project_id)
    if pending > 0:
        return OpResult.fail(
            f"This project still has {pending} incomplete task(s) and cannot be deleted."
        )

    images = [img for task in store.get_tasks(project_id) for img in task.images]
    store.delete_project(project_id)
    removed = remove_images(images_dir, images)
    logger.info("Project deleted id=%s images_removed=%d", project_id, removed)
    return OpResult.ok()
