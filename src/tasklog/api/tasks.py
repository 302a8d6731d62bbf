# src/tasklog/api/tasks.py

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.ports import TaskRepo
from ..store.models import CheckItem, CheckItems, CodeBlock, Task, now_iso
from . import checklist
from .attachments import remove_images
from .results import OpResult

logger = logging.getLogger(__name__)

_NOT_FOUND = "Task not found."


def list_tasks(store: TaskRepo, project_id: str) -> list[Task]:
    return store.get_tasks(project_id)


def add_task(
        store: TaskRepo,
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
) -> OpResult:
    if not name or not name.strip():
        return OpResult.fail("Task description is required.")
    if store.get_project(project_id) is None:
        return OpResult.fail("Project not found.")

    task = store.add_task(
        project_id,
        name,
        module=module,
        type=type,
        initiator=initiator,
        remark=remark,
        images=images,
        code_block=code_block,
        check_items=check_items,
    )
    return OpResult.ok(task)


def update_task(
        store: TaskRepo,
        task_id: str,
        *,
        images_dir: str | Path | None = None,
        **changes: Any,
) -> OpResult:
    """
    Edit task fields. Attachments dropped from the images list are removed
    from images_dir once the row is updated.
    """
    task = store.get_task(task_id)
    if task is None:
        return OpResult.fail(_NOT_FOUND)
    if "name" in changes and not str(changes["name"] or "").strip():
        return OpResult.fail("Task description is required.")
    if not changes:
        return OpResult.ok(task)

    updated = store.update_task(task_id, **changes)
    if "images" in changes:
        kept = set(changes["images"] or [])
        remove_images(images_dir, [img for img in task.images if img not in kept])
    return OpResult.ok(updated)


def mark_done(store: TaskRepo, task_id: str) -> OpResult:
    """
    Complete a task: stamp completed_at, remember the checklist as it was,
    and check every item.
    """
    task = store.get_task(task_id)
    if task is None:
        return OpResult.fail(_NOT_FOUND)
    if task.completed:
        return OpResult.ok(task)

    snapshot, forced = checklist.complete_snapshot(task.check_items)
    updated = store.update_task(
        task_id,
        completed=True,
        completed_at=now_iso(),
        check_items=forced,
        check_items_before_complete=snapshot,
    )
    logger.debug("Task done id=%s items=%d", task_id, len(forced.items))
    return OpResult.ok(updated)


def rollback(store: TaskRepo, task_id: str) -> OpResult:
    """Reverse mark_done, putting the checklist back as it was before."""
    task = store.get_task(task_id)
    if task is None:
        return OpResult.fail(_NOT_FOUND)
    if not task.completed:
        return OpResult.ok(task)

    restored = checklist.restore_from_snapshot(task.check_items, task.check_items_before_complete)
    updated = store.update_task(
        task_id,
        completed=False,
        completed_at=None,
        check_items=restored,
        check_items_before_complete=None,
    )
    logger.debug("Task rolled back id=%s", task_id)
    return OpResult.ok(updated)


def shelve(store: TaskRepo, task_id: str) -> OpResult:
    # Completion is not looked at: a done task may be shelved too.
    if store.get_task(task_id) is None:
        return OpResult.fail(_NOT_FOUND)
    return OpResult.ok(store.update_task(task_id, shelved=True, shelved_at=now_iso()))


def unshelve(store: TaskRepo, task_id: str) -> OpResult:
    if store.get_task(task_id) is None:
        return OpResult.fail(_NOT_FOUND)
    return OpResult.ok(store.update_task(task_id, shelved=False, shelved_at=None))


def change_module(store: TaskRepo, task_id: str, module: str) -> OpResult:
    if store.get_task(task_id) is None:
        return OpResult.fail(_NOT_FOUND)
    return OpResult.ok(store.update_task(task_id, module=module or ""))


def update_check_items(
        store: TaskRepo,
        task_id: str,
        items: list[CheckItem] | list[dict[str, Any]],
) -> OpResult:
    """Replace the checklist items, keeping enabled/mode/linkage."""
    task = store.get_task(task_id)
    if task is None:
        return OpResult.fail(_NOT_FOUND)

    parsed = [i if isinstance(i, CheckItem) else CheckItem.from_dict(i) for i in items]
    check_items = task.check_items.copy()
    check_items.items = parsed
    return OpResult.ok(store.update_task(task_id, check_items=check_items))


def toggle_check_item(store: TaskRepo, task_id: str, item_id: str, checked: bool) -> OpResult:
    task = store.get_task(task_id)
    if task is None:
        return OpResult.fail(_NOT_FOUND)
    if not any(i.id == item_id for i in task.check_items.items):
        return OpResult.fail("Checklist item not found.")

    new_items = checklist.toggle(task.check_items, item_id, checked)
    return OpResult.ok(store.update_task(task_id, check_items=new_items))


def delete_task(
        store: TaskRepo,
        task_id: str,
        *,
        images_dir: str | Path | None = None,
) -> OpResult:
    task = store.get_task(task_id)
    if task is None:
        return OpResult.fail(_NOT_FOUND)

    store.delete_task(task_id)
    remove_images(images_dir, task.images)
    return OpResult.ok()


def _local_day(ts: str | None) -> Any:
    if not ts:
        return None
    try:
        return datetime.fromisoformat(ts).astimezone().date()
    except ValueError:
        return None


def today_stats(store: TaskRepo, project_id: str, *, now: datetime | None = None) -> dict[str, int]:
    """Tasks completed and created on the local calendar day of `now`."""
    today = (now or datetime.now()).astimezone().date()
    tasks = store.get_tasks(project_id)
    done = sum(1 for t in tasks if t.completed and _local_day(t.completed_at) == today)
    new = sum(1 for t in tasks if _local_day(t.created_at) == today)
    return {"count": done, "newCount": new}
