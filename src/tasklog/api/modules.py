# src/tasklog/api/modules.py

"""
Module operations with the rules the store leaves to its callers.

Tasks point at modules by name (a label copy, not a foreign key), so a
rename is followed by a bulk relabel of the project's tasks, and the
delete checks count tasks by that label.
"""

from __future__ import annotations

import logging

from ..core.ports import TaskRepo
from ..store.models import Module
from .results import OpResult

logger = logging.getLogger(__name__)


def list_modules(store: TaskRepo, project_id: str, *, include_deleted: bool = False) -> list[Module]:
    return store.get_modules(project_id, include_deleted)


def add_module(store: TaskRepo, project_id: str, name: str) -> OpResult:
    """
    Create a module, or bring back a soft-deleted one with the same name.

    An active module with the name is reported as already existing rather
    than duplicated.
    """
    if not name or not name.strip():
        return OpResult.fail("Module name is required.")
    if store.get_project(project_id) is None:
        return OpResult.fail("Project not found.")

    name = name.strip()
    if store.module_exists(project_id, name):
        same_name = [m for m in store.get_modules(project_id, True) if m.name == name]
        active = [m for m in same_name if not m.deleted]
        if active:
            return OpResult.fail(f"Module '{name}' already exists in this project.")
        revived = same_name[0]
        store.restore_module(revived.id)
        logger.info("Module restored on re-add id=%s name=%s", revived.id, name)
        return OpResult.ok(store.get_module(revived.id))

    module = store.add_module(project_id, name)
    return OpResult.ok(module)


def rename_module(store: TaskRepo, module_id: str, new_name: str) -> OpResult:
    module = store.get_module(module_id)
    if module is None:
        return OpResult.fail("Module not found.")
    if not new_name or not new_name.strip():
        return OpResult.fail("Module name is required.")

    new_name = new_name.strip()
    if new_name == module.name:
        return OpResult.ok(module)
    if store.module_exists(module.project_id, new_name, exclude_id=module_id):
        return OpResult.fail(f"Module '{new_name}' already exists in this project.")

    store.update_module(module_id, name=new_name)
    renamed = store.update_tasks_module(module.project_id, module.name, new_name)
    logger.info(
        "Module renamed id=%s %r -> %r tasks_relabelled=%d",
        module_id,
        module.name,
        new_name,
        renamed,
    )
    return OpResult.ok(store.get_module(module_id))


def delete_module(store: TaskRepo, module_id: str) -> OpResult:
    """Soft delete; refused while incomplete tasks carry the module's name."""
    module = store.get_module(module_id)
    if module is None:
        return OpResult.fail("Module not found.")

    pending = store.get_pending_task_count_by_module(module.project_id, module.name)
    if pending > 0:
        return OpResult.fail(
            f"Module '{module.name}' still has {pending} incomplete task(s) and cannot be deleted."
        )
    store.delete_module(module_id)
    return OpResult.ok()


def restore_module(store: TaskRepo, module_id: str) -> OpResult:
    module = store.get_module(module_id)
    if module is None:
        return OpResult.fail("Module not found.")
    if not module.deleted:
        return OpResult.ok(module)

    clash = [
        m for m in store.get_modules(module.project_id)
        if m.name == module.name and m.id != module_id
    ]
    if clash:
        return OpResult.fail(f"An active module named '{module.name}' already exists.")
    store.restore_module(module_id)
    return OpResult.ok(store.get_module(module_id))


def permanent_delete_module(store: TaskRepo, module_id: str) -> OpResult:
    """Hard delete; only allowed once no task at all carries the module's name."""
    module = store.get_module(module_id)
    if module is None:
        return OpResult.fail("Module not found.")

    count = store.get_task_count_by_module(module.project_id, module.name)
    if count > 0:
        return OpResult.fail(
            f"Module '{module.name}' is still used by {count} task(s) and cannot be removed permanently."
        )
    store.permanent_delete_module(module_id)
    logger.info("Module permanently deleted id=%s name=%s", module_id, module.name)
    return OpResult.ok()


def reorder_modules(store: TaskRepo, project_id: str, module_ids: list[str]) -> OpResult:
    """Give the listed modules order 0..n-1; ids from other projects are ignored."""
    known = {m.id for m in store.get_modules(project_id, True)}
    with store.deferred_persist():
        for index, module_id in enumerate(i for i in module_ids if i in known):
            store.update_module(module_id, order=index)
    return OpResult.ok(store.get_modules(project_id))
