# src/tasklog/api/checklist.py

"""
Checklist state transitions.

Pure functions over CheckItems: they return new objects and never touch
the store. Items form a tree through parent_id, but no shape validation is
done here (cycles are not detected; a missing parent is just a root).
"""

from __future__ import annotations

from dataclasses import replace

from ..store.models import CheckItem, CheckItems, CheckMode


def complete_snapshot(current: CheckItems) -> tuple[CheckItems, CheckItems]:
    """
    Return (snapshot, forced) for marking a task done.

    snapshot is an independent copy of the current state, kept so that a
    rollback can put it back; forced is the same checklist with every
    item checked.
    """
    snapshot = current.copy()
    forced = replace(current, items=[replace(i, checked=True) for i in current.items])
    return snapshot, forced


def restore_from_snapshot(current: CheckItems, snapshot: CheckItems | None) -> CheckItems:
    """
    Undo complete_snapshot.

    Each item takes the checked state it had in the snapshot; items added
    after completion (absent from the snapshot) come back unchecked.
    Without a snapshot everything is unchecked.
    """
    before = {i.id: i.checked for i in (snapshot.items if snapshot else [])}
    items = [replace(i, checked=before.get(i.id, False)) for i in current.items]
    return replace(current, items=items)


def _descendant_ids(items: list[CheckItem], parent_id: str) -> set[str]:
    out: set[str] = set()
    stack = [parent_id]
    while stack:
        pid = stack.pop()
        for item in items:
            if item.parent_id == pid and item.id not in out:
                out.add(item.id)
                stack.append(item.id)
    return out


def toggle(current: CheckItems, item_id: str, checked: bool) -> CheckItems:
    """
    Set one item's checked state and apply the checklist's rules.

    single mode: the item is the only one that can be checked.
    multiple mode with linkage: children follow the item, and each parent
    becomes checked exactly when all of its children are.
    multiple mode without linkage: only the item changes.
    """
    items = [replace(i) for i in current.items]
    by_id = {i.id: i for i in items}
    target = by_id.get(item_id)
    if target is None:
        return replace(current, items=items)

    if current.mode == CheckMode.SINGLE:
        for item in items:
            item.checked = checked if item.id == item_id else False
        return replace(current, items=items)

    target.checked = checked
    if not current.linkage:
        return replace(current, items=items)

    for child_id in _descendant_ids(items, item_id):
        by_id[child_id].checked = checked

    seen: set[str] = {item_id}
    node = target
    while node.parent_id and node.parent_id in by_id and node.parent_id not in seen:
        parent = by_id[node.parent_id]
        seen.add(parent.id)
        children = [i for i in items if i.parent_id == parent.id]
        all_checked = bool(children) and all(c.checked for c in children)
        if parent.checked == all_checked:
            break
        parent.checked = all_checked
        node = parent

    return replace(current, items=items)


def progress(current: CheckItems) -> tuple[int, int] | None:
    """(checked, total) for an enabled, non-empty checklist; else None."""
    if not current.enabled or not current.items:
        return None
    return sum(1 for i in current.items if i.checked), len(current.items)
