# tests/test_api.py

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from tasklog.api import app_config
from tasklog.api import modules as module_api
from tasklog.api import projects as project_api
from tasklog.api import tasks as task_api
from tasklog.api.results import OpResult
from tasklog.store.models import APP_CONFIG_KEY, CheckItem, CheckItems
from tasklog.store.store import TaskLogStore


def _project(store: TaskLogStore, name: str = "Alpha") -> str:
    res = project_api.create_project(store, name)
    assert res.success
    return res.value.id


# ---- projects ----


def test_create_project_validates_name(store: TaskLogStore) -> None:
    res = project_api.create_project(store, "  ")
    assert not res.success
    assert res.error == "Project name is required."
    assert store.count_projects() == 0


def test_update_project_name_and_memo(store: TaskLogStore) -> None:
    pid = _project(store)
    res = project_api.update_project(store, pid, name=" Beta ", memo="notes")
    assert res.success
    assert res.value.name == "Beta"
    assert res.value.memo == "notes"

    assert not project_api.update_project(store, pid, name="").success
    assert not project_api.update_project(store, "missing", memo="x").success


def test_delete_project_refused_while_tasks_pending(store: TaskLogStore, tmp_path: Path) -> None:
    images = tmp_path / "images"
    images.mkdir()
    (images / "shot.png").write_bytes(b"png")

    pid = _project(store)
    t = task_api.add_task(store, pid, "open work", images=["shot.png"]).value

    res = project_api.delete_project(store, pid, images_dir=images)
    assert not res.success
    assert "1 incomplete task(s)" in res.error

    task_api.mark_done(store, t.id)
    assert project_api.delete_project(store, pid, images_dir=images).success
    assert store.get_project(pid) is None
    assert not (images / "shot.png").exists()


# ---- modules ----


def test_add_module_rejects_active_duplicate(store: TaskLogStore) -> None:
    pid = _project(store)
    assert module_api.add_module(store, pid, "core").success
    res = module_api.add_module(store, pid, "core")
    assert not res.success
    assert "already exists" in res.error
    assert len(store.get_modules(pid, True)) == 1


def test_add_module_restores_soft_deleted_namesake(store: TaskLogStore) -> None:
    pid = _project(store)
    first = module_api.add_module(store, pid, "core").value
    assert module_api.delete_module(store, first.id).success

    again = module_api.add_module(store, pid, "core")
    assert again.success
    assert again.value.id == first.id
    assert again.value.deleted is False
    assert len(store.get_modules(pid, True)) == 1


def test_add_module_needs_project_and_name(store: TaskLogStore) -> None:
    assert not module_api.add_module(store, "missing", "core").success
    pid = _project(store)
    assert not module_api.add_module(store, pid, " ").success


def test_rename_module_relabels_tasks(store: TaskLogStore) -> None:
    pid = _project(store)
    other = _project(store, "Other")
    m = module_api.add_module(store, pid, "core").value
    task_api.add_task(store, pid, "t1", module="core")
    task_api.add_task(store, pid, "t2", module="core")
    task_api.add_task(store, other, "elsewhere", module="core")

    res = module_api.rename_module(store, m.id, "engine")
    assert res.success
    assert res.value.name == "engine"
    assert {t.module for t in store.get_tasks(pid)} == {"engine"}
    # Same label in another project is left alone.
    assert [t.module for t in store.get_tasks(other)] == ["core"]


def test_rename_module_conflicts_with_deleted_namesake(store: TaskLogStore) -> None:
    pid = _project(store)
    a = module_api.add_module(store, pid, "a").value
    b = module_api.add_module(store, pid, "b").value
    module_api.delete_module(store, b.id)

    res = module_api.rename_module(store, a.id, "b")
    assert not res.success
    assert store.get_module(a.id).name == "a"


def test_delete_module_refused_with_pending_tasks(store: TaskLogStore) -> None:
    pid = _project(store)
    m = module_api.add_module(store, pid, "core").value
    t = task_api.add_task(store, pid, "t1", module="core").value

    res = module_api.delete_module(store, m.id)
    assert not res.success
    assert "1 incomplete task(s)" in res.error

    task_api.mark_done(store, t.id)
    assert module_api.delete_module(store, m.id).success
    assert store.get_module(m.id).deleted is True


def test_permanent_delete_needs_no_tasks_at_all(store: TaskLogStore) -> None:
    pid = _project(store)
    m = module_api.add_module(store, pid, "core").value
    t = task_api.add_task(store, pid, "t1", module="core").value
    task_api.mark_done(store, t.id)
    module_api.delete_module(store, m.id)

    res = module_api.permanent_delete_module(store, m.id)
    assert not res.success

    task_api.change_module(store, t.id, "")
    assert module_api.permanent_delete_module(store, m.id).success
    assert store.get_module(m.id) is None


def test_restore_module_refused_when_name_taken(store: TaskLogStore) -> None:
    pid = _project(store)
    old = store.add_module(pid, "core", deleted=True)
    store.add_module(pid, "core")

    res = module_api.restore_module(store, old.id)
    assert not res.success
    assert store.get_module(old.id).deleted is True


def test_reorder_modules_writes_once(mem_store: TaskLogStore, snapshot) -> None:
    pid = _project(mem_store)
    ids = [module_api.add_module(mem_store, pid, n).value.id for n in ("a", "b", "c")]
    before = snapshot.writes

    res = module_api.reorder_modules(mem_store, pid, [ids[2], "foreign", ids[0], ids[1]])
    assert res.success
    assert [m.name for m in res.value] == ["c", "a", "b"]
    assert snapshot.writes == before + 1


# ---- tasks ----


def _checklist() -> CheckItems:
    return CheckItems(
        enabled=True,
        items=[
            CheckItem(id="a", name="a", checked=True),
            CheckItem(id="b", name="b"),
        ],
        linkage=False,
    )


def test_add_task_validation(store: TaskLogStore) -> None:
    pid = _project(store)
    assert not task_api.add_task(store, pid, " ").success
    assert not task_api.add_task(store, "missing", "x").success
    res = task_api.add_task(store, pid, "x", type="BUG")
    assert res.success
    assert res.value.type == "BUG"


def test_mark_done_and_rollback_are_symmetric(store: TaskLogStore) -> None:
    pid = _project(store)
    t = task_api.add_task(store, pid, "t1", check_items=_checklist()).value

    done = task_api.mark_done(store, t.id).value
    assert done.completed is True
    assert done.completed_at is not None
    assert all(i.checked for i in done.check_items.items)
    assert done.check_items_before_complete == _checklist()

    # Second call keeps the first snapshot.
    again = task_api.mark_done(store, t.id).value
    assert again.check_items_before_complete == _checklist()

    back = task_api.rollback(store, t.id).value
    assert back.completed is False
    assert back.completed_at is None
    assert back.check_items == _checklist()
    assert back.check_items_before_complete is None


def test_shelve_is_independent_of_completion(store: TaskLogStore) -> None:
    pid = _project(store)
    t = task_api.add_task(store, pid, "t1").value
    task_api.mark_done(store, t.id)

    shelved = task_api.shelve(store, t.id).value
    assert shelved.shelved is True
    assert shelved.completed is True
    assert shelved.shelved_at is not None

    unshelved = task_api.unshelve(store, t.id).value
    assert unshelved.shelved is False
    assert unshelved.shelved_at is None

    assert not task_api.shelve(store, "missing").success


def test_toggle_check_item(store: TaskLogStore) -> None:
    pid = _project(store)
    t = task_api.add_task(store, pid, "t1", check_items=_checklist()).value

    res = task_api.toggle_check_item(store, t.id, "b", True)
    assert res.success
    assert all(i.checked for i in res.value.check_items.items)
    assert not task_api.toggle_check_item(store, t.id, "zzz", True).success


def test_update_check_items_keeps_settings(store: TaskLogStore) -> None:
    pid = _project(store)
    t = task_api.add_task(store, pid, "t1", check_items=_checklist()).value

    res = task_api.update_check_items(store, t.id, [{"id": "n", "name": "new"}])
    assert res.success
    assert res.value.check_items.linkage is False
    assert res.value.check_items.enabled is True
    assert [i.id for i in res.value.check_items.items] == ["n"]


def test_update_task_removes_dropped_images(store: TaskLogStore, tmp_path: Path) -> None:
    images = tmp_path / "images"
    images.mkdir()
    for name in ("keep.png", "drop.png"):
        (images / name).write_bytes(b"x")

    pid = _project(store)
    t = task_api.add_task(store, pid, "t1", images=["keep.png", "drop.png"]).value

    res = task_api.update_task(store, t.id, images_dir=images, images=["keep.png"], remark="r")
    assert res.success
    assert res.value.images == ["keep.png"]
    assert res.value.remark == "r"
    assert (images / "keep.png").exists()
    assert not (images / "drop.png").exists()

    assert not task_api.update_task(store, t.id, name="").success


def test_delete_task_removes_images(store: TaskLogStore, tmp_path: Path) -> None:
    images = tmp_path / "images"
    images.mkdir()
    (images / "a.png").write_bytes(b"x")

    pid = _project(store)
    t = task_api.add_task(store, pid, "t1", images=["a.png", "never-existed.png"]).value
    assert task_api.delete_task(store, t.id, images_dir=images).success
    assert store.get_task(t.id) is None
    assert not (images / "a.png").exists()
    assert not task_api.delete_task(store, t.id).success


def test_today_stats(store: TaskLogStore) -> None:
    pid = _project(store)
    store.add_task(pid, "old", created_at="2020-01-01T10:00:00.000Z")
    fresh = task_api.add_task(store, pid, "fresh").value
    task_api.mark_done(store, fresh.id)

    stats = task_api.today_stats(store, pid, now=datetime.now(timezone.utc))
    assert stats == {"count": 1, "newCount": 1}


# ---- app config ----


def test_app_config_defaults_and_save(store: TaskLogStore) -> None:
    config = app_config.load_app_config(store)
    assert [t["name"] for t in config["taskTypes"]] == ["BUG", "TODO", "Improvement", "Other"]

    config["taskTypes"].append({"name": "Docs", "color": "#000000"})
    assert app_config.save_app_config(store, config).success

    loaded = app_config.load_app_config(store)
    assert loaded["taskTypes"][-1]["name"] == "Docs"
    assert loaded["general"]["searchScope"] == "all"


def test_app_config_invalid_input(store: TaskLogStore) -> None:
    assert not app_config.save_app_config(store, {"taskTypes": "nope"}).success

    store.save_config(APP_CONFIG_KEY, "{not json")
    assert app_config.load_app_config(store) == app_config.default_app_config()

    store.save_config(APP_CONFIG_KEY, json.dumps({"taskTypes": []}))
    filled = app_config.load_app_config(store)
    assert filled["general"]["themeColors"]["startColor"] == "#667eea"


def test_op_result_to_dict() -> None:
    assert OpResult.fail("nope").to_dict() == {"success": False, "error": "nope"}
    assert OpResult.ok({"a": 1}).to_dict() == {"success": True, "value": {"a": 1}}
