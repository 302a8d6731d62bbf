# tests/test_backup.py

from __future__ import annotations

import json
import zipfile
from pathlib import Path

import pytest

from tasklog.api import tasks as task_api
from tasklog.migration.backup import (
    export_archive,
    export_document,
    import_archive,
    import_document,
)
from tasklog.store.models import APP_CONFIG_KEY
from tasklog.store.store import TaskLogStore


def _fill(store: TaskLogStore) -> str:
    p = store.add_project("Alpha", memo="memo")
    store.add_module(p.id, "core", order=0)
    store.add_module(p.id, "gone", deleted=True)
    t = store.add_task(p.id, "t1", module="core", images=["a.png"])
    task_api.mark_done(store, t.id)
    store.add_task(p.id, "t2", module="core")
    store.save_config(APP_CONFIG_KEY, json.dumps({"taskTypes": [{"name": "BUG"}]}))
    return p.id


def test_export_document_shape(store: TaskLogStore) -> None:
    _fill(store)
    doc = export_document(store)

    assert doc["version"] == "1.0.0"
    assert doc["exportTime"].endswith("Z")
    assert doc["config"] == {"taskTypes": [{"name": "BUG"}]}
    assert len(doc["projects"]) == 1
    # Soft-deleted modules are part of the export.
    assert {m["name"] for m in doc["modules"]} == {"core", "gone"}
    assert len(doc["tasks"]) == 2
    assert "projectId" in doc["tasks"][0]
    json.dumps(doc)


def test_import_document_replaces_content(store: TaskLogStore, mem_store: TaskLogStore) -> None:
    pid = _fill(store)
    doc = export_document(store)

    mem_store.add_project("to be replaced")
    res = import_document(mem_store, doc)
    assert res.success
    assert res.value == {"projects": 1, "modules": 2, "tasks": 2, "skipped": 0}

    assert [p.name for p in mem_store.get_projects()] == ["Alpha"]
    done = [t for t in mem_store.get_tasks(pid) if t.completed]
    assert len(done) == 1
    assert done[0].check_items_before_complete is not None
    assert json.loads(mem_store.get_config(APP_CONFIG_KEY)) == doc["config"]


def test_import_document_validation(store: TaskLogStore) -> None:
    store.add_project("Keep me")
    assert not import_document(store, []).success
    res = import_document(store, {"version": "1.0.0", "projects": []})
    assert not res.success
    assert "config" in res.error
    assert not import_document(
        store, {"version": "1", "config": {}, "projects": {}, "modules": [], "tasks": []}
    ).success
    assert [p.name for p in store.get_projects()] == ["Keep me"]


def test_archive_round_trip_uses_store_image(store: TaskLogStore, tmp_path: Path) -> None:
    images = tmp_path / "images"
    images.mkdir()
    (images / "a.png").write_bytes(b"png-bytes")
    pid = _fill(store)

    archive = export_archive(store, tmp_path / "out" / "backup.zip", images_dir=images)
    with zipfile.ZipFile(archive) as zf:
        names = set(zf.namelist())
    assert {"data.json", "tasklog.db", "images/a.png", "README.txt"} <= names
    assert not (tmp_path / "out" / "backup.zip.tmp").exists()

    target_dir = tmp_path / "restore"
    target = TaskLogStore(target_dir / "tasklog.db")
    target.add_project("old content")
    restored_images = target_dir / "images"

    res = import_archive(target, archive, images_dir=restored_images)
    assert res.success
    assert res.value["restored"] == "store"
    assert Path(res.value["backup"]).exists()
    assert Path(res.value["backup"]).name.startswith("tasklog.db.")

    assert [p.id for p in target.get_projects()] == [pid]
    assert len(target.get_tasks(pid)) == 2
    assert (restored_images / "a.png").read_bytes() == b"png-bytes"
    target.close()


def test_archive_without_store_file_replays_document(store: TaskLogStore, tmp_path: Path) -> None:
    pid = _fill(store)
    archive = export_archive(store, tmp_path / "backup.zip", include_store_file=False)

    target = TaskLogStore(tmp_path / "target.db")
    res = import_archive(target, archive)
    assert res.success
    assert res.value["projects"] == 1
    assert len(target.get_modules(pid, True)) == 2
    target.close()


def test_import_plain_json_file(store: TaskLogStore, tmp_path: Path) -> None:
    _fill(store)
    path = tmp_path / "backup.json"
    path.write_text(json.dumps(export_document(store)), "utf-8")

    target = TaskLogStore(tmp_path / "target.db")
    assert import_archive(target, path).success
    assert target.count_projects() == 1
    target.close()


def test_import_rejects_unsafe_archive(store: TaskLogStore, tmp_path: Path) -> None:
    store.add_project("Keep me")
    bad = tmp_path / "evil.zip"
    with zipfile.ZipFile(bad, "w") as zf:
        zf.writestr("data.json", json.dumps(export_document(store)))
        zf.writestr("images/../../escape.txt", "x")

    res = import_archive(store, bad, images_dir=tmp_path / "images")
    assert not res.success
    assert "Unsafe path" in res.error
    assert not (tmp_path / "escape.txt").exists()
    assert [p.name for p in store.get_projects()] == ["Keep me"]


def test_import_rejects_corrupt_store_image(store: TaskLogStore, tmp_path: Path) -> None:
    store.add_project("Keep me")
    bad = tmp_path / "broken.zip"
    with zipfile.ZipFile(bad, "w") as zf:
        zf.writestr("tasklog.db", b"SQLite format 3\x00" + b"\x00" * 50)

    res = import_archive(store, bad)
    assert not res.success
    assert store.count_projects() == 1


@pytest.mark.parametrize("content", ["{not json", "[]"])
def test_import_bad_json_file(store: TaskLogStore, tmp_path: Path, content: str) -> None:
    path = tmp_path / "backup.json"
    path.write_text(content, "utf-8")
    assert not import_archive(store, path).success


def test_import_missing_file(store: TaskLogStore, tmp_path: Path) -> None:
    assert not import_archive(store, tmp_path / "nope.zip").success
