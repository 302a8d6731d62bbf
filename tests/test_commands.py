# tests/test_commands.py

from __future__ import annotations

import json
from pathlib import Path

from tasklog.cli.bootstrap import create_initial_state
from tasklog.cli.commands import CommandRegistry, registry
from tasklog.core.state import AppState


def test_command_registry_routes_2_and_3_params(state: AppState) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2:" + ",".join(args)

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    assert reg.handle(state, '/a x "y z"') == "h2:x,y z"
    notes: list[str] = []
    assert reg.handle(state, "/BEE", emit=notes.append) == "h3"
    assert called == {"h2": 1, "h3": 1}
    assert notes == ["note"]


def test_command_registry_unknown_and_non_command(state: AppState) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")
    assert "Cannot parse" in (reg.handle(state, '/a "open') or "")


def test_help_lists_every_command(state: AppState) -> None:
    text = registry.handle(state, "/help") or ""
    for name in ("projects", "project", "modules", "module", "tasks", "task", "stats", "export", "import"):
        assert f"/{name} " in text


def test_project_module_task_flow(state: AppState) -> None:
    h = registry.handle

    assert "No project selected" in (h(state, "/tasks") or "")
    assert h(state, '/project add "Big Project" some memo') == "Project created: Big Project"
    project = state.store.get_project(state.current_project_id)
    assert project.memo == "some memo"

    assert h(state, "/module add core") == "Module ready: core"
    assert (h(state, "/module add core") or "").startswith("Error:")

    assert h(state, '/task add "fix login" core BUG') == "Task added: fix login"
    # Unknown module is created on the fly.
    assert h(state, "/task add docs writing") == "Task added: docs"
    assert {m.name for m in state.store.get_modules(project.id)} == {"core", "writing"}

    listing = h(state, "/tasks") or ""
    assert "fix login" in listing
    assert "(BUG)" in listing

    tasks = state.store.get_tasks(project.id)
    login = next(t for t in tasks if t.name == "fix login")

    assert (h(state, "/module delete core") or "").startswith("Error:")
    assert h(state, f"/task done {login.id}") == "Task completed: fix login"
    assert state.store.get_task(login.id).completed is True
    assert h(state, "/module delete core") == "Module deleted: core"
    assert h(state, f"/task rollback {login.id[:20]}") == "Task reopened: fix login"

    assert h(state, "/module rename writing docs") == "Module renamed: writing -> docs"
    docs = next(t for t in state.store.get_tasks(project.id) if t.name == "docs")
    assert docs.module == "docs"

    assert h(state, f"/task shelve {docs.id}") == "Task shelved: docs"
    assert "[~]" in (h(state, "/tasks") or "")
    assert h(state, f"/task move {docs.id} core") == "Task moved to core: docs"
    assert h(state, f"/task delete {docs.id}") == "Task deleted: docs"
    assert state.store.get_task(docs.id) is None

    stats = h(state, "/stats") or ""
    assert "Created: 1" in stats
    assert "Completed: 0" in stats


def test_project_rename_memo_and_delete(state: AppState) -> None:
    h = registry.handle
    h(state, "/project add One")
    h(state, "/project add Two")
    projects = state.store.get_projects()
    assert len(projects) == 2

    two = state.store.get_project(state.current_project_id)
    assert two.name == "Two"
    assert h(state, f"/project rename {two.id} Deux") == "Project renamed to Deux"
    assert h(state, f"/project memo {two.id} hello world") == "Memo saved."
    assert state.store.get_project(two.id).memo == "hello world"

    assert h(state, f"/project delete {two.id}") == "Project deleted: Deux"
    assert state.store.count_projects() == 1
    assert state.current_project_id == state.store.get_projects()[0].id
    assert "No project matches" in (h(state, "/project use zzz") or "")


def test_export_and_import_commands(state: AppState, tmp_path: Path) -> None:
    h = registry.handle
    h(state, "/project add Alpha")
    h(state, "/task add one")

    dest = tmp_path / "b.zip"
    notes: list[str] = []
    assert h(state, f"/export {dest}", emit=notes.append) == f"Backup written: {dest}"
    assert notes and "[BACKUP]" in notes[0]

    h(state, "/project add Beta")
    reply = h(state, f"/import {dest}") or ""
    assert reply.startswith("Backup restored")
    assert [p.name for p in state.store.get_projects()] == ["Alpha"]
    assert state.store.get_project(state.current_project_id).name == "Alpha"


def test_bootstrap_runs_migrations(settings) -> None:
    settings.data_dir.mkdir(parents=True)
    (settings.data_dir / "projects.json").write_text(
        json.dumps([{"id": "p1", "name": "Legacy"}]), "utf-8"
    )

    state = create_initial_state(settings=settings)
    try:
        assert state.migration.projects == 1
        assert state.current_project_id == "p1"
        assert settings.images_dir.is_dir()
        assert settings.db_path.exists()
        assert "Store:" in (registry.handle(state, "/status") or "")
    finally:
        state.store.close()


def test_bootstrap_sets_corrupt_store_aside(settings) -> None:
    settings.data_dir.mkdir(parents=True)
    junk = b"this is not a database " * 12
    settings.db_path.write_bytes(junk)

    state = create_initial_state(settings=settings)
    try:
        kept = list(settings.data_dir.glob("tasklog.db.*.corrupt"))
        assert len(kept) == 1
        assert kept[0].read_bytes() == junk
        assert state.migration.errors[0].startswith("store: unreadable file moved to")
        assert state.store.count_projects() == 0
        assert registry.handle(state, "/project add Fresh") == "Project created: Fresh"
    finally:
        state.store.close()

    reopened = create_initial_state(settings=settings)
    try:
        assert [p.name for p in reopened.store.get_projects()] == ["Fresh"]
        assert reopened.migration.errors == []
    finally:
        reopened.store.close()


def test_module_commands_prefer_active_namesake(state: AppState) -> None:
    h = registry.handle
    h(state, "/project add Alpha")
    project = state.store.get_project(state.current_project_id)
    old = state.store.add_module(project.id, "core", deleted=True)
    active = state.store.add_module(project.id, "core")

    assert h(state, "/task add fix core") == "Task added: fix"
    assert len(state.store.get_modules(project.id, True)) == 2

    assert (h(state, "/module delete core") or "").startswith("Error:")
    assert state.store.get_module(active.id).deleted is False

    # restore targets the deleted row, which clashes with the active one.
    reply = h(state, "/module restore core") or ""
    assert "already exists" in reply
    assert state.store.get_module(old.id).deleted is True

    task = state.store.get_tasks(project.id)[0]
    assert h(state, f"/task delete {task.id}") == "Task deleted: fix"
    assert h(state, "/module purge core") == "Module removed permanently: core"
    assert state.store.get_module(old.id) is None
    assert state.store.get_module(active.id) is not None


def test_task_add_restores_deleted_module(state: AppState) -> None:
    h = registry.handle
    h(state, "/project add Alpha")
    project = state.store.get_project(state.current_project_id)
    old = state.store.add_module(project.id, "core", deleted=True)

    assert h(state, "/task add fix core") == "Task added: fix"
    assert state.store.get_module(old.id).deleted is False
    assert len(state.store.get_modules(project.id, True)) == 1
