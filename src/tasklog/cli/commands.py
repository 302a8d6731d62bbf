# src/tasklog/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from ..api import modules as module_api
from ..api import projects as project_api
from ..api import tasks as task_api
from ..api.checklist import progress
from ..api.results import OpResult
from ..core.state import AppState
from ..migration.backup import export_archive, import_archive
from ..store.models import Module, Project, Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Arguments are split shell-style, so names with spaces can be quoted.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as exc:
            return f"Cannot parse command: {exc}."
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _reply(result: OpResult, ok_text: str) -> str:
    return ok_text if result.success else f"Error: {result.error}"


def _pick(items: list[Any], ref: str) -> Any | None:
    """Resolve a 1-based list number or an id (unique prefix accepted)."""
    if ref.isdigit() and 1 <= int(ref) <= len(items):
        return items[int(ref) - 1]
    exact = [i for i in items if i.id == ref]
    if exact:
        return exact[0]
    prefixed = [i for i in items if i.id.startswith(ref)]
    return prefixed[0] if len(prefixed) == 1 else None


def _current_project(state: AppState) -> Project | None:
    if not state.current_project_id:
        return None
    return state.store.get_project(state.current_project_id)


def _module_by_name(
        state: AppState,
        project: Project,
        name: str,
        *,
        prefer_deleted: bool = False,
) -> Module | None:
    """
    Active module with this name. With prefer_deleted a soft-deleted
    namesake wins and the active one is the fallback.
    """
    matches = [m for m in state.store.get_modules(project.id, True) if m.name == name]
    active = [m for m in matches if not m.deleted]
    deleted = [m for m in matches if m.deleted]
    ordered = deleted + active if prefer_deleted else active
    return ordered[0] if ordered else None


def _task_line(index: int, task: Task) -> str:
    if task.shelved:
        mark = "~"
    elif task.completed:
        mark = "x"
    else:
        mark = " "
    module = f" [{task.module}]" if task.module else ""
    kind = f" ({task.type})" if task.type else ""
    checks = progress(task.check_items)
    check_str = f" {checks[0]}/{checks[1]}" if checks else ""
    return f"  {index}. [{mark}]{module}{kind} {task.name}{check_str}  id={task.id}"


_NO_PROJECT = "No project selected. Use /project add <name> or /project use <n>."


# ---- general ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    project = _current_project(state)
    store = state.store
    return (
        "Status:\n"
        f"  Store: {store.db_path or '(memory)'}\n"
        f"  Images: {state.images_dir or '-'}\n"
        f"  Projects: {store.count_projects()}\n"
        f"  Current project: {project.name if project else '-'}"
    )


def cmd_projects(state: AppState, args: list[str]) -> str:
    projects = project_api.list_projects(state.store)
    if not projects:
        return "No projects yet. Use /project add <name>."
    lines = ["Projects:"]
    for i, p in enumerate(projects, start=1):
        cur = "*" if p.id == state.current_project_id else " "
        pending = state.store.get_pending_task_count(p.id)
        lines.append(f" {cur}{i}. {p.name} (pending: {pending})  id={p.id}")
    return "\n".join(lines)


def cmd_project(state: AppState, args: list[str]) -> str:
    """
    /project add <name> [memo]
    /project use <n|id>
    /project rename <n|id> <name>
    /project memo <n|id> <text>
    /project delete <n|id>
    """
    usage = "Usage: /project add|use|rename|memo|delete ..."
    if not args:
        return usage
    sub, rest = args[0].lower(), args[1:]
    store = state.store

    if sub == "add":
        if not rest:
            return "Usage: /project add <name> [memo]"
        res = project_api.create_project(store, rest[0], memo=" ".join(rest[1:]))
        if res.success:
            state.current_project_id = res.value.id
        return _reply(res, f"Project created: {rest[0]}")

    if not rest:
        return usage
    project = _pick(project_api.list_projects(store), rest[0])
    if project is None:
        return f"No project matches '{rest[0]}'."

    if sub == "use":
        state.current_project_id = project.id
        return f"Current project: {project.name}"

    if sub == "rename":
        if len(rest) < 2:
            return "Usage: /project rename <n|id> <name>"
        res = project_api.update_project(store, project.id, name=rest[1])
        return _reply(res, f"Project renamed to {rest[1]}")

    if sub == "memo":
        res = project_api.update_project(store, project.id, memo=" ".join(rest[1:]))
        return _reply(res, "Memo saved.")

    if sub == "delete":
        res = project_api.delete_project(store, project.id, images_dir=state.images_dir)
        if res.success and state.current_project_id == project.id:
            remaining = store.get_projects()
            state.current_project_id = remaining[0].id if remaining else None
        return _reply(res, f"Project deleted: {project.name}")

    return usage


# ---- modules ----


def cmd_modules(state: AppState, args: list[str]) -> str:
    """/modules [all] -> modules of the current project (all includes deleted)."""
    project = _current_project(state)
    if project is None:
        return _NO_PROJECT
    include_deleted = bool(args) and args[0].lower() == "all"
    modules = module_api.list_modules(state.store, project.id, include_deleted=include_deleted)
    if not modules:
        return "No modules."
    lines = [f"Modules of {project.name}:"]
    for m in modules:
        total = state.store.get_task_count_by_module(project.id, m.name)
        pending = state.store.get_pending_task_count_by_module(project.id, m.name)
        gone = " (deleted)" if m.deleted else ""
        lines.append(f"  {m.name}{gone}: {pending} pending / {total} total")
    return "\n".join(lines)


def cmd_module(state: AppState, args: list[str]) -> str:
    """
    /module add <name>
    /module rename <name> <new name>
    /module delete|restore|purge <name>
    """
    usage = "Usage: /module add|rename|delete|restore|purge <name> ..."
    project = _current_project(state)
    if project is None:
        return _NO_PROJECT
    if len(args) < 2:
        return usage
    sub, name = args[0].lower(), args[1]
    store = state.store

    if sub == "add":
        res = module_api.add_module(store, project.id, name)
        return _reply(res, f"Module ready: {name}")

    module = _module_by_name(state, project, name, prefer_deleted=sub in ("restore", "purge"))
    if module is None:
        return f"No module named '{name}'."

    if sub == "rename":
        if len(args) < 3:
            return "Usage: /module rename <name> <new name>"
        res = module_api.rename_module(store, module.id, args[2])
        return _reply(res, f"Module renamed: {name} -> {args[2]}")
    if sub == "delete":
        return _reply(module_api.delete_module(store, module.id), f"Module deleted: {name}")
    if sub == "restore":
        return _reply(module_api.restore_module(store, module.id), f"Module restored: {name}")
    if sub == "purge":
        res = module_api.permanent_delete_module(store, module.id)
        return _reply(res, f"Module removed permanently: {name}")

    return usage


# ---- tasks ----


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """/tasks [module] -> tasks of the current project, newest first."""
    project = _current_project(state)
    if project is None:
        return _NO_PROJECT
    tasks = task_api.list_tasks(state.store, project.id)
    if not tasks:
        return "No tasks."
    lines = [f"Tasks of {project.name}:"]
    for i, t in enumerate(tasks, start=1):
        if args and t.module != args[0]:
            continue
        lines.append(_task_line(i, t))
    return "\n".join(lines)


def cmd_task(state: AppState, args: list[str]) -> str:
    """
    /task add <description> [module] [type]
    /task done|rollback|shelve|unshelve|delete <n|id>
    /task move <n|id> <module>
    """
    usage = "Usage: /task add|done|rollback|shelve|unshelve|move|delete ..."
    project = _current_project(state)
    if project is None:
        return _NO_PROJECT
    if len(args) < 2:
        return usage
    sub, rest = args[0].lower(), args[1:]
    store = state.store

    if sub == "add":
        module = rest[1] if len(rest) > 1 else ""
        if module and _module_by_name(state, project, module) is None:
            added = module_api.add_module(store, project.id, module)
            if not added.success:
                return f"Error: {added.error}"
        res = task_api.add_task(
            store,
            project.id,
            rest[0],
            module=module,
            type=rest[2] if len(rest) > 2 else "",
        )
        return _reply(res, f"Task added: {rest[0]}")

    task = _pick(task_api.list_tasks(store, project.id), rest[0])
    if task is None:
        return f"No task matches '{rest[0]}'."

    simple = {
        "done": (task_api.mark_done, "Task completed"),
        "rollback": (task_api.rollback, "Task reopened"),
        "shelve": (task_api.shelve, "Task shelved"),
        "unshelve": (task_api.unshelve, "Task unshelved"),
    }
    if sub in simple:
        fn, text = simple[sub]
        return _reply(fn(store, task.id), f"{text}: {task.name}")

    if sub == "move":
        module = rest[1] if len(rest) > 1 else ""
        res = task_api.change_module(store, task.id, module)
        return _reply(res, f"Task moved to {module or '(no module)'}: {task.name}")

    if sub == "delete":
        res = task_api.delete_task(store, task.id, images_dir=state.images_dir)
        return _reply(res, f"Task deleted: {task.name}")

    return usage


def cmd_stats(state: AppState, args: list[str]) -> str:
    project = _current_project(state)
    if project is None:
        return _NO_PROJECT
    stats = task_api.today_stats(state.store, project.id)
    pending = state.store.get_pending_task_count(project.id)
    return (
        f"Today in {project.name}:\n"
        f"  Completed: {stats['count']}\n"
        f"  Created: {stats['newCount']}\n"
        f"  Pending overall: {pending}"
    )


# ---- backup ----


def _default_export_path(state: AppState) -> Path:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return Path(state.settings.data_dir) / "backups" / f"tasklog-{stamp}.zip"


def cmd_export(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/export [path.zip]"""
    dest = Path(args[0]).expanduser() if args else _default_export_path(state)
    if emit:
        emit(f"[BACKUP] Writing {dest}...")
    try:
        path = export_archive(state.store, dest, images_dir=state.images_dir)
    except OSError as exc:
        logger.exception("Export failed: %s", dest)
        return f"Error: export failed: {exc}"
    return f"Backup written: {path}"


def cmd_import(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/import <path.zip|path.json>"""
    if not args:
        return "Usage: /import <backup.zip|backup.json>"
    src = Path(args[0]).expanduser()
    if emit:
        emit(f"[BACKUP] Restoring from {src}...")
    res = import_archive(state.store, src, images_dir=state.images_dir)
    if res.success:
        projects = state.store.get_projects()
        state.current_project_id = projects[0].id if projects else None
    return _reply(res, f"Backup restored from {src.name}. Projects: {state.store.count_projects()}")


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show store location and current project.")
registry.register("projects", cmd_projects, help_text="List projects.")
registry.register(
    "project", cmd_project, help_text="Manage projects: /project add|use|rename|memo|delete."
)
registry.register("modules", cmd_modules, help_text="List modules: /modules [all].")
registry.register(
    "module", cmd_module, help_text="Manage modules: /module add|rename|delete|restore|purge."
)
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [module].")
registry.register(
    "task",
    cmd_task,
    help_text="Manage tasks: /task add|done|rollback|shelve|unshelve|move|delete.",
)
registry.register("stats", cmd_stats, help_text="Today's completed/created counts.")
registry.register("export", cmd_export, help_text="Write a backup zip: /export [path].")
registry.register("import", cmd_import, help_text="Restore a backup: /import <path>.")
