# src/tasklog/cli/console.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _prompt(state: AppState) -> str:
    project = (
        state.store.get_project(state.current_project_id) if state.current_project_id else None
    )
    return f"{project.name if project else '-'}> "


def run_console_loop(state: AppState) -> None:
    logger.info("Console started db=%s", state.store.db_path)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    if state.migration.imported_anything:
        _print_ts(
            f"[MIGRATION] Imported {state.migration.projects} project(s), "
            f"{state.migration.tasks} task(s) from older data files."
        )

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (export/import)
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(_prompt(state)).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            cmd_response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is None:
            cmd_response = "Commands start with '/'. Use /help to list them."
        print(f"[{_ts_local()}] {cmd_response}")

    logger.info("Console finished.")
