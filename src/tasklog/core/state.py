# src/tasklog/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..migration.legacy import MigrationReport
from ..store.store import TaskLogStore


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    store: TaskLogStore
    images_dir: Path | None = None

    # Project the console commands act on.
    current_project_id: str | None = None

    migration: MigrationReport = field(default_factory=MigrationReport)
