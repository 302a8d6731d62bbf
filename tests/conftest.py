# tests/conftest.py

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from tasklog.core.state import AppState
from tasklog.store.store import TaskLogStore

from .fakes import MemorySnapshot


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    data_dir = tmp_path / "data"
    return SimpleNamespace(
        app_name="tasklog-test",
        log_level="DEBUG",
        log_levels="",
        data_dir=data_dir,
        db_path=data_dir / "tasklog.db",
        images_dir=data_dir / "images",
        legacy_dir=data_dir,
        log_dir=data_dir,
        migrate_on_startup=True,
    )


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[TaskLogStore]:
    """
    Real file-backed store.

    NOTE: We keep real SQLite stores here because their correctness is part
    of what we want to test.
    """
    s = TaskLogStore(tmp_path / "tasklog.db")
    yield s
    s.close()


@pytest.fixture()
def snapshot() -> MemorySnapshot:
    return MemorySnapshot()


@pytest.fixture()
def mem_store(snapshot: MemorySnapshot) -> TaskLogStore:
    return TaskLogStore(snapshot)


@pytest.fixture()
def state(settings: SimpleNamespace) -> Iterator[AppState]:
    settings.images_dir.mkdir(parents=True, exist_ok=True)
    s = TaskLogStore(settings.db_path)
    yield AppState(settings=settings, store=s, images_dir=settings.images_dir)
    s.close()
