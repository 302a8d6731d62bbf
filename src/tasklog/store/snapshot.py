# src/tasklog/store/snapshot.py

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class FileSnapshot:
    """
    Whole-file snapshot target.

    Every write replaces the file in one step (tmp file + os.replace), so a
    crash mid-write leaves the previous image intact.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> bytes | None:
        if not self._path.exists():
            return None
        return self._path.read_bytes()

    def write(self, data: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, self._path)
        logger.debug("Snapshot written path=%s bytes=%d", self._path, len(data))
