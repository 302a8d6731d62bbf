# src/tasklog/api/attachments.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


def resolve_image_path(images_dir: str | Path, image: str) -> Path:
    """Tasks store file names; absolute paths from very old data are kept as-is."""
    p = Path(image)
    if p.is_absolute():
        return p
    return Path(images_dir) / p


def remove_images(images_dir: str | Path | None, images: Iterable[str]) -> int:
    """
    Best-effort removal of attachment files. Returns how many were deleted.

    A file that cannot be removed is logged and skipped; the record it
    belonged to is already gone and there is nothing to roll back.
    """
    if images_dir is None:
        return 0

    removed = 0
    for image in images:
        path = resolve_image_path(images_dir, image)
        try:
            if path.is_file():
                path.unlink()
                removed += 1
        except OSError:
            logger.exception("Failed to remove attachment %s", path)
    return removed
