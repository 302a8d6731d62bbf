# src/tasklog/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from pathlib import Path

LOG_FILE_NAME = "tasklog.log"

# Minimum level a record needs to reach the console, by logger name prefix.
# The longest matching prefix wins; the log file still gets everything.
DEFAULT_CONSOLE_LEVELS: dict[str, int] = {
    "tasklog": logging.DEBUG,
    # per-row statements and reads
    "tasklog.store": logging.INFO,
    # one warning per skipped legacy record can be long; the summary is INFO
    "tasklog.migration": logging.INFO,
    "py.warnings": logging.ERROR,
    "": logging.ERROR,
}


def parse_levels(raw: str) -> dict[str, int]:
    """
    "tasklog.migration=DEBUG, tasklog.store=WARNING" -> {name: level}.

    Unknown level names and malformed pairs are ignored.
    """
    levels: dict[str, int] = {}
    for part in (raw or "").split(","):
        name, sep, level_name = part.partition("=")
        level = logging.getLevelName(level_name.strip().upper())
        if sep and name.strip() and isinstance(level, int):
            levels[name.strip()] = level
    return levels


class _ConsoleLevelFilter(logging.Filter):
    """Console gate: per-prefix thresholds on top of the handler level."""

    def __init__(self, levels: Mapping[str, int]) -> None:
        super().__init__()
        # Longest prefix first.
        self._levels = sorted(levels.items(), key=lambda kv: len(kv[0]), reverse=True)

    def threshold(self, name: str) -> int:
        for prefix, level in self._levels:
            if not prefix or name == prefix or name.startswith(prefix + "."):
                return level
        return logging.ERROR

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.threshold(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasklog",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    levels: Mapping[str, int] | None = None,
) -> Path:
    """
    Configure logging with:
    - Console handler: filtered per logger (see DEFAULT_CONSOLE_LEVELS)
    - File handler: full logs for debugging

    `levels` overrides entries of DEFAULT_CONSOLE_LEVELS. Call this ONCE,
    very early (before first logger.info). Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    overrides = dict(levels or {})
    thresholds = {name: max(level, console_level) for name, level in DEFAULT_CONSOLE_LEVELS.items()}
    # Overrides may go below console_level.
    thresholds.update(overrides)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(min([console_level, *overrides.values()]))
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleLevelFilter(thresholds))
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # Route warnings.warn(...) into logging as 'py.warnings'
    logging.captureWarnings(True)
    return log_file
