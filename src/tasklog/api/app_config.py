# src/tasklog/api/app_config.py

"""
The application settings document.

The store keeps it as one opaque JSON string under APP_CONFIG_KEY; the
shape checks below are the caller's side of that contract.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from ..core.ports import TaskRepo
from ..store.models import APP_CONFIG_KEY
from .results import OpResult

logger = logging.getLogger(__name__)

DEFAULT_APP_CONFIG: dict[str, Any] = {
    "general": {
        "searchScope": "all",
        "themeColors": {
            "startColor": "#667eea",
            "endColor": "#764ba2",
        },
    },
    "taskTypes": [
        {"name": "BUG", "color": "#ff4d4f"},
        {"name": "TODO", "color": "#1890ff"},
        {"name": "Improvement", "color": "#52c41a"},
        {"name": "Other", "color": "#faad14"},
    ],
}


def default_app_config() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_APP_CONFIG)


def _fill_general(config: dict[str, Any]) -> dict[str, Any]:
    general = config.get("general")
    if not isinstance(general, dict):
        config["general"] = copy.deepcopy(DEFAULT_APP_CONFIG["general"])
        return config
    if not isinstance(general.get("themeColors"), dict):
        general["themeColors"] = copy.deepcopy(DEFAULT_APP_CONFIG["general"]["themeColors"])
    return config


def load_app_config(store: TaskRepo) -> dict[str, Any]:
    """Stored document with gaps filled; defaults if missing or unusable."""
    raw = store.get_config(APP_CONFIG_KEY)
    if not raw:
        return default_app_config()
    try:
        config = json.loads(raw)
    except ValueError:
        logger.warning("Stored app config is not valid JSON; using defaults.")
        return default_app_config()
    if not isinstance(config, dict) or not isinstance(config.get("taskTypes"), list):
        return default_app_config()
    return _fill_general(config)


def save_app_config(store: TaskRepo, config: dict[str, Any]) -> OpResult:
    if not isinstance(config, dict) or not isinstance(config.get("taskTypes"), list):
        return OpResult.fail("Invalid config: 'taskTypes' must be a list.")
    config = _fill_general(copy.deepcopy(config))
    store.save_config(APP_CONFIG_KEY, json.dumps(config, ensure_ascii=False))
    return OpResult.ok(config)


def reset_app_config(store: TaskRepo) -> OpResult:
    return save_app_config(store, default_app_config())
