# src/tasklog/store/models.py

"""
Record types for the task store.

Python attributes and SQL columns are snake_case. The JSON wire format
(legacy per-entity files, export documents) is camelCase, so every record
has a to_dict()/from_dict() pair for that boundary.

Task sub-documents (code block, checklist) are stored as JSON text columns;
to_json()/from_json() are the only place that text is produced or parsed.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

APP_CONFIG_KEY = "app_config"

DEFAULT_CODE_LANGUAGE = "javascript"


def now_iso() -> str:
    """UTC timestamp, millisecond precision, 'Z' suffix (sortable as text)."""
    ts = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return ts.replace("+00:00", "Z")


def new_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


def encode_json_field(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def decode_json_field(raw: str | None, default: Any) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Corrupt JSON field; using default. raw=%r", raw[:80])
        return default


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


class CheckMode(StrEnum):
    SINGLE = "single"
    MULTIPLE = "multiple"

    @classmethod
    def from_db(cls, raw: str | None) -> CheckMode:
        if not raw:
            return cls.MULTIPLE
        try:
            return cls(raw)
        except ValueError:
            return cls.MULTIPLE


@dataclass(slots=True)
class CodeBlock:
    enabled: bool = False
    language: str = DEFAULT_CODE_LANGUAGE
    code: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "language": self.language, "code": self.code}

    @classmethod
    def from_dict(cls, data: Any) -> CodeBlock:
        if not isinstance(data, dict):
            return cls()
        return cls(
            enabled=bool(data.get("enabled", False)),
            language=str(data.get("language") or DEFAULT_CODE_LANGUAGE),
            code=str(data.get("code") or ""),
        )

    def to_json(self) -> str:
        return encode_json_field(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | None) -> CodeBlock:
        return cls.from_dict(decode_json_field(raw, None))


@dataclass(slots=True)
class CheckItem:
    id: str
    name: str
    checked: bool = False
    parent_id: str | None = None
    remark: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "checked": self.checked,
            "parentId": self.parent_id,
            "remark": self.remark,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckItem:
        # Older rows have no parentId at all; treat that as a root item.
        return cls(
            id=str(data.get("id") or new_id()),
            name=str(data.get("name") or ""),
            checked=bool(data.get("checked", False)),
            parent_id=_opt_str(data.get("parentId")) or None,
            remark=_opt_str(data.get("remark")),
        )


@dataclass(slots=True)
class CheckItems:
    enabled: bool = False
    mode: CheckMode = CheckMode.MULTIPLE
    items: list[CheckItem] = field(default_factory=list)
    linkage: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "mode": self.mode.value,
            "items": [i.to_dict() for i in self.items],
            "linkage": self.linkage,
        }

    @classmethod
    def from_dict(cls, data: Any) -> CheckItems:
        if not isinstance(data, dict):
            return cls()
        raw_items = data.get("items")
        items = [
            CheckItem.from_dict(i) for i in (raw_items if isinstance(raw_items, list) else [])
            if isinstance(i, dict)
        ]
        return cls(
            enabled=bool(data.get("enabled", False)),
            mode=CheckMode.from_db(data.get("mode")),
            items=items,
            # linkage is on unless explicitly switched off
            linkage=data.get("linkage") is not False,
        )

    def to_json(self) -> str:
        return encode_json_field(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | None) -> CheckItems:
        return cls.from_dict(decode_json_field(raw, None))

    def copy(self) -> CheckItems:
        return replace(self, items=[replace(i) for i in self.items])


def images_to_json(images: list[str] | None) -> str:
    return encode_json_field([str(i) for i in (images or [])])


def images_from_json(raw: str | None) -> list[str]:
    val = decode_json_field(raw, [])
    if not isinstance(val, list):
        return []
    return [str(i) for i in val]


@dataclass(slots=True)
class Project:
    id: str
    name: str
    memo: str
    created_at: str
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "memo": self.memo,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            memo=str(data.get("memo") or ""),
            created_at=str(data.get("createdAt") or now_iso()),
            updated_at=_opt_str(data.get("updatedAt")),
        )


@dataclass(slots=True)
class Module:
    id: str
    project_id: str
    name: str
    order: int | None
    deleted: bool
    created_at: str
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "name": self.name,
            "order": self.order,
            "deleted": self.deleted,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Module:
        order = data.get("order")
        return cls(
            id=str(data.get("id") or ""),
            project_id=str(data.get("projectId") or ""),
            name=str(data.get("name") or ""),
            order=int(order) if isinstance(order, (int, float)) else None,
            deleted=bool(data.get("deleted", False)),
            created_at=str(data.get("createdAt") or now_iso()),
            updated_at=_opt_str(data.get("updatedAt")),
        )


@dataclass(slots=True)
class Task:
    id: str
    project_id: str
    module: str
    name: str
    type: str
    initiator: str
    remark: str
    images: list[str]
    code_block: CodeBlock
    check_items: CheckItems
    check_items_before_complete: CheckItems | None
    completed: bool
    shelved: bool
    created_at: str
    completed_at: str | None = None
    shelved_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        before = self.check_items_before_complete
        return {
            "id": self.id,
            "projectId": self.project_id,
            "module": self.module,
            "name": self.name,
            "type": self.type,
            "initiator": self.initiator,
            "remark": self.remark,
            "images": list(self.images),
            "codeBlock": self.code_block.to_dict(),
            "checkItems": self.check_items.to_dict(),
            "checkItemsBeforeComplete": before.to_dict() if before is not None else None,
            "completed": self.completed,
            "shelved": self.shelved,
            "createdAt": self.created_at,
            "completedAt": self.completed_at,
            "shelvedAt": self.shelved_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        images = data.get("images")
        before = data.get("checkItemsBeforeComplete")
        return cls(
            id=str(data.get("id") or ""),
            project_id=str(data.get("projectId") or ""),
            module=str(data.get("module") or ""),
            name=str(data.get("name") or ""),
            type=str(data.get("type") or ""),
            initiator=str(data.get("initiator") or ""),
            remark=str(data.get("remark") or ""),
            images=[str(i) for i in images] if isinstance(images, list) else [],
            code_block=CodeBlock.from_dict(data.get("codeBlock")),
            check_items=CheckItems.from_dict(data.get("checkItems")),
            check_items_before_complete=(
                CheckItems.from_dict(before) if isinstance(before, dict) else None
            ),
            completed=bool(data.get("completed", False)),
            shelved=bool(data.get("shelved", False)),
            created_at=str(data.get("createdAt") or now_iso()),
            completed_at=_opt_str(data.get("completedAt")),
            shelved_at=_opt_str(data.get("shelvedAt")),
            updated_at=_opt_str(data.get("updatedAt")),
        )
