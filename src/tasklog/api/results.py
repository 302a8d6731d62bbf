# src/tasklog/api/results.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class OpResult:
    """
    Outcome of a caller-facing operation.

    Validation problems come back as success=False with a message the UI
    can show as-is; they are not raised.
    """

    success: bool
    error: str | None = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> OpResult:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str) -> OpResult:
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            out["error"] = self.error
        if self.value is not None:
            to_dict = getattr(self.value, "to_dict", None)
            out["value"] = to_dict() if callable(to_dict) else self.value
        return out
