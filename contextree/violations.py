"""Violation value objects shared by every audit."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ViolationKind(str, Enum):
    OVER_BUDGET = "over-budget"
    STALE = "stale"
    DANGLING_LINK = "dangling-link"
    ORPHAN = "orphan"
    DUPLICATE_MODULE = "duplicate-module"
    CYCLE = "cycle"
    LOST_PROGRESS = "lost-progress"
    ORPHANED_PROGRESS = "orphaned-progress"
    MISSING_INDEX = "missing-index"
    DUPLICATE_INDEX = "duplicate-index"
    DUPLICATE_RULE = "duplicate-rule"
    DUPLICATE_PROGRESS = "duplicate-progress"
    PROGRESS_ON_DONE_MODULE = "progress-on-done-module"


class Violation:
    """A single non-fatal finding against one path.

    ``data`` carries the structured details (e.g. ``actual``/``ceiling`` for
    over-budget) and is not part of equality.
    """

    __slots__ = ("kind", "path", "message", "data")

    def __init__(self, kind: ViolationKind, path: str | None, message: str, **data: Any) -> None:
        self.kind = kind
        self.path = path
        self.message = message
        self.data = data

    def __repr__(self) -> str:
        loc = self.kind.value
        if self.path:
            loc += f"@{self.path}"
        return f"Violation({loc}: {self.message})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Violation):
            return NotImplemented
        return (
            self.kind == other.kind
            and self.path == other.path
            and self.message == other.message
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.path, self.message))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "path": self.path, "message": self.message, **self.data}


def over_budget(path: str, actual: int, ceiling: int) -> Violation:
    return Violation(
        ViolationKind.OVER_BUDGET, path,
        f"{actual} lines exceeds the {ceiling}-line budget",
        actual=actual, ceiling=ceiling,
    )


def stale(path: str, verified: Any, age_days: int | None, window: int) -> Violation:
    if verified is None:
        message = "no verification date declared (treated as stale)"
    else:
        message = f"last verified {verified.isoformat()}, {age_days} days ago (window {window} days)"
    return Violation(
        ViolationKind.STALE, path, message,
        verified=verified.isoformat() if verified else "unknown", age_days=age_days,
    )
