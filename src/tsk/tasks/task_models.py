# src/tsk/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - open and active tasks block their dependents; closed tasks never do.
    - there is no transition out of "closed".
    """

    OPEN = "open"
    ACTIVE = "active"
    CLOSED = "closed"

    @property
    def is_blocking(self) -> bool:
        return self is not TaskStatus.CLOSED

    @classmethod
    def parse(cls, raw: Any) -> TaskStatus | None:
        """Return the status for `raw`, or None if it is not a known status."""
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


class DependencyKind(StrEnum):
    BLOCKS = "blocks"
    RELATED = "related"


DEFAULT_PRIORITY = 2
MIN_PRIORITY = 0
MAX_PRIORITY = 4
DEFAULT_ISSUE_TYPE = "task"


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus
    created_at: datetime

    description: str = ""
    priority: int = DEFAULT_PRIORITY
    issue_type: str = DEFAULT_ISSUE_TYPE
    assignee: str | None = None

    closed_at: datetime | None = None
    close_reason: str | None = None

    blocks: list[str] = field(default_factory=list)
    related: list[str] = field(default_factory=list)

    parent: str | None = None
    peer_index: float = 0.0

    # Derived from the record's location, never persisted in the header.
    archived: bool = False

    # Unknown header keys, written back untouched.
    extra: dict[str, Any] = field(default_factory=dict)

    def links(self, kind: DependencyKind) -> list[str]:
        return self.blocks if kind is DependencyKind.BLOCKS else self.related

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority,
            "issue_type": self.issue_type,
            "assignee": self.assignee,
            "created_at": self.created_at.isoformat(timespec="microseconds"),
            "closed_at": (
                self.closed_at.isoformat(timespec="microseconds") if self.closed_at else None
            ),
            "close_reason": self.close_reason,
            "blocks": list(self.blocks),
            "related": list(self.related),
            "parent": self.parent,
            "peer_index": self.peer_index,
            "archived": self.archived,
        }
