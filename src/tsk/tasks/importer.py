# src/tsk/tasks/importer.py

"""
Bulk import of issue feeds (beads JSONL export format).

One JSON object per line:

    {"id": "bd-a1b2", "title": "...", "status": "in_progress", "priority": 1,
     "issue_type": "bug", "created_at": "2024-01-01T00:00:00Z",
     "dependencies": [{"depends_on_id": "bd-c3d4", "type": "blocks"}]}

This module only parses and checks each line on its own. Checks that need the
whole batch and the store (unknown references, cycles, duplicates against
existing ids) run in TaskStore.import_records, which reports the first failing
line as ImportRejected.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from .codec import parse_timestamp
from .errors import ImportRejected, InvalidRecord, TaskError
from .ids import is_valid_id
from .task_models import (
    DEFAULT_ISSUE_TYPE,
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    Task,
    TaskStatus,
)

logger = logging.getLogger(__name__)

STATUS_ALIASES: dict[str, TaskStatus] = {
    "open": TaskStatus.OPEN,
    "blocked": TaskStatus.OPEN,
    "deferred": TaskStatus.OPEN,
    "active": TaskStatus.ACTIVE,
    "in_progress": TaskStatus.ACTIVE,
    "closed": TaskStatus.CLOSED,
    "done": TaskStatus.CLOSED,
}

PARENT_CHILD = "parent-child"


@dataclass(slots=True)
class ImportRow:
    line_no: int
    task: Task
    parent: str | None = None
    blocks: list[str] = field(default_factory=list)
    related: list[str] = field(default_factory=list)
    # False when the feed did not carry a position; the store appends in feed order.
    has_peer_index: bool = False


def _opt_text(obj: Mapping[str, Any], key: str, task_id: str) -> str | None:
    raw = obj.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise InvalidRecord(task_id, f"'{key}' must be a string, got {raw!r}")
    return raw


def _dependencies(raw: Any, task_id: str) -> list[dict[str, Any]]:
    # Exports built with json_group_array carry the list as a JSON string.
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError as e:
            raise InvalidRecord(task_id, f"unreadable dependencies ({e})") from e
    if not isinstance(raw, list):
        raise InvalidRecord(task_id, "'dependencies' must be a list")

    out: list[dict[str, Any]] = []
    for dep in raw:
        if not isinstance(dep, dict):
            raise InvalidRecord(task_id, f"malformed dependency {dep!r}")
        # LEFT JOIN style exports emit {"depends_on_id": null} for "no deps".
        if dep.get("depends_on_id") is None:
            continue
        out.append(dep)
    return out


def parse_record(line_no: int, obj: Any) -> ImportRow:
    """Turn one decoded feed object into an ImportRow, or raise InvalidRecord."""
    if not isinstance(obj, dict):
        raise InvalidRecord(None, f"line {line_no} is not a JSON object")

    task_id = obj.get("id")
    if not is_valid_id(task_id):
        raise InvalidRecord(None, f"malformed id {task_id!r}")

    title = obj.get("title")
    if not isinstance(title, str) or not title.strip():
        raise InvalidRecord(task_id, "missing required field 'title'")

    raw_status = obj.get("status")
    status = STATUS_ALIASES.get(raw_status.strip().lower()) if isinstance(raw_status, str) else None
    if status is None:
        raise InvalidRecord(task_id, f"unknown status {raw_status!r}")

    created_at = parse_timestamp(obj.get("created_at"))
    if created_at is None:
        raise InvalidRecord(task_id, f"bad or missing created_at {obj.get('created_at')!r}")

    closed_at = None
    if obj.get("closed_at") is not None:
        closed_at = parse_timestamp(obj["closed_at"])
        if closed_at is None:
            raise InvalidRecord(task_id, f"bad closed_at {obj['closed_at']!r}")
    if status is TaskStatus.CLOSED and closed_at is None:
        closed_at = created_at
    if status is not TaskStatus.CLOSED:
        closed_at = None

    priority = obj.get("priority", DEFAULT_PRIORITY)
    if priority is None:
        priority = DEFAULT_PRIORITY
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidRecord(task_id, f"'priority' must be an integer, got {priority!r}")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise InvalidRecord(task_id, f"'priority' must be {MIN_PRIORITY}-{MAX_PRIORITY}, got {priority}")

    peer_index = obj.get("peer_index")
    if peer_index is not None and (
        isinstance(peer_index, bool) or not isinstance(peer_index, (int, float))
    ):
        raise InvalidRecord(task_id, f"'peer_index' must be a number, got {peer_index!r}")
    if peer_index is not None and not math.isfinite(peer_index):
        raise InvalidRecord(task_id, f"'peer_index' must be finite, got {peer_index!r}")

    row = ImportRow(
        line_no=line_no,
        task=Task(
            id=task_id,
            title=title.strip(),
            status=status,
            created_at=created_at,
            description=(_opt_text(obj, "description", task_id) or "").strip("\n"),
            priority=priority,
            issue_type=_opt_text(obj, "issue_type", task_id) or DEFAULT_ISSUE_TYPE,
            assignee=_opt_text(obj, "assignee", task_id) or None,
            closed_at=closed_at,
            close_reason=(
                _opt_text(obj, "close_reason", task_id) or None
                if status is TaskStatus.CLOSED
                else None
            ),
            peer_index=float(peer_index) if peer_index is not None else 0.0,
        ),
        has_peer_index=peer_index is not None,
    )

    for dep in _dependencies(obj.get("dependencies"), task_id):
        target = dep["depends_on_id"]
        if not is_valid_id(target):
            raise InvalidRecord(task_id, f"malformed dependency id {target!r}")
        if target == task_id:
            raise InvalidRecord(task_id, "depends on itself")

        kind = dep.get("type") or "blocks"
        if kind == PARENT_CHILD:
            if row.parent is not None and row.parent != target:
                raise InvalidRecord(task_id, f"more than one parent ({row.parent}, {target})")
            row.parent = target
        elif kind == "blocks":
            if target not in row.blocks:
                row.blocks.append(target)
        elif target not in row.related:
            row.related.append(target)

    return row


def iter_records(lines: Iterable[str]) -> Iterator[tuple[int, Any]]:
    """Decode JSONL, yielding (line number, object). Blank lines are skipped."""
    for line_no, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            yield line_no, json.loads(line)
        except json.JSONDecodeError as e:
            raise ImportRejected(line_no, InvalidRecord(None, f"invalid JSON ({e.msg})")) from e


def parse_rows(records: Iterable[tuple[int, Any]]) -> list[ImportRow]:
    """
    Parse a whole feed.

    The first bad line aborts the batch with ImportRejected; duplicate ids
    inside the feed count as bad lines.
    """
    rows: list[ImportRow] = []
    seen: set[str] = set()
    for line_no, obj in records:
        try:
            row = parse_record(line_no, obj)
            if row.task.id in seen:
                raise InvalidRecord(row.task.id, "duplicate id in import")
        except TaskError as e:
            raise ImportRejected(line_no, e) from e
        seen.add(row.task.id)
        rows.append(row)
    logger.debug("Parsed %d import rows", len(rows))
    return rows


def read_jsonl(lines: Iterable[str]) -> list[ImportRow]:
    return parse_rows(iter_records(lines))
