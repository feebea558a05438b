# src/tsk/tasks/codec.py

"""
Record codec: one task <-> one Markdown file with a YAML header.

    ---
    title: Fix login
    status: open
    created-at: '2024-01-01T00:00:00.000000+00:00'
    blocks:
    - tsk-db-migration-abcd1234
    ---
    Description body.

Required header keys are title, status and created-at. A missing or malformed
required key is an InvalidRecord, never a guessed value. Unknown keys are kept
in Task.extra and written back unchanged.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import yaml

from .errors import InvalidRecord
from .ids import is_valid_id
from .task_models import (
    DEFAULT_ISSUE_TYPE,
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    Task,
    TaskStatus,
)

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?P<header>.*?)^---[ \t]*(?:\r?\n|\Z)(?P<body>.*)\Z",
    re.DOTALL | re.MULTILINE,
)

KNOWN_KEYS = frozenset(
    {
        "title",
        "status",
        "priority",
        "issue-type",
        "assignee",
        "created-at",
        "closed-at",
        "close-reason",
        "peer-index",
        "blocks",
        "related",
    }
)


def format_timestamp(ts: datetime) -> str:
    return ts.isoformat(timespec="microseconds")


def parse_timestamp(raw: Any) -> datetime | None:
    """Accept ISO strings and the datetime/date objects YAML produces for unquoted values."""
    if isinstance(raw, datetime):
        ts = raw
    elif isinstance(raw, date):
        ts = datetime(raw.year, raw.month, raw.day)
    elif isinstance(raw, str):
        try:
            ts = datetime.fromisoformat(raw.strip())
        except ValueError:
            return None
    else:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def encode(task: Task) -> bytes:
    header: dict[str, Any] = {
        "title": task.title,
        "status": task.status.value,
        "priority": task.priority,
        "issue-type": task.issue_type,
    }
    if task.assignee:
        header["assignee"] = task.assignee
    header["created-at"] = format_timestamp(task.created_at)
    if task.closed_at is not None:
        header["closed-at"] = format_timestamp(task.closed_at)
    if task.close_reason:
        header["close-reason"] = task.close_reason
    header["peer-index"] = float(task.peer_index)
    if task.blocks:
        header["blocks"] = list(task.blocks)
    if task.related:
        header["related"] = list(task.related)
    for key, value in task.extra.items():
        if key not in KNOWN_KEYS:
            header[key] = value

    text = yaml.safe_dump(header, sort_keys=False, default_flow_style=False, allow_unicode=True)
    body = f"{task.description}\n" if task.description else ""
    return f"---\n{text}---\n{body}".encode("utf-8")


def _body_text(body: str) -> str:
    """Undo the single line break `encode` appends; everything else is description."""
    if body.endswith("\r\n"):
        return body[:-2]
    if body.endswith("\n"):
        return body[:-1]
    return body


def _text_field(header: dict[str, Any], key: str, task_id: str, path: Path | None) -> str | None:
    raw = header.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        raise InvalidRecord(task_id, f"'{key}' must be text", path=path)
    return str(raw)


def _id_list(header: dict[str, Any], key: str, task_id: str, path: Path | None) -> list[str]:
    raw = header.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidRecord(task_id, f"'{key}' must be a list of task ids", path=path)

    out: list[str] = []
    for ref in raw:
        if not is_valid_id(ref):
            raise InvalidRecord(task_id, f"malformed reference {ref!r} in '{key}'", path=path)
        if ref == task_id:
            raise InvalidRecord(task_id, f"'{key}' references the task itself", path=path)
        if ref not in out:
            out.append(ref)
    return out


def decode(
    data: bytes,
    *,
    task_id: str,
    parent: str | None = None,
    archived: bool = False,
    path: Path | None = None,
) -> Task:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidRecord(task_id, f"not UTF-8 ({e})", path=path) from e

    m = _FRONTMATTER_RE.match(text)
    if m is None:
        raise InvalidRecord(task_id, "missing '---' header block", path=path)

    try:
        header = yaml.safe_load(m.group("header")) or {}
    except yaml.YAMLError as e:
        raise InvalidRecord(task_id, f"unreadable header ({e})", path=path) from e
    if not isinstance(header, dict):
        raise InvalidRecord(task_id, "header is not a mapping", path=path)

    title = _text_field(header, "title", task_id, path)
    if title is None or not title.strip():
        raise InvalidRecord(task_id, "missing required field 'title'", path=path)

    if "status" not in header:
        raise InvalidRecord(task_id, "missing required field 'status'", path=path)
    status = TaskStatus.parse(header["status"])
    if status is None:
        raise InvalidRecord(task_id, f"unknown status {header['status']!r}", path=path)

    if "created-at" not in header:
        raise InvalidRecord(task_id, "missing required field 'created-at'", path=path)
    created_at = parse_timestamp(header["created-at"])
    if created_at is None:
        raise InvalidRecord(task_id, f"bad timestamp {header['created-at']!r} in 'created-at'", path=path)

    closed_at = None
    if header.get("closed-at") is not None:
        closed_at = parse_timestamp(header["closed-at"])
        if closed_at is None:
            raise InvalidRecord(task_id, f"bad timestamp {header['closed-at']!r} in 'closed-at'", path=path)

    priority = header.get("priority", DEFAULT_PRIORITY)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidRecord(task_id, f"'priority' must be an integer, got {priority!r}", path=path)
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise InvalidRecord(
            task_id, f"'priority' must be {MIN_PRIORITY}-{MAX_PRIORITY}, got {priority}", path=path
        )

    peer_index = header.get("peer-index", 0.0)
    if isinstance(peer_index, bool) or not isinstance(peer_index, (int, float)):
        raise InvalidRecord(task_id, f"'peer-index' must be a number, got {peer_index!r}", path=path)
    if not math.isfinite(peer_index):
        raise InvalidRecord(task_id, f"'peer-index' must be finite, got {peer_index!r}", path=path)

    return Task(
        id=task_id,
        title=title.strip(),
        status=status,
        created_at=created_at,
        description=_body_text(m.group("body")),
        priority=priority,
        issue_type=_text_field(header, "issue-type", task_id, path) or DEFAULT_ISSUE_TYPE,
        assignee=_text_field(header, "assignee", task_id, path),
        closed_at=closed_at,
        close_reason=_text_field(header, "close-reason", task_id, path),
        blocks=_id_list(header, "blocks", task_id, path),
        related=_id_list(header, "related", task_id, path),
        parent=parent,
        peer_index=float(peer_index),
        archived=archived,
        extra={k: v for k, v in header.items() if k not in KNOWN_KEYS},
    )
