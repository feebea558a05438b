# src/tsk/cli/render.py

"""Plain-text and JSON rendering of tasks for the terminal."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from datetime import datetime

from ..tasks.task_models import Task, TaskStatus

MARKERS = {
    TaskStatus.OPEN: "o",
    TaskStatus.ACTIVE: ">",
    TaskStatus.CLOSED: "x",
}


def _ts(ts: datetime) -> str:
    return ts.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_line(task: Task) -> str:
    return f"[{task.id}] {MARKERS[task.status]} {task.title}"


def format_list(tasks: Iterable[Task]) -> str:
    return "\n".join(format_line(t) for t in tasks)


def format_json(tasks: Iterable[Task]) -> str:
    return json.dumps([t.to_dict() for t in tasks], ensure_ascii=False, indent=2)


def format_tree(pairs: Sequence[tuple[int, Task]]) -> str:
    """
    Draw (depth, task) pairs in tree order:

        [tsk-release-1a2b3c4d] o Release
        ├─ [tsk-tag-0a1b2c3d] x Tag
        └─ [tsk-notes-9f8e7d6c] o Notes
    """
    last_flags: list[bool] = []
    for i, (depth, _) in enumerate(pairs):
        last = True
        for later, _ in pairs[i + 1:]:
            if later < depth:
                break
            if later == depth:
                last = False
                break
        last_flags.append(last)

    lines: list[str] = []
    stems: list[bool] = []
    for (depth, task), last in zip(pairs, last_flags):
        del stems[depth:]
        if depth == 0:
            lines.append(format_line(task))
        else:
            prefix = "".join("   " if done else "│  " for done in stems[1:depth])
            lines.append(f"{prefix}{'└─' if last else '├─'} {format_line(task)}")
        stems.append(last)
    return "\n".join(lines)


def format_show(
    task: Task,
    *,
    blockers: Sequence[Task] = (),
    dependents: Sequence[Task] = (),
    children: Sequence[Task] = (),
    blocked: bool = False,
) -> str:
    rows = [
        ("id", task.id),
        ("title", task.title),
        ("status", task.status.value + (" (blocked)" if blocked else "")),
        ("priority", str(task.priority)),
        ("type", task.issue_type),
    ]
    if task.assignee:
        rows.append(("assignee", task.assignee))
    if task.parent:
        rows.append(("parent", task.parent))
    rows.append(("created", _ts(task.created_at)))
    if task.closed_at is not None:
        rows.append(("closed", _ts(task.closed_at)))
    if task.close_reason:
        rows.append(("reason", task.close_reason))
    if task.archived:
        rows.append(("archived", "yes"))

    width = max(len(k) for k, _ in rows) + 1
    lines = [f"{k + ':':<{width}} {v}" for k, v in rows]

    known = {t.id for t in blockers}
    if task.blocks:
        lines.append("blocked by:")
        lines.extend(f"  {format_line(t)}" for t in blockers)
        lines.extend(f"  [{i}] ? (missing)" for i in task.blocks if i not in known)
    if dependents:
        lines.append("blocks:")
        lines.extend(f"  {format_line(t)}" for t in dependents)
    if task.related:
        lines.append("related: " + ", ".join(task.related))
    if children:
        lines.append("children:")
        lines.extend(f"  {format_line(t)}" for t in children)
    if task.description:
        lines.append("")
        lines.append(task.description)
    return "\n".join(lines)
