# src/tsk/tasks/ordering.py

"""
Peer ordering.

Every task has a float `peer_index` that orders it among its siblings (tasks
with the same parent, or all roots). A new position between two neighbours is
their midpoint, so inserting never renumbers anyone else. When the floats run
out of room between two neighbours the whole group is rebalanced to 0, 1, 2...
and the insertion is retried; that is the only time other siblings move.

Ties (possible only through hand-edited or imported records) fall back to
created_at, then id, so the order is always total.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from .task_models import Task


def sort_key(task: Task) -> tuple[float, datetime, str]:
    return (task.peer_index, task.created_at, task.id)


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=sort_key)


def position_between(prev: Task | None, next_: Task | None) -> float:
    """
    Position for a task placed after `prev` and before `next_`.

    - empty group       -> 0
    - append after prev -> prev + 1
    - prepend before    -> next - 1
    - between the two   -> midpoint
    """
    if prev is None and next_ is None:
        return 0.0
    if next_ is None:
        return prev.peer_index + 1.0
    if prev is None:
        return next_.peer_index - 1.0
    return (prev.peer_index + next_.peer_index) / 2.0


def fits(prev: Task | None, pos: float, next_: Task | None) -> bool:
    """True if `pos` sorts strictly between the neighbours."""
    if prev is not None and not prev.peer_index < pos:
        return False
    if next_ is not None and not pos < next_.peer_index:
        return False
    return True


def rebalance(group: Iterable[Task]) -> dict[str, float]:
    """New evenly spaced indices for a group, keeping its current order."""
    return {t.id: float(i) for i, t in enumerate(sort_tasks(group))}


@dataclass(slots=True)
class Placement:
    peer_index: float
    # Siblings whose index had to change (only after a rebalance).
    moved: dict[str, float] = field(default_factory=dict)


def _neighbours(
    ordered: Sequence[Task], after: str | None, before: str | None
) -> tuple[Task | None, Task | None]:
    ids = [t.id for t in ordered]
    if after is not None and before is not None:
        i, j = ids.index(after), ids.index(before)
        if j != i + 1:
            raise ValueError(f"{after} and {before} are not adjacent siblings")
        return ordered[i], ordered[j]
    if after is not None:
        i = ids.index(after)
        return ordered[i], (ordered[i + 1] if i + 1 < len(ordered) else None)
    if before is not None:
        j = ids.index(before)
        return (ordered[j - 1] if j > 0 else None), ordered[j]
    return (ordered[-1] if ordered else None), None


def place(group: Iterable[Task], *, after: str | None = None, before: str | None = None) -> Placement:
    """
    Compute a position in `group` (which must not contain the task being placed).

    `after` / `before` name siblings the new position follows / precedes; with
    neither, the task goes to the end of the group.
    """
    ordered = sort_tasks(group)
    prev, next_ = _neighbours(ordered, after, before)
    pos = position_between(prev, next_)
    if fits(prev, pos, next_):
        return Placement(pos)

    moved = rebalance(ordered)
    rebalanced = [replace(t, peer_index=moved[t.id]) for t in ordered]
    prev, next_ = _neighbours(rebalanced, after, before)
    pos = position_between(prev, next_)
    changed = {t.id: moved[t.id] for t in ordered if moved[t.id] != t.peer_index}
    return Placement(pos, changed)
