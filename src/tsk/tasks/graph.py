# src/tsk/tasks/graph.py

"""
Dependency graph.

Edges point from a task to the task it waits on: `a -> b` means "a is blocked
by b". Only `blocks` edges take part in cycle checks and readiness; `related`
edges are informational links.

The graph is an adjacency mapping (id -> {target id: kind}); reachability
uses an explicit stack so deep chains never grow the Python call stack.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .errors import DependencyConflict, DependencyCycle
from .task_models import DependencyKind, Task, TaskStatus


class DependencyGraph:
    def __init__(self, statuses: Mapping[str, TaskStatus] | None = None) -> None:
        self._edges: dict[str, dict[str, DependencyKind]] = {}
        self._status: dict[str, TaskStatus] = dict(statuses or {})

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> DependencyGraph:
        """Build from stored records. Stored edges are trusted, not re-validated."""
        graph = cls()
        for t in tasks:
            graph._status[t.id] = t.status
            out = graph._edges.setdefault(t.id, {})
            for dst in t.related:
                out[dst] = DependencyKind.RELATED
            for dst in t.blocks:
                out[dst] = DependencyKind.BLOCKS
        return graph

    # ---- structure ----

    def set_status(self, task_id: str, status: TaskStatus) -> None:
        self._status[task_id] = status

    def edge(self, src: str, dst: str) -> DependencyKind | None:
        return self._edges.get(src, {}).get(dst)

    def targets(self, src: str, kind: DependencyKind = DependencyKind.BLOCKS) -> list[str]:
        return [d for d, k in self._edges.get(src, {}).items() if k is kind]

    def can_reach(self, start: str, goal: str) -> bool:
        """True if `goal` is reachable from `start` following blocks edges."""
        stack = [start]
        visited: set[str] = set()
        while stack:
            node = stack.pop()
            if node == goal:
                return True
            if node in visited:
                continue
            visited.add(node)
            stack.extend(
                d for d, k in self._edges.get(node, {}).items()
                if k is DependencyKind.BLOCKS and d not in visited
            )
        return False

    def add_edge(self, src: str, dst: str, kind: DependencyKind = DependencyKind.BLOCKS) -> bool:
        """
        Insert `src -> dst`.

        Returns False when the identical edge already exists (no-op).
        Raises DependencyConflict if the pair is linked with another kind and
        DependencyCycle if a blocks edge would close a cycle. On error the graph
        is unchanged.
        """
        if src == dst:
            raise DependencyCycle(src, dst)
        existing = self.edge(src, dst)
        if existing is kind:
            return False
        if existing is not None:
            raise DependencyConflict(src, dst, existing.value, kind.value)
        if kind is DependencyKind.BLOCKS and self.can_reach(dst, src):
            raise DependencyCycle(src, dst)

        self._edges.setdefault(src, {})[dst] = kind
        return True

    def remove_edge(self, src: str, dst: str) -> DependencyKind | None:
        return self._edges.get(src, {}).pop(dst, None)

    def remove_node(self, task_id: str) -> None:
        """Drop the node and every edge that starts or ends at it."""
        self._edges.pop(task_id, None)
        self._status.pop(task_id, None)
        for out in self._edges.values():
            out.pop(task_id, None)

    # ---- queries ----

    def is_blocked(self, task_id: str) -> bool:
        for dst in self.targets(task_id):
            status = self._status.get(dst)
            if status is not None and status.is_blocking:
                return True
        return False

    def blocked(self) -> set[str]:
        """Ids that cannot run yet."""
        return {t for t in self._edges if self.is_blocked(t)}

    def transitive_blockers(self, task_id: str) -> set[str]:
        """Every task reachable from `task_id` through blocks edges."""
        seen: set[str] = set()
        stack = self.targets(task_id)
        while stack:
            node = stack.pop()
            if node in seen or node == task_id:
                continue
            seen.add(node)
            stack.extend(self.targets(node))
        return seen

    def dependents(self, task_id: str) -> set[str]:
        """Tasks with a direct blocks edge onto `task_id`."""
        return {
            src for src, out in self._edges.items()
            if out.get(task_id) is DependencyKind.BLOCKS
        }
