# src/tsk/tasks/errors.py

"""
Error taxonomy of the task store.

Every failure the core can report is a TaskError subclass. Each class carries
the context needed to render an actionable message and the process exit code
the CLI uses for it.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path


class TaskError(Exception):
    exit_code = 1


class InvalidOperation(TaskError):
    """Caller misuse: empty title, transition out of closed, cross-group move..."""

    exit_code = 1


class InvalidRecord(TaskError):
    exit_code = 3

    def __init__(self, task_id: str | None, reason: str, *, path: Path | None = None) -> None:
        self.task_id = task_id
        self.reason = reason
        self.path = path
        where = task_id or (str(path) if path else "record")
        super().__init__(f"invalid record {where}: {reason}")


class NotFound(TaskError):
    exit_code = 4

    def __init__(self, fragment: str) -> None:
        self.fragment = fragment
        super().__init__(f"no task matches '{fragment}'")


class Ambiguous(TaskError):
    exit_code = 5

    def __init__(self, fragment: str, candidates: Iterable[str]) -> None:
        self.fragment = fragment
        self.candidates = sorted(candidates)
        super().__init__(
            f"'{fragment}' is ambiguous, candidates: {', '.join(self.candidates)}"
        )


class DependencyCycle(TaskError):
    exit_code = 6

    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target
        if source == target:
            msg = f"{source} cannot depend on itself"
        else:
            msg = f"{source} -> {target} would create a dependency cycle"
        super().__init__(msg)


class DependencyConflict(TaskError):
    exit_code = 7

    def __init__(self, source: str, target: str, existing: str, requested: str) -> None:
        self.source = source
        self.target = target
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"{source} -> {target} already exists as '{existing}', refusing to change it to '{requested}'"
        )


class StoreLocked(TaskError):
    exit_code = 8

    def __init__(self, lock_path: Path, timeout: float) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(f"store is locked ({lock_path}), gave up after {timeout:g}s")


class OrphanedParent(TaskError):
    exit_code = 9

    def __init__(self, task_id: str, parent_id: str) -> None:
        self.task_id = task_id
        self.parent_id = parent_id
        super().__init__(
            f"{task_id} belongs to missing parent {parent_id} (run 'tsk repair')"
        )


class StoreNotInitialized(TaskError):
    exit_code = 10

    def __init__(self, root: Path) -> None:
        self.root = root
        super().__init__(f"no task store at {root} (run 'tsk init')")


class ImportRejected(TaskError):
    """A bulk import was refused as a whole; `cause` says why, `line_no` where."""

    def __init__(self, line_no: int, cause: TaskError) -> None:
        self.line_no = line_no
        self.cause = cause
        self.exit_code = cause.exit_code
        super().__init__(f"import rejected at line {line_no}: {cause}")
