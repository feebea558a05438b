# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from tsk.tasks import codec
from tsk.tasks.task_models import Task, TaskStatus
from tsk.tasks.task_store import TaskStore

BASE_TS = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    """Fresh store with a fixed prefix so ids are predictable (`t-<slug>-<hex>`)."""
    return TaskStore.init(tmp_path / ".tsk", prefix="t", lock_timeout=2.0)


@pytest.fixture()
def make_task() -> Callable[..., Task]:
    """
    Build Task objects without touching disk.

    created_at advances one second per call unless given, so tie-break order
    is the creation order.
    """
    counter = {"n": 0}

    def _make(task_id: str, title: str | None = None, **kwargs) -> Task:
        counter["n"] += 1
        kwargs.setdefault("status", TaskStatus.OPEN)
        kwargs.setdefault("created_at", BASE_TS + timedelta(seconds=counter["n"]))
        return Task(id=task_id, title=title or task_id, **kwargs)

    return _make


@pytest.fixture()
def write_raw() -> Callable[[Path, Task], Path]:
    """Write a record file directly, bypassing the store (for broken layouts)."""

    def _write(path: Path, task: Task) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(codec.encode(task))
        return path

    return _write
