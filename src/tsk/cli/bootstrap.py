# src/tsk/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- resolves the store directory (flag > TSK_DIR > ./.tsk),
- builds the TaskStore with the configured lock timeout and id style,
- runs the bulk imports `tsk init` can start from.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from ..config import Settings, get_settings
from ..tasks.importer import read_jsonl
from ..tasks.legacy import BeadsDatabase
from ..tasks.task_models import Task
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def store_dir(settings: Settings, override: str | Path | None = None) -> Path:
    if override:
        return Path(override).expanduser()
    return settings.store_dir


def open_store(*, settings: Settings | None = None, directory: str | Path | None = None) -> TaskStore:
    """Open an existing store. Raises StoreNotInitialized if there is none."""
    if settings is None:
        settings = get_settings()
    return TaskStore(
        store_dir(settings, directory),
        lock_timeout=settings.lock_timeout,
        slug_ids=settings.slug_ids,
    )


def init_store(
    *,
    settings: Settings | None = None,
    directory: str | Path | None = None,
    prefix: str | None = None,
) -> TaskStore:
    if settings is None:
        settings = get_settings()
    return TaskStore.init(
        store_dir(settings, directory),
        prefix=prefix or settings.default_prefix,
        lock_timeout=settings.lock_timeout,
        slug_ids=settings.slug_ids,
    )


def import_jsonl(store: TaskStore, lines: Iterable[str]) -> list[Task]:
    return store.import_records(read_jsonl(lines))


def import_beads(store: TaskStore, db_path: str | Path) -> list[Task]:
    rows = BeadsDatabase(db_path).read_rows()
    return store.import_records(rows)
