# src/tsk/tasks/layout.py

"""
On-disk layout of a task store.

    .tsk/
    ├── config                      # YAML key/value (prefix)
    ├── .lock                       # advisory write lock
    ├── tsk-write-docs-1a2b3c4d.md  # root task without children
    ├── tsk-release-9f8e7d6c/       # root task with children
    │   ├── tsk-release-9f8e7d6c.md #   its own record
    │   └── tsk-tag-build-0a1b2c3d.md
    └── archive/                    # closed, fully resolved subtrees (same shape)

A task's parent is the task whose directory holds its entry; the record
itself does not repeat it. Names starting with "." are never records (lock
file, temp files of in-flight writes).
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from . import codec
from .errors import InvalidRecord
from .ids import is_valid_id
from .task_models import Task

logger = logging.getLogger(__name__)

ARCHIVE_DIR = "archive"
CONFIG_FILE = "config"
LOCK_FILE = ".lock"
RECORD_SUFFIX = ".md"


@dataclass(slots=True)
class Scan:
    tasks: dict[str, Task] = field(default_factory=dict)
    paths: dict[str, Path] = field(default_factory=dict)


def record_name(task_id: str) -> str:
    return f"{task_id}{RECORD_SUFFIX}"


def is_container_record(path: Path, task_id: str) -> bool:
    """True if `path` is `<id>/<id>.md`, i.e. the task owns a directory."""
    return path.parent.name == task_id


def entry_path(path: Path, task_id: str) -> Path:
    """The file or directory that holds the task and its whole subtree."""
    return path.parent if is_container_record(path, task_id) else path


# ---- reading ----


def scan(root: Path) -> Scan:
    """Load every record under `root`, working set first, then the archive."""
    out = Scan()
    _scan_dir(root, out, owner=None, owner_parent=None, archived=False, top=True)
    archive = root / ARCHIVE_DIR
    if archive.is_dir():
        _scan_dir(archive, out, owner=None, owner_parent=None, archived=True, top=True)
    return out


def _scan_dir(
    directory: Path,
    out: Scan,
    *,
    owner: str | None,
    owner_parent: str | None,
    archived: bool,
    top: bool,
) -> None:
    try:
        entries = sorted(directory.iterdir())
    except FileNotFoundError:
        # Moved away by a concurrent writer; readers accept a stale view.
        logger.debug("Directory vanished during scan: %s", directory)
        return

    for entry in entries:
        name = entry.name
        if name.startswith("."):
            continue

        if entry.is_dir():
            if top and not archived and name == ARCHIVE_DIR:
                continue
            if not is_valid_id(name):
                logger.warning("Ignoring directory with a non-id name: %s", entry)
                continue
            _scan_dir(entry, out, owner=name, owner_parent=owner, archived=archived, top=False)
            continue

        if entry.suffix != RECORD_SUFFIX:
            continue

        task_id = entry.stem
        if not is_valid_id(task_id):
            raise InvalidRecord(task_id, "file name is not a valid task id", path=entry)
        if task_id in out.tasks:
            raise InvalidRecord(
                task_id, f"duplicate record (also at {out.paths[task_id]})", path=entry
            )

        try:
            data = entry.read_bytes()
        except FileNotFoundError:
            logger.debug("Record vanished during scan: %s", entry)
            continue

        parent = owner_parent if task_id == owner else owner
        out.tasks[task_id] = codec.decode(
            data, task_id=task_id, parent=parent, archived=archived, path=entry
        )
        out.paths[task_id] = entry


def read_config(root: Path) -> dict[str, Any]:
    path = root / CONFIG_FILE
    try:
        raw = yaml.safe_load(path.read_text("utf-8")) or {}
    except yaml.YAMLError as e:
        raise InvalidRecord(None, f"unreadable config ({e})", path=path) from e
    if not isinstance(raw, dict):
        raise InvalidRecord(None, "config is not a mapping", path=path)
    return raw


# ---- writing ----


def atomic_write(path: Path, data: bytes) -> None:
    """Write via a temp file in the same directory and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}_", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_record(path: Path, task: Task) -> None:
    atomic_write(path, codec.encode(task))


def write_config(root: Path, config: dict[str, Any]) -> None:
    text = yaml.safe_dump(config, sort_keys=False, default_flow_style=False)
    atomic_write(root / CONFIG_FILE, text.encode("utf-8"))


def ensure_container(path: Path, task_id: str) -> Path:
    """
    Give the task its own directory so it can hold children.

    Returns the task's record path inside that directory.
    """
    if is_container_record(path, task_id):
        return path
    container = path.parent / task_id
    container.mkdir(exist_ok=True)
    target = container / path.name
    os.replace(path, target)
    logger.debug("Created container for %s", task_id)
    return target


def _visible_entries(directory: Path) -> list[Path]:
    return [p for p in directory.iterdir() if not p.name.startswith(".")]


def _remove_dir(directory: Path) -> None:
    # Only leftovers of interrupted writes can remain at this point.
    for p in directory.iterdir():
        if p.is_dir():
            shutil.rmtree(p)
        else:
            p.unlink()
    directory.rmdir()


def collapse_container(container: Path, task_id: str) -> Path | None:
    """
    Turn `<id>/<id>.md` back into `<id>.md` once the task has no children.

    Returns the new record path, or None if the directory still holds children
    (or does not exist).
    """
    record = container / record_name(task_id)
    if not container.is_dir() or not record.is_file():
        return None
    if any(p != record for p in _visible_entries(container)):
        return None
    target = container.parent / record.name
    os.replace(record, target)
    _remove_dir(container)
    logger.debug("Collapsed container of %s", task_id)
    return target


def prune_empty(directory: Path) -> bool:
    """Remove a directory that holds no records; True if it was removed."""
    if not directory.is_dir() or _visible_entries(directory):
        return False
    _remove_dir(directory)
    return True


def move_entry(entry: Path, dest_dir: Path) -> Path:
    """Move a record file or a whole task directory into `dest_dir` in one rename."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    target = dest_dir / entry.name
    if target.exists():
        raise FileExistsError(f"{target} already exists")
    os.rename(entry, target)
    return target


def remove_entry(entry: Path) -> None:
    if entry.is_dir():
        shutil.rmtree(entry)
    else:
        entry.unlink()


def rename_entry(path: Path, task_id: str, new_id: str) -> Path:
    """Rename a task's record (and its directory, if it has one). Returns the new record path."""
    if is_container_record(path, task_id):
        container = path.parent
        os.replace(path, container / record_name(new_id))
        new_container = container.parent / new_id
        os.rename(container, new_container)
        return new_container / record_name(new_id)
    target = path.with_name(record_name(new_id))
    os.replace(path, target)
    return target
