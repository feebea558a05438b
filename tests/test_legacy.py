# tests/test_legacy.py

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from tsk.tasks.errors import InvalidOperation, InvalidRecord
from tsk.tasks.legacy import BeadsDatabase
from tsk.tasks.task_models import TaskStatus
from tsk.tasks.task_store import TaskStore

BEADS_SCHEMA = """
CREATE TABLE issues (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'open',
    priority INTEGER NOT NULL DEFAULT 2,
    issue_type TEXT NOT NULL DEFAULT 'task',
    assignee TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    closed_at TEXT,
    close_reason TEXT
);
CREATE TABLE dependencies (
    issue_id TEXT NOT NULL,
    depends_on_id TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'blocks',
    created_at TEXT NOT NULL,
    created_by TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (issue_id, depends_on_id)
);
"""


def _make_db(path: Path, schema: str = BEADS_SCHEMA) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path))
    conn.executescript(schema)
    return conn


def test_reads_issues_and_dependencies(tmp_path: Path, store: TaskStore) -> None:
    db = tmp_path / "beads.db"
    conn = _make_db(db)
    try:
        conn.executemany(
            "INSERT INTO issues (id, title, status, priority, created_at, updated_at, closed_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                ("bd-1", "Epic", "open", 1, "2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z", None),
                ("bd-2", "Child", "in_progress", 2, "2024-01-02T00:00:00Z", "2024-01-02T00:00:00Z", None),
                ("bd-3", "Blocker", "open", 0, "2024-01-03T00:00:00Z", "2024-01-03T00:00:00Z", None),
                ("bd-4", "Done", "closed", 3, "2024-01-04T00:00:00Z", "2024-01-04T00:00:00Z", "2024-01-05T00:00:00Z"),
            ],
        )
        conn.executemany(
            "INSERT INTO dependencies (issue_id, depends_on_id, type, created_at) VALUES (?, ?, ?, ?)",
            [
                ("bd-2", "bd-1", "parent-child", "2024-01-02T00:00:00Z"),
                ("bd-2", "bd-3", "blocks", "2024-01-03T00:00:00Z"),
            ],
        )
        conn.commit()
    finally:
        conn.close()

    rows = BeadsDatabase(db).read_rows()

    assert [r.task.id for r in rows] == ["bd-1", "bd-2", "bd-3", "bd-4"]
    child = rows[1]
    assert child.parent == "bd-1"
    assert child.blocks == ["bd-3"]
    assert child.task.status is TaskStatus.ACTIVE

    store.import_records(rows)

    assert [t.id for t in store.children("bd-1")] == ["bd-2"]
    assert store.is_blocked("bd-2")
    assert store.get("bd-4").archived is True
    assert store.get("bd-3").priority == 0


def test_old_schema_without_optional_columns(tmp_path: Path) -> None:
    db = tmp_path / "old.db"
    conn = _make_db(
        db,
        "CREATE TABLE issues (id TEXT PRIMARY KEY, title TEXT, status TEXT, created_at TEXT);",
    )
    try:
        conn.execute(
            "INSERT INTO issues VALUES ('bd-1', 'Only', 'open', '2024-01-01T00:00:00Z')"
        )
        conn.commit()
    finally:
        conn.close()

    rows = BeadsDatabase(db).read_rows()

    assert len(rows) == 1
    assert rows[0].task.priority == 2
    assert rows[0].task.issue_type == "task"
    assert rows[0].blocks == []


def test_missing_database(tmp_path: Path) -> None:
    with pytest.raises(InvalidOperation):
        BeadsDatabase(tmp_path / "nope.db")


def test_not_a_database(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.db"
    bogus.write_bytes(b"definitely not sqlite" * 100)

    with pytest.raises(InvalidRecord):
        BeadsDatabase(bogus).read_rows()
