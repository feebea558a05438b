# src/tsk/tasks/legacy.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from .errors import InvalidOperation, InvalidRecord
from .importer import ImportRow, parse_rows

logger = logging.getLogger(__name__)

ISSUE_COLUMNS = (
    "id",
    "title",
    "description",
    "status",
    "priority",
    "issue_type",
    "assignee",
    "created_at",
    "closed_at",
    "close_reason",
)


class BeadsDatabase:
    """
    Read-only view of a legacy beads SQLite database (`.beads/beads.db`).

    Older databases lack some columns; PRAGMA table_info tells which ones are
    there and missing ones read as NULL. Rows come out in the same shape as a
    JSONL export line, so they go through the regular import path.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        if not self._db_path.is_file():
            raise InvalidOperation(f"no beads database at {self._db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(f"file:{self._db_path}?mode=ro", uri=True, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _columns(cur: sqlite3.Cursor, table: str) -> set[str]:
        cur.execute(f"PRAGMA table_info({table})")
        return {row["name"] for row in cur.fetchall()}

    def iter_issues(self) -> Iterator[dict[str, Any]]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise InvalidRecord(None, f"cannot open beads database ({e})", path=self._db_path) from e

        try:
            cur = conn.cursor()
            cols = self._columns(cur, "issues")
            if not cols:
                raise InvalidRecord(None, "no 'issues' table", path=self._db_path)
            select = ", ".join(c if c in cols else f"NULL AS {c}" for c in ISSUE_COLUMNS)

            deps: dict[str, list[dict[str, Any]]] = {}
            dep_cols = self._columns(cur, "dependencies")
            if dep_cols:
                kind = "type" if "type" in dep_cols else "'blocks'"
                cur.execute(
                    f"SELECT issue_id, depends_on_id, {kind} AS type "
                    "FROM dependencies ORDER BY issue_id, depends_on_id"
                )
                for row in cur.fetchall():
                    deps.setdefault(row["issue_id"], []).append(
                        {"depends_on_id": row["depends_on_id"], "type": row["type"]}
                    )

            cur.execute(f"SELECT {select} FROM issues ORDER BY created_at, id")
            for row in cur.fetchall():
                issue = {c: row[c] for c in ISSUE_COLUMNS}
                issue["dependencies"] = deps.get(row["id"], [])
                yield issue
        except sqlite3.DatabaseError as e:
            raise InvalidRecord(None, f"cannot read beads database ({e})", path=self._db_path) from e
        finally:
            with contextlib.suppress(Exception):
                conn.close()

    def read_rows(self) -> list[ImportRow]:
        """Parse every issue; row numbers count issues in created_at order, from 1."""
        rows = parse_rows(enumerate(self.iter_issues(), start=1))
        logger.info("Read %d issues from %s", len(rows), self._db_path)
        return rows
