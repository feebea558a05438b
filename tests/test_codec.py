# tests/test_codec.py

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from tsk.tasks.codec import decode, encode
from tsk.tasks.errors import InvalidRecord
from tsk.tasks.task_models import TaskStatus


def _record(header: str, body: str = "") -> bytes:
    return f"---\n{header}---\n{body}".encode("utf-8")


def test_encode_decode_keeps_every_field(make_task) -> None:
    task = make_task(
        "t-login-0123abcd",
        "Fix login",
        status=TaskStatus.CLOSED,
        description="Steps:\n\n1. reproduce\n2. fix",
        priority=1,
        issue_type="bug",
        assignee="sam",
        closed_at=datetime(2024, 2, 1, 8, 30, 15, 123456, tzinfo=UTC),
        close_reason="shipped",
        blocks=["t-db-11111111"],
        related=["t-ui-22222222"],
        peer_index=1.5,
        extra={"estimate": 3},
    )

    back = decode(encode(task), task_id=task.id)

    assert back == task


def test_header_layout() -> None:
    text = _record("title: a\nstatus: open\ncreated-at: '2024-01-01T00:00:00+00:00'\n").decode()
    task = decode(text.encode(), task_id="t-a")
    out = encode(task).decode()

    assert out.startswith("---\ntitle: a\nstatus: open\npriority: 2\nissue-type: task\n")
    assert out.endswith("peer-index: 0.0\n---\n")


def test_optional_fields_default() -> None:
    task = decode(
        _record("title: a\nstatus: active\ncreated-at: '2024-01-01T00:00:00+00:00'\n"),
        task_id="t-a",
        parent="t-p",
        archived=True,
    )

    assert task.status is TaskStatus.ACTIVE
    assert task.priority == 2
    assert task.issue_type == "task"
    assert task.peer_index == 0.0
    assert task.blocks == [] and task.related == []
    assert task.parent == "t-p"
    assert task.archived is True


def test_unquoted_yaml_timestamp_is_read_as_utc() -> None:
    task = decode(_record("title: a\nstatus: open\ncreated-at: 2024-01-01 10:00:00\n"), task_id="t-a")

    assert task.created_at == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


def test_duplicate_references_collapse() -> None:
    task = decode(
        _record(
            "title: a\nstatus: open\ncreated-at: '2024-01-01T00:00:00+00:00'\n"
            "blocks:\n- t-b\n- t-b\n- t-c\n"
        ),
        task_id="t-a",
    )

    assert task.blocks == ["t-b", "t-c"]


@pytest.mark.parametrize(
    ("header", "reason"),
    [
        ("status: open\ncreated-at: '2024-01-01T00:00:00+00:00'\n", "title"),
        ("title: a\ncreated-at: '2024-01-01T00:00:00+00:00'\n", "status"),
        ("title: a\nstatus: done\ncreated-at: '2024-01-01T00:00:00+00:00'\n", "unknown status"),
        ("title: a\nstatus: open\n", "created-at"),
        ("title: a\nstatus: open\ncreated-at: yesterday\n", "bad timestamp"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\npriority: high\n", "priority"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\npriority: 7\n", "0-4"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\npriority: -1\n", "0-4"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\npeer-index: .nan\n", "finite"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\npeer-index: -.inf\n", "finite"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\nblocks: t-b\n", "list"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\nblocks:\n- ../nope\n", "malformed"),
        ("title: a\nstatus: open\ncreated-at: '2024-01-01'\nblocks:\n- t-a\n", "itself"),
        ("title: [unclosed\n", "unreadable"),
    ],
)
def test_bad_records_are_rejected(header: str, reason: str) -> None:
    with pytest.raises(InvalidRecord) as exc:
        decode(_record(header), task_id="t-a")

    assert reason in str(exc.value)
    assert exc.value.exit_code == 3


def test_missing_header_block() -> None:
    with pytest.raises(InvalidRecord):
        decode(b"just some text\n", task_id="t-a")


@pytest.mark.parametrize("description", ["\n\nIndented start", "ends with a blank line\n", "  leading spaces"])
def test_description_keeps_its_edges(make_task, description: str) -> None:
    task = make_task("t-a", description=description)

    assert decode(encode(task), task_id="t-a").description == description


def test_crlf_body_drops_only_the_final_break() -> None:
    task = decode(
        _record("title: a\nstatus: open\ncreated-at: '2024-01-01'\n", "line one\r\nline two\r\n"),
        task_id="t-a",
    )

    assert task.description == "line one\r\nline two"
