# tests/test_importer.py

from __future__ import annotations

import json

import pytest

from tsk.tasks.errors import DependencyCycle, ImportRejected, InvalidRecord
from tsk.tasks.importer import parse_record, read_jsonl
from tsk.tasks.task_models import TaskStatus
from tsk.tasks.task_store import TaskStore


def _issue(issue_id: str, *, status: str = "open", deps=None, **extra) -> dict:
    issue = {
        "id": issue_id,
        "title": extra.pop("title", issue_id),
        "description": "",
        "status": status,
        "priority": 2,
        "issue_type": "task",
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-01T00:00:00Z",
    }
    if deps is not None:
        issue["dependencies"] = deps
    issue.update(extra)
    return issue


def _lines(*issues: dict) -> list[str]:
    return [json.dumps(i) for i in issues]


def test_parse_record_maps_legacy_fields() -> None:
    row = parse_record(
        1,
        _issue(
            "bd-a1",
            status="in_progress",
            assignee="sam",
            deps=json.dumps(
                [
                    {"depends_on_id": "bd-p", "type": "parent-child"},
                    {"depends_on_id": "bd-b", "type": "blocks"},
                    {"depends_on_id": "bd-c", "type": "discovered-from"},
                    {"depends_on_id": None, "type": None},
                ]
            ),
        ),
    )

    assert row.task.status is TaskStatus.ACTIVE
    assert row.task.assignee == "sam"
    assert row.parent == "bd-p"
    assert row.blocks == ["bd-b"]
    assert row.related == ["bd-c"]
    assert row.has_peer_index is False


@pytest.mark.parametrize("status", ["blocked", "deferred"])
def test_waiting_statuses_import_as_open(status: str) -> None:
    assert parse_record(1, _issue("bd-a", status=status)).task.status is TaskStatus.OPEN


def test_dependency_without_type_blocks() -> None:
    row = parse_record(1, _issue("bd-a", deps=[{"depends_on_id": "bd-b"}]))

    assert row.blocks == ["bd-b"]


def test_bad_line_rejects_batch_with_its_number() -> None:
    lines = _lines(_issue("bd-a")) + ["", "{not json"]

    with pytest.raises(ImportRejected) as exc:
        read_jsonl(lines)

    assert exc.value.line_no == 3
    assert isinstance(exc.value.cause, InvalidRecord)
    assert exc.value.exit_code == 3


def test_unknown_status_and_duplicate_ids_are_rejected() -> None:
    with pytest.raises(ImportRejected) as exc:
        read_jsonl(_lines(_issue("bd-a", status="wontfix")))
    assert exc.value.line_no == 1

    with pytest.raises(ImportRejected) as exc:
        read_jsonl(_lines(_issue("bd-a"), _issue("bd-a")))
    assert exc.value.line_no == 2


def test_import_builds_tree_order_and_archive(store: TaskStore) -> None:
    rows = read_jsonl(
        _lines(
            _issue("bd-epic"),
            _issue("bd-c2", deps=[{"depends_on_id": "bd-epic", "type": "parent-child"}]),
            _issue("bd-c1", deps=[{"depends_on_id": "bd-epic", "type": "parent-child"}], peer_index=-1),
            _issue("bd-work", deps=[{"depends_on_id": "bd-c2", "type": "blocks"}]),
            _issue("bd-old", status="closed", close_reason="done", closed_at="2024-02-01T00:00:00Z"),
            _issue("bd-oldkid", status="done", deps=[{"depends_on_id": "bd-old", "type": "parent-child"}]),
        )
    )

    store.import_records(rows)

    assert [t.id for t in store.roots()] == ["bd-epic", "bd-work"]
    assert [t.id for t in store.children("bd-epic")] == ["bd-c1", "bd-c2"]
    assert (store.root / "bd-epic" / "bd-c2.md").is_file()
    assert store.is_blocked("bd-work")

    old = store.get("bd-old")
    assert old.archived is True
    assert old.close_reason == "done"
    assert (store.root / "archive" / "bd-old" / "bd-oldkid.md").is_file()
    assert store.get("bd-oldkid").closed_at is not None


def test_import_into_existing_parent(store: TaskStore) -> None:
    parent = store.create("Existing")

    store.import_records(
        read_jsonl(_lines(_issue("bd-x", deps=[{"depends_on_id": parent.id, "type": "parent-child"}])))
    )

    assert [t.id for t in store.children(parent.id)] == ["bd-x"]


def test_unknown_reference_rejects_everything(store: TaskStore) -> None:
    rows = read_jsonl(_lines(_issue("bd-a"), _issue("bd-b", deps=[{"depends_on_id": "bd-zzz"}])))

    with pytest.raises(ImportRejected) as exc:
        store.import_records(rows)

    assert exc.value.line_no == 2
    assert store.count_tasks() == 0


def test_cycle_rejects_everything(store: TaskStore) -> None:
    rows = read_jsonl(
        _lines(
            _issue("bd-a", deps=[{"depends_on_id": "bd-b", "type": "blocks"}]),
            _issue("bd-b", deps=[{"depends_on_id": "bd-a", "type": "blocks"}]),
        )
    )

    with pytest.raises(ImportRejected) as exc:
        store.import_records(rows)

    assert exc.value.line_no == 2
    assert isinstance(exc.value.cause, DependencyCycle)
    assert exc.value.exit_code == 6
    assert store.count_tasks() == 0


def test_parent_loop_is_rejected(store: TaskStore) -> None:
    rows = read_jsonl(
        _lines(
            _issue("bd-a", deps=[{"depends_on_id": "bd-b", "type": "parent-child"}]),
            _issue("bd-b", deps=[{"depends_on_id": "bd-a", "type": "parent-child"}]),
        )
    )

    with pytest.raises(ImportRejected) as exc:
        store.import_records(rows)

    assert exc.value.line_no == 1


def test_existing_id_is_rejected(store: TaskStore) -> None:
    store.import_records(read_jsonl(_lines(_issue("bd-a"))))

    with pytest.raises(ImportRejected) as exc:
        store.import_records(read_jsonl(_lines(_issue("bd-b"), _issue("bd-a"))))

    assert exc.value.line_no == 2
    assert store.count_tasks() == 1


def test_first_offending_line_is_reported(store: TaskStore) -> None:
    rows = read_jsonl(
        _lines(
            _issue("bd-a", deps=[{"depends_on_id": "bd-b", "type": "blocks"}]),
            _issue("bd-b", deps=[{"depends_on_id": "bd-a", "type": "blocks"}]),
            _issue("bd-c", deps=[{"depends_on_id": "bd-missing", "type": "blocks"}]),
        )
    )

    with pytest.raises(ImportRejected) as exc:
        store.import_records(rows)

    assert exc.value.line_no == 2
    assert isinstance(exc.value.cause, DependencyCycle)


@pytest.mark.parametrize(
    ("field", "value"), [("priority", 9), ("priority", -1), ("peer_index", float("nan"))]
)
def test_out_of_range_numbers_are_rejected(field: str, value) -> None:
    with pytest.raises(InvalidRecord):
        parse_record(1, _issue("bd-a", **{field: value}))
