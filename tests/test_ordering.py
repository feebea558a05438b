# tests/test_ordering.py

from __future__ import annotations

import math

import pytest

from tsk.tasks.ordering import place, position_between, rebalance, sort_tasks


def test_position_between(make_task) -> None:
    a = make_task("t-a", peer_index=1.0)
    b = make_task("t-b", peer_index=2.0)

    assert position_between(None, None) == 0.0
    assert position_between(a, None) == 2.0
    assert position_between(None, a) == 0.0
    assert position_between(a, b) == 1.5


def test_ties_break_on_created_at_then_id(make_task) -> None:
    first = make_task("t-z", peer_index=1.0)
    second = make_task("t-a", peer_index=1.0)
    same_ts = make_task("t-b", peer_index=1.0, created_at=second.created_at)

    ordered = sort_tasks([same_ts, second, first])

    assert [t.id for t in ordered] == ["t-z", "t-a", "t-b"]


def test_place_appends_by_default(make_task) -> None:
    group = [make_task("t-a", peer_index=0.0), make_task("t-b", peer_index=1.0)]

    assert place(group).peer_index == 2.0
    assert place([]).peer_index == 0.0


def test_place_between_neighbours(make_task) -> None:
    a = make_task("t-a", peer_index=0.0)
    b = make_task("t-b", peer_index=1.0)
    c = make_task("t-c", peer_index=2.0)

    after_a = place([a, b, c], after="t-a")
    before_a = place([a, b, c], before="t-a")
    between = place([a, b, c], after="t-b", before="t-c")

    assert a.peer_index < after_a.peer_index < b.peer_index
    assert before_a.peer_index < a.peer_index
    assert between.peer_index == 1.5
    assert after_a.moved == {}


def test_place_rejects_non_adjacent_pair(make_task) -> None:
    group = [make_task(f"t-{n}", peer_index=float(i)) for i, n in enumerate("abc")]

    with pytest.raises(ValueError):
        place(group, after="t-a", before="t-c")


def test_exhausted_precision_rebalances_the_group(make_task) -> None:
    a = make_task("t-a", peer_index=1.0)
    b = make_task("t-b", peer_index=math.nextafter(1.0, 2.0))
    c = make_task("t-c", peer_index=5.0)

    p = place([a, b, c], after="t-a", before="t-b")

    assert p.moved == {"t-a": 0.0, "t-b": 1.0, "t-c": 2.0}
    assert p.moved["t-a"] < p.peer_index < p.moved["t-b"]


def test_rebalance_keeps_order(make_task) -> None:
    group = [make_task("t-b", peer_index=7.5), make_task("t-a", peer_index=-3.0)]

    assert rebalance(group) == {"t-a": 0.0, "t-b": 1.0}
