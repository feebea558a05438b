# tests/test_concurrency.py

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor
from pathlib import Path

from tsk.tasks.task_store import TaskStore

WORKERS = 4
PER_WORKER = 5


def _create_many(root: str, worker: int, count: int) -> list[str]:
    store = TaskStore(root, lock_timeout=30.0)
    return [store.create(f"worker {worker} task {i}").id for i in range(count)]


def test_parallel_processes_get_distinct_ids_and_positions(tmp_path: Path) -> None:
    root = tmp_path / ".tsk"
    TaskStore.init(root, prefix="t")

    with ProcessPoolExecutor(max_workers=WORKERS) as pool:
        futures = [pool.submit(_create_many, str(root), w, PER_WORKER) for w in range(WORKERS)]
        created = [task_id for f in futures for task_id in f.result()]

    store = TaskStore(root)
    roots = store.roots()

    assert len(created) == len(set(created)) == WORKERS * PER_WORKER
    assert {t.id for t in roots} == set(created)
    assert len({t.peer_index for t in roots}) == len(roots)


def test_each_worker_keeps_its_own_creation_order(tmp_path: Path) -> None:
    root = tmp_path / ".tsk"
    TaskStore.init(root, prefix="t")

    with ProcessPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(_create_many, str(root), w, PER_WORKER) for w in range(2)]
        per_worker = [f.result() for f in futures]

    order = [t.id for t in TaskStore(root).roots()]
    for ids in per_worker:
        positions = [order.index(i) for i in ids]
        assert positions == sorted(positions)
