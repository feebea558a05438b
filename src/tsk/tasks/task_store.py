# src/tsk/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from filelock import FileLock, Timeout

from . import layout
from .errors import (
    ImportRejected,
    InvalidOperation,
    InvalidRecord,
    OrphanedParent,
    StoreLocked,
    StoreNotInitialized,
    TaskError,
)
from .graph import DependencyGraph
from .ids import (
    generate_id,
    is_slugged,
    is_valid_prefix,
    prefix_from_name,
    slugged_id,
)
from .importer import ImportRow
from .ordering import place, sort_tasks
from .resolver import IdResolver, Resolution
from .task_models import (
    DEFAULT_ISSUE_TYPE,
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    DependencyKind,
    Task,
    TaskStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoreConfig:
    prefix: str


class _Snapshot:
    """One consistent read of the store: every record plus derived indexes."""

    def __init__(self, scan: layout.Scan) -> None:
        self.tasks = scan.tasks
        self.paths = scan.paths
        self._children: dict[tuple[str | None, bool], list[Task]] = {}
        for t in self.tasks.values():
            parent = t.parent if t.parent in self.tasks else None
            if t.parent is not None and parent is None:
                continue  # orphan
            self._children.setdefault((parent, t.archived), []).append(t)
        self._resolver: IdResolver | None = None
        self._graph: DependencyGraph | None = None

    @property
    def resolver(self) -> IdResolver:
        if self._resolver is None:
            self._resolver = IdResolver(
                (i for i, t in self.tasks.items() if not t.archived),
                (i for i, t in self.tasks.items() if t.archived),
            )
        return self._resolver

    @property
    def graph(self) -> DependencyGraph:
        if self._graph is None:
            self._graph = DependencyGraph.from_tasks(self.tasks.values())
        return self._graph

    def resolve(self, fragment: str) -> Resolution:
        return self.resolver.resolve(fragment)

    def task(self, fragment: str) -> Task:
        return self.tasks[self.resolve(fragment).id]

    def children_of(self, parent: str | None, archived: bool = False) -> list[Task]:
        if parent is not None:
            archived = self.tasks[parent].archived
        return sort_tasks(self._children.get((parent, archived), []))

    def group_of(self, task: Task) -> list[Task]:
        return [t for t in self.children_of(task.parent, task.archived) if t.id != task.id]

    def orphans(self, archived: bool | None = None) -> list[Task]:
        return sort_tasks(
            t for t in self.tasks.values()
            if t.parent is not None
            and t.parent not in self.tasks
            and (archived is None or t.archived is archived)
        )

    def walk(self, start: Iterable[Task], depth: int = 0) -> Iterator[tuple[int, Task]]:
        """Depth-first tree order."""
        for t in sort_tasks(start):
            yield depth, t
            yield from self.walk(self.children_of(t.id), depth + 1)

    def tops(self, archived: bool) -> list[Task]:
        """Roots plus orphans, which are shown at the top level until repaired."""
        return sort_tasks(self.children_of(None, archived) + self.orphans(archived))

    def ordered(self, include_archived: bool = False) -> list[Task]:
        out = [t for _, t in self.walk(self.tops(False))]
        if include_archived:
            out.extend(t for _, t in self.walk(self.tops(True)))
        return out

    def subtree_ids(self, task_id: str) -> list[str]:
        return [t.id for _, t in self.walk([self.tasks[task_id]])]

    def root_of(self, task_id: str) -> Task:
        task = self.tasks[task_id]
        while task.parent is not None:
            parent = self.tasks.get(task.parent)
            if parent is None:
                raise OrphanedParent(task.id, task.parent)
            task = parent
        return task


class TaskStore:
    """
    Markdown-file task store rooted at a `.tsk` directory.

    Concurrency:
    - every mutation runs under one exclusive file lock (`.tsk/.lock`) held for
      the whole read-validate-write sequence
    - each mutation reloads the store after taking the lock, so it never acts on
      state another process changed in the meantime
    - readers take no lock; records are replaced atomically, so a reader sees
      each record either before or after a write, never half of it
    """

    def __init__(
        self,
        root: str | Path = ".tsk",
        *,
        lock_timeout: float = 5.0,
        slug_ids: bool = True,
    ) -> None:
        self._root = Path(root)
        if not (self._root / layout.CONFIG_FILE).is_file():
            raise StoreNotInitialized(self._root)
        self._lock_timeout = lock_timeout
        self._slug_ids = slug_ids
        self.config = self._load_config()
        logger.debug("TaskStore ready root=%s prefix=%s", self._root, self.config.prefix)

    @classmethod
    def init(
        cls,
        root: str | Path = ".tsk",
        *,
        prefix: str | None = None,
        lock_timeout: float = 5.0,
        slug_ids: bool = True,
    ) -> TaskStore:
        """Create the store directory (idempotent). An explicit prefix replaces the stored one."""
        root = Path(root)
        if prefix is not None and not is_valid_prefix(prefix):
            raise InvalidOperation(f"invalid prefix {prefix!r}")

        root.mkdir(parents=True, exist_ok=True)
        (root / layout.ARCHIVE_DIR).mkdir(exist_ok=True)

        config_path = root / layout.CONFIG_FILE
        if config_path.is_file():
            config = layout.read_config(root)
            if prefix is not None and config.get("prefix") != prefix:
                config["prefix"] = prefix
                layout.write_config(root, config)
        else:
            name = root.resolve().parent.name
            layout.write_config(root, {"prefix": prefix or prefix_from_name(name)})
            logger.info("Initialized task store at %s", root)

        return cls(root, lock_timeout=lock_timeout, slug_ids=slug_ids)

    @property
    def root(self) -> Path:
        return self._root

    # ---- low-level helpers ----

    def _load_config(self) -> StoreConfig:
        raw = layout.read_config(self._root)
        prefix = raw.get("prefix")
        if not is_valid_prefix(prefix):
            raise InvalidRecord(
                None, f"config has no valid prefix ({prefix!r})", path=self._root / layout.CONFIG_FILE
            )
        return StoreConfig(prefix=prefix)

    def _load(self) -> _Snapshot:
        return _Snapshot(layout.scan(self._root))

    @property
    def _lock_path(self) -> Path:
        return self._root / layout.LOCK_FILE

    @property
    def _archive_dir(self) -> Path:
        return self._root / layout.ARCHIVE_DIR

    @contextlib.contextmanager
    def _locked(self) -> Iterator[_Snapshot]:
        """Hold the write lock and hand out a fresh snapshot taken under it."""
        lock = FileLock(str(self._lock_path), timeout=self._lock_timeout)
        try:
            lock.acquire()
        except Timeout as e:
            raise StoreLocked(self._lock_path, self._lock_timeout) from e
        try:
            yield self._load()
        finally:
            lock.release()

    @staticmethod
    def _write(snap: _Snapshot, task: Task) -> None:
        layout.write_record(snap.paths[task.id], task)

    @staticmethod
    def _writable(snap: _Snapshot, fragment: str) -> Task:
        r = snap.resolve(fragment)
        if r.archived:
            raise InvalidOperation(f"{r.id} is archived")
        return snap.tasks[r.id]

    def _container_for(self, snap: _Snapshot, parent: str | None, archived: bool = False) -> Path:
        """Directory new children of `parent` go into; turns a leaf record into a container."""
        if parent is None:
            return self._archive_dir if archived else self._root
        path = snap.paths[parent]
        if not layout.is_container_record(path, parent):
            path = layout.ensure_container(path, parent)
            snap.paths[parent] = path
            self._rebase_paths(snap, parent)
        return path.parent

    @staticmethod
    def _rebase_paths(snap: _Snapshot, task_id: str) -> None:
        # Children of a task that just became a container live under it now.
        container = snap.paths[task_id].parent
        for child in snap.children_of(task_id):
            snap.paths[child.id] = container / snap.paths[child.id].name

    def _apply_moves(self, snap: _Snapshot, moved: dict[str, float]) -> None:
        for task_id, peer_index in moved.items():
            task = snap.tasks[task_id]
            task.peer_index = peer_index
            self._write(snap, task)
        if moved:
            logger.debug("Rebalanced %d siblings", len(moved))

    def _archive_if_resolved(self, snap: _Snapshot, task: Task) -> bool:
        """Move the root subtree of `task` to the archive once every task in it is closed."""
        root = snap.root_of(task.id)
        ids = snap.subtree_ids(root.id)
        if any(snap.tasks[i].status is not TaskStatus.CLOSED for i in ids):
            return False

        layout.move_entry(layout.entry_path(snap.paths[root.id], root.id), self._archive_dir)
        for i in ids:
            snap.tasks[i].archived = True
        logger.info("Archived %s (%d tasks)", root.id, len(ids))
        return True

    def _strip_references(self, snap: _Snapshot, removed: set[str]) -> int:
        """Drop `removed` ids from every remaining record's blocks/related. Returns records touched."""
        touched = 0
        for other in snap.tasks.values():
            if other.id in removed:
                continue
            blocks = [i for i in other.blocks if i not in removed]
            related = [i for i in other.related if i not in removed]
            if blocks != other.blocks or related != other.related:
                other.blocks = blocks
                other.related = related
                self._write(snap, other)
                touched += 1
        for i in removed:
            snap.graph.remove_node(i)
        return touched

    def _prune_after_removal(self, snap: _Snapshot, old_dir: Path) -> None:
        """Clean up the directory an entry left: drop it if empty, collapse its owner if childless."""
        stop = (self._root, self._archive_dir)
        while old_dir not in stop and layout.prune_empty(old_dir):
            old_dir = old_dir.parent
        if old_dir in stop:
            return
        owner = old_dir.name
        if owner in snap.tasks and snap.paths[owner].parent == old_dir:
            new_path = layout.collapse_container(old_dir, owner)
            if new_path is not None:
                snap.paths[owner] = new_path

    # ---- reads ----

    def count_tasks(self, include_archived: bool = True) -> int:
        snap = self._load()
        return sum(1 for t in snap.tasks.values() if include_archived or not t.archived)

    def resolve(self, fragment: str) -> Resolution:
        return self._load().resolve(fragment)

    def get(self, fragment: str) -> Task:
        return self._load().task(fragment)

    def list_tasks(
        self,
        statuses: Iterable[TaskStatus] | None = None,
        *,
        include_archived: bool = False,
    ) -> list[Task]:
        """Tasks in tree order (parents before children, siblings by peer order)."""
        wanted = set(statuses) if statuses is not None else None
        tasks = self._load().ordered(include_archived)
        if wanted is None:
            return tasks
        return [t for t in tasks if t.status in wanted]

    def search(self, query: str) -> list[Task]:
        """Case-insensitive substring match over title, description and close reason."""
        needle = (query or "").strip().casefold()
        if not needle:
            raise InvalidOperation("search query is empty")
        return [
            t for t in self._load().ordered(include_archived=True)
            if needle in t.title.casefold()
            or needle in t.description.casefold()
            or needle in (t.close_reason or "").casefold()
        ]

    def ready(self) -> list[Task]:
        """Open, unblocked, not archived."""
        snap = self._load()
        return [
            t for t in snap.ordered()
            if t.status is TaskStatus.OPEN and not snap.graph.is_blocked(t.id)
        ]

    def blocked(self) -> list[Task]:
        snap = self._load()
        ids = snap.graph.blocked()
        return [t for t in snap.ordered() if t.id in ids and t.status.is_blocking]

    def blockers(self, fragment: str) -> list[Task]:
        """Direct blockers of a task that still exist."""
        snap = self._load()
        task = snap.task(fragment)
        return [snap.tasks[i] for i in task.blocks if i in snap.tasks]

    def dependents(self, fragment: str) -> list[Task]:
        snap = self._load()
        task = snap.task(fragment)
        ids = snap.graph.dependents(task.id)
        return [t for t in snap.ordered(include_archived=True) if t.id in ids]

    def is_blocked(self, fragment: str) -> bool:
        snap = self._load()
        return snap.graph.is_blocked(snap.resolve(fragment).id)

    def children(self, fragment: str) -> list[Task]:
        snap = self._load()
        return snap.children_of(snap.resolve(fragment).id)

    def roots(self) -> list[Task]:
        return self._load().children_of(None)

    def subtree(
        self, fragment: str | None = None, *, include_archived: bool = False
    ) -> list[tuple[int, Task]]:
        """(depth, task) pairs in tree order, from one task or from the top level."""
        snap = self._load()
        if fragment is not None:
            return list(snap.walk([snap.task(fragment)]))
        out = list(snap.walk(snap.tops(False)))
        if include_archived:
            out.extend(snap.walk(snap.tops(True)))
        return out

    def orphans(self) -> list[Task]:
        return self._load().orphans()

    # ---- mutations ----

    def create(
        self,
        title: str,
        *,
        description: str = "",
        parent: str | None = None,
        blocks: Iterable[str] = (),
        after: str | None = None,
        before: str | None = None,
        priority: int = DEFAULT_PRIORITY,
        issue_type: str = DEFAULT_ISSUE_TYPE,
        assignee: str | None = None,
    ) -> Task:
        """
        Add an open task.

        `after`/`before` place it next to an existing sibling and imply that
        sibling's parent, so they cannot be combined with `parent`. Nothing is
        written unless every reference resolves and every edge is acyclic.
        """
        title = (title or "").strip()
        if not title:
            raise InvalidOperation("title is required")
        if parent and (after or before):
            raise InvalidOperation("cannot use -P with --after/--before")
        if isinstance(priority, bool) or not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            raise InvalidOperation(f"priority must be {MIN_PRIORITY}-{MAX_PRIORITY}, got {priority!r}")

        with self._locked() as snap:
            parent_id: str | None = None
            if parent:
                parent_id = self._writable(snap, parent).id

            anchors: dict[str, str | None] = {"after": None, "before": None}
            for name, fragment in (("after", after), ("before", before)):
                if not fragment:
                    continue
                anchor = self._writable(snap, fragment)
                if anchor.parent is not None and anchor.parent not in snap.tasks:
                    raise OrphanedParent(anchor.id, anchor.parent)
                anchors[name] = anchor.id
                parent_id = anchor.parent
            if after and before:
                a, b = snap.tasks[anchors["after"]], snap.tasks[anchors["before"]]
                if a.parent != b.parent:
                    raise InvalidOperation(f"{a.id} and {b.id} are not siblings")

            blockers: list[str] = []
            for fragment in blocks:
                dst = snap.resolve(fragment).id
                if dst not in blockers:
                    blockers.append(dst)

            task_id = generate_id(self.config.prefix, title, taken=snap.tasks, slug=self._slug_ids)
            snap.graph.set_status(task_id, TaskStatus.OPEN)
            for dst in blockers:
                snap.graph.add_edge(task_id, dst, DependencyKind.BLOCKS)

            try:
                placement = place(
                    snap.children_of(parent_id), after=anchors["after"], before=anchors["before"]
                )
            except ValueError as e:
                raise InvalidOperation(str(e)) from e

            task = Task(
                id=task_id,
                title=title,
                status=TaskStatus.OPEN,
                created_at=utc_now(),
                description=(description or "").strip("\n"),
                priority=priority,
                issue_type=(issue_type or DEFAULT_ISSUE_TYPE).strip(),
                assignee=(assignee or "").strip() or None,
                blocks=blockers,
                parent=parent_id,
                peer_index=placement.peer_index,
            )

            self._apply_moves(snap, placement.moved)
            container = self._container_for(snap, parent_id)
            layout.write_record(container / layout.record_name(task_id), task)

        logger.info("Created task %s parent=%s", task_id, parent_id)
        return task

    def set_status(self, fragment: str, status: TaskStatus, reason: str | None = None) -> Task:
        """
        Move a task along open <-> active -> closed.

        Closing needs every child closed first. It stamps closed_at and may
        archive the task's whole root subtree.
        """
        status = TaskStatus(status)
        with self._locked() as snap:
            task = self._writable(snap, fragment)
            if task.status is TaskStatus.CLOSED:
                raise InvalidOperation(f"{task.id} is closed; closed tasks cannot change status")
            if task.status is status:
                raise InvalidOperation(f"{task.id} is already {status.value}")

            if status is TaskStatus.CLOSED:
                open_children = [
                    c.id for c in snap.children_of(task.id) if c.status is not TaskStatus.CLOSED
                ]
                if open_children:
                    raise InvalidOperation(
                        f"{task.id} has open subtasks: " + ", ".join(open_children)
                    )
                # Fail before writing if the tree is broken.
                snap.root_of(task.id)
                task.closed_at = utc_now()
                task.close_reason = (reason or "").strip() or None
            task.status = status
            self._write(snap, task)
            snap.graph.set_status(task.id, status)

            if status is TaskStatus.CLOSED:
                self._archive_if_resolved(snap, task)

        logger.info("Task %s -> %s", task.id, status.value)
        return task

    def start(self, fragment: str) -> Task:
        return self.set_status(fragment, TaskStatus.ACTIVE)

    def close(self, fragment: str, reason: str | None = None) -> Task:
        return self.set_status(fragment, TaskStatus.CLOSED, reason)

    def remove(self, fragment: str) -> list[str]:
        """Delete a task and its whole subtree. Returns the removed ids, task first."""
        with self._locked() as snap:
            task = snap.task(fragment)
            ids = snap.subtree_ids(task.id)
            entry = layout.entry_path(snap.paths[task.id], task.id)

            layout.remove_entry(entry)
            removed = set(ids)
            for i in ids:
                snap.tasks.pop(i)
                snap.paths.pop(i)
            touched = self._strip_references(snap, removed)
            self._prune_after_removal(snap, entry.parent)

        logger.info("Removed %s (%d tasks, %d references stripped)", task.id, len(ids), touched)
        return ids

    def reorder(self, fragment: str, *, after: str | None = None, before: str | None = None) -> Task:
        """Move a task within its sibling group, next to `after` and/or `before`."""
        if not after and not before:
            raise InvalidOperation("reorder needs --after or --before")

        with self._locked() as snap:
            task = self._writable(snap, fragment)
            anchors: dict[str, str | None] = {"after": None, "before": None}
            for name, anchor_fragment in (("after", after), ("before", before)):
                if not anchor_fragment:
                    continue
                anchor = snap.task(anchor_fragment)
                if anchor.id == task.id:
                    raise InvalidOperation(f"cannot move {task.id} relative to itself")
                if anchor.parent != task.parent or anchor.archived != task.archived:
                    raise InvalidOperation(f"{anchor.id} is not a sibling of {task.id}")
                anchors[name] = anchor.id

            try:
                placement = place(snap.group_of(task), after=anchors["after"], before=anchors["before"])
            except ValueError as e:
                raise InvalidOperation(str(e)) from e

            self._apply_moves(snap, placement.moved)
            task.peer_index = placement.peer_index
            self._write(snap, task)

        logger.info("Moved %s to %s", task.id, task.peer_index)
        return task

    def add_dependency(
        self, src: str, dst: str, kind: DependencyKind = DependencyKind.BLOCKS
    ) -> bool:
        """Record `src -> dst`. Returns False if the identical link already exists."""
        kind = DependencyKind(kind)
        with self._locked() as snap:
            source = self._writable(snap, src)
            target = snap.resolve(dst).id
            added = snap.graph.add_edge(source.id, target, kind)
            if added:
                source.links(kind).append(target)
                self._write(snap, source)

        if added:
            logger.info("Linked %s -[%s]-> %s", source.id, kind.value, target)
        return added

    def remove_dependency(self, src: str, dst: str) -> DependencyKind:
        with self._locked() as snap:
            source = self._writable(snap, src)
            target = snap.resolve(dst).id
            kind = snap.graph.remove_edge(source.id, target)
            if kind is None:
                raise InvalidOperation(f"{source.id} has no link to {target}")
            source.links(kind).remove(target)
            self._write(snap, source)

        logger.info("Unlinked %s -> %s", source.id, target)
        return kind

    # ---- maintenance ----

    def repair_orphans(self) -> list[str]:
        """Promote tasks whose parent no longer exists to top-level tasks."""
        promoted: list[str] = []
        with self._locked() as snap:
            for archived in (False, True):
                dest = self._archive_dir if archived else self._root
                group = snap.children_of(None, archived)
                for orphan in snap.orphans(archived):
                    entry = layout.entry_path(snap.paths[orphan.id], orphan.id)
                    old_dir = entry.parent
                    moved = layout.move_entry(entry, dest)
                    snap.paths[orphan.id] = (
                        moved / layout.record_name(orphan.id) if moved.is_dir() else moved
                    )

                    placement = place(group)
                    self._apply_moves(snap, placement.moved)
                    orphan.parent = None
                    orphan.peer_index = placement.peer_index
                    self._write(snap, orphan)
                    group.append(orphan)
                    promoted.append(orphan.id)

                    self._prune_after_removal(snap, old_dir)

        if promoted:
            logger.info("Promoted %d orphaned tasks", len(promoted))
        return promoted

    def sweep_archive(self) -> list[str]:
        """Archive every fully closed root subtree still in the working set."""
        archived: list[str] = []
        with self._locked() as snap:
            for root in snap.children_of(None):
                if root.status is TaskStatus.CLOSED and self._archive_if_resolved(snap, root):
                    archived.append(root.id)
        return archived

    def purge_archive(self) -> list[str]:
        """Permanently delete every archived task."""
        with self._locked() as snap:
            ids = [i for i, t in snap.tasks.items() if t.archived]
            for entry in sorted(self._archive_dir.iterdir()):
                if not entry.name.startswith("."):
                    layout.remove_entry(entry)
            for i in ids:
                snap.tasks.pop(i)
                snap.paths.pop(i)
            self._strip_references(snap, set(ids))

        logger.info("Purged %d archived tasks", len(ids))
        return sorted(ids)

    def slugify_ids(self) -> list[tuple[str, str]]:
        """
        Give every task without a title slug an id of the form {prefix}-{slug}-{hex}.

        References in blocks/related are rewritten. Returns (old, new) pairs.
        """
        prefix = self.config.prefix
        with self._locked() as snap:
            taken = set(snap.tasks)
            renames: dict[str, str] = {}
            for task in snap.ordered(include_archived=True):
                if is_slugged(task.id, prefix):
                    continue
                new_id = slugged_id(task.id, task.title, prefix, taken=taken)
                taken.add(new_id)
                renames[task.id] = new_id
            if not renames:
                return []

            def depth(task_id: str) -> int:
                d, t = 0, snap.tasks[task_id]
                while t.parent in snap.tasks:
                    d, t = d + 1, snap.tasks[t.parent]
                return d

            # Deepest first, so parent directories are still at their old paths.
            for old in sorted(renames, key=depth, reverse=True):
                layout.rename_entry(snap.paths[old], old, renames[old])

            fresh = self._load()
            for task in fresh.tasks.values():
                blocks = [renames.get(i, i) for i in task.blocks]
                related = [renames.get(i, i) for i in task.related]
                if blocks != task.blocks or related != task.related:
                    task.blocks, task.related = blocks, related
                    self._write(fresh, task)

        logger.info("Renamed %d tasks to slug ids", len(renames))
        return list(renames.items())

    # ---- bulk import ----

    def import_records(self, rows: Iterable[ImportRow]) -> list[Task]:
        """
        Add a parsed feed to the store, all or nothing.

        The first row whose parent or dependency is unknown, or whose edge
        would close a cycle, rejects the whole batch with ImportRejected.
        Rows without a peer_index keep their feed order among siblings. Root
        subtrees that are entirely closed go straight to the archive.
        """
        rows = list(rows)
        with self._locked() as snap:
            batch = {r.task.id: r for r in rows}
            graph = snap.graph
            for row in rows:
                if row.task.id not in snap.tasks:
                    graph.set_status(row.task.id, row.task.status)
            # References and edges are checked row by row in feed order.
            for row in rows:
                try:
                    self._check_import_row(snap, batch, row)
                    for dst in row.blocks:
                        graph.add_edge(row.task.id, dst, DependencyKind.BLOCKS)
                    for dst in row.related:
                        graph.add_edge(row.task.id, dst, DependencyKind.RELATED)
                except TaskError as e:
                    raise ImportRejected(row.line_no, e) from e

            self._write_import(snap, rows, batch)

        logger.info("Imported %d tasks", len(rows))
        return [r.task for r in rows]

    @staticmethod
    def _check_import_row(snap: _Snapshot, batch: dict[str, ImportRow], row: ImportRow) -> None:
        task_id = row.task.id
        if task_id in snap.tasks:
            raise InvalidRecord(task_id, "id already exists in the store")

        for ref in (*row.blocks, *row.related):
            if ref not in batch and ref not in snap.tasks:
                raise InvalidRecord(task_id, f"unknown dependency {ref}")

        if row.parent is None:
            return
        if row.parent in snap.tasks:
            if snap.tasks[row.parent].archived:
                raise InvalidOperation(f"parent {row.parent} is archived")
            return
        if row.parent not in batch:
            raise InvalidRecord(task_id, f"unknown parent {row.parent}")

        seen = {task_id}
        cur = batch[row.parent]
        while True:
            if cur.task.id in seen:
                raise InvalidRecord(task_id, f"parent chain loops back through {cur.task.id}")
            seen.add(cur.task.id)
            if cur.parent is None or cur.parent not in batch:
                return
            cur = batch[cur.parent]

    def _write_import(self, snap: _Snapshot, rows: list[ImportRow], batch: dict[str, ImportRow]) -> None:
        kids: dict[str | None, list[ImportRow]] = {}
        for row in rows:
            row.task.parent = row.parent
            kids.setdefault(row.parent, []).append(row)

        def closed_subtree(row: ImportRow) -> bool:
            if row.task.status is not TaskStatus.CLOSED:
                return False
            return all(closed_subtree(c) for c in kids.get(row.task.id, []))

        # Feed order within each group, after the siblings already stored.
        for parent, group in kids.items():
            if parent is None:
                peers = snap.children_of(None)
            elif parent in snap.tasks:
                peers = snap.children_of(parent)
            else:
                peers = []
            for row in group:
                if not row.has_peer_index:
                    row.task.peer_index = place(peers).peer_index
                peers.append(row.task)

        def write(row: ImportRow, archived: bool) -> None:
            row.task.archived = archived
            container = self._container_for(snap, row.parent, archived)
            path = container / layout.record_name(row.task.id)
            layout.write_record(path, row.task)
            snap.tasks[row.task.id] = row.task
            snap.paths[row.task.id] = path
            for child in kids.get(row.task.id, []):
                write(child, archived)

        for row in kids.get(None, []):
            write(row, closed_subtree(row))
        # Children of tasks that were already in the store.
        for parent, group in kids.items():
            if parent is not None and parent not in batch:
                for row in group:
                    write(row, False)
