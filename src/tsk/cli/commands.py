# src/tsk/cli/commands.py

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from ..config import Settings
from ..tasks.errors import InvalidOperation
from ..tasks.ids import slugify
from ..tasks.task_models import MAX_PRIORITY, MIN_PRIORITY, DependencyKind, TaskStatus
from ..tasks.task_store import TaskStore
from .bootstrap import import_beads, import_jsonl, init_store, open_store
from .render import format_json, format_list, format_show, format_tree

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandContext:
    settings: Settings
    directory: str | None = None
    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    _store: TaskStore | None = None

    @property
    def store(self) -> TaskStore:
        if self._store is None:
            self._store = open_store(settings=self.settings, directory=self.directory)
        return self._store


CommandHandler = Callable[[CommandContext, argparse.Namespace], str | None]
ParserSetup = Callable[[argparse.ArgumentParser], None]


class CommandRegistry:
    """Subcommand registry used by the `tsk` entrypoint (add, ls, close, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}
        self._aliases: dict[str, list[str]] = {}
        self._setup: dict[str, ParserSetup] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
        setup: ParserSetup | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        self._aliases[key] = [a.lower() for a in aliases]
        if setup is not None:
            self._setup[key] = setup
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def build_parser(self, prog: str = "tsk") -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=prog, description="Local task tracker backed by Markdown files."
        )
        parser.add_argument("--dir", help="store directory (default: $TSK_DIR or ./.tsk)")
        sub = parser.add_subparsers(dest="command", metavar="COMMAND")
        sub.required = True
        for name, help_text in self._help.items():
            p = sub.add_parser(
                name, help=help_text, description=help_text, aliases=self._aliases[name]
            )
            setup = self._setup.get(name)
            if setup is not None:
                setup(p)
        return parser

    def handle(self, ctx: CommandContext, args: argparse.Namespace) -> str | None:
        """Run the handler for `args.command`; returns text to print (or None)."""
        handler = self._handlers.get(str(args.command).lower())
        if handler is None:
            raise InvalidOperation(f"unknown command: {args.command}")
        return handler(ctx, args)


registry = CommandRegistry()


def _read_lines(ctx: CommandContext, source: str) -> list[str]:
    if source == "-":
        return ctx.stdin.read().splitlines()
    return Path(source).read_text("utf-8").splitlines()


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


# ---- handlers ----


def cmd_init(ctx: CommandContext, args: argparse.Namespace) -> str:
    store = init_store(settings=ctx.settings, directory=ctx.directory, prefix=args.prefix)
    ctx._store = store
    lines = [f"Initialized {store.root} (prefix {store.config.prefix})"]
    if args.from_jsonl:
        tasks = import_jsonl(store, _read_lines(ctx, args.from_jsonl))
        lines.append(f"Imported {_plural(len(tasks), 'task')} from {args.from_jsonl}")
    if args.from_beads:
        tasks = import_beads(store, args.from_beads)
        lines.append(f"Imported {_plural(len(tasks), 'task')} from {args.from_beads}")
    return "\n".join(lines)


def cmd_add(ctx: CommandContext, args: argparse.Namespace) -> str:
    task = ctx.store.create(
        args.title,
        description=args.description or "",
        parent=args.parent,
        blocks=args.blocked_by or [],
        after=args.after,
        before=args.before,
        priority=args.priority,
        issue_type=args.type,
        assignee=args.assignee,
    )
    return task.id


# --status value -> (statuses, include archive)
_LIST_FILTERS: dict[str | None, tuple[set[TaskStatus] | None, bool]] = {
    None: ({TaskStatus.OPEN, TaskStatus.ACTIVE}, False),
    "open": ({TaskStatus.OPEN}, False),
    "active": ({TaskStatus.ACTIVE}, False),
    "closed": ({TaskStatus.CLOSED}, True),
    "all": (None, True),
}


def cmd_list(ctx: CommandContext, args: argparse.Namespace) -> str:
    statuses, include_archived = _LIST_FILTERS[args.status]
    tasks = ctx.store.list_tasks(statuses, include_archived=include_archived)
    return format_json(tasks) if args.json else format_list(tasks)


def cmd_ready(ctx: CommandContext, args: argparse.Namespace) -> str:
    tasks = ctx.store.ready()
    return format_json(tasks) if args.json else format_list(tasks)


def cmd_blocked(ctx: CommandContext, args: argparse.Namespace) -> str:
    tasks = ctx.store.blocked()
    return format_json(tasks) if args.json else format_list(tasks)


def cmd_show(ctx: CommandContext, args: argparse.Namespace) -> str:
    store = ctx.store
    task = store.get(args.id)
    if args.json:
        return format_json([task])
    return format_show(
        task,
        blockers=store.blockers(task.id),
        dependents=store.dependents(task.id),
        children=store.children(task.id),
        blocked=store.is_blocked(task.id),
    )


def cmd_tree(ctx: CommandContext, args: argparse.Namespace) -> str:
    return format_tree(ctx.store.subtree(args.id, include_archived=args.all))


def cmd_find(ctx: CommandContext, args: argparse.Namespace) -> str:
    tasks = ctx.store.search(" ".join(args.query))
    return format_json(tasks) if args.json else format_list(tasks)


def cmd_start(ctx: CommandContext, args: argparse.Namespace) -> str:
    task = ctx.store.start(args.id)
    return f"Started {task.id}"


def cmd_close(ctx: CommandContext, args: argparse.Namespace) -> str:
    task = ctx.store.close(args.id, args.reason)
    return f"Closed {task.id}" + (" (archived)" if task.archived else "")


def cmd_rm(ctx: CommandContext, args: argparse.Namespace) -> str:
    ids = ctx.store.remove(args.id)
    extra = len(ids) - 1
    return f"Removed {ids[0]}" + (f" and {_plural(extra, 'subtask')}" if extra else "")


def cmd_mv(ctx: CommandContext, args: argparse.Namespace) -> str:
    task = ctx.store.reorder(args.id, after=args.after, before=args.before)
    return f"Moved {task.id}"


def cmd_dep(ctx: CommandContext, args: argparse.Namespace) -> str:
    store = ctx.store
    src, dst = store.resolve(args.src).id, store.resolve(args.dst).id
    if args.dep_action == "add":
        kind = DependencyKind(args.type)
        if store.add_dependency(src, dst, kind):
            return f"{src} -[{kind.value}]-> {dst}"
        return f"{src} -[{kind.value}]-> {dst} already exists"
    kind = store.remove_dependency(src, dst)
    return f"Removed {src} -[{kind.value}]-> {dst}"


def cmd_import(ctx: CommandContext, args: argparse.Namespace) -> str:
    tasks = import_jsonl(ctx.store, _read_lines(ctx, args.file))
    return f"Imported {_plural(len(tasks), 'task')}"


def cmd_slugify(ctx: CommandContext, args: argparse.Namespace) -> str:
    if args.title:
        return slugify(" ".join(args.title))
    renamed = ctx.store.slugify_ids()
    if not renamed:
        return "All ids already carry a slug."
    return "\n".join(f"{old} -> {new}" for old, new in renamed)


def cmd_purge(ctx: CommandContext, args: argparse.Namespace) -> str:
    ids = ctx.store.purge_archive()
    return f"Purged {_plural(len(ids), 'archived task')}"


def cmd_repair(ctx: CommandContext, args: argparse.Namespace) -> str:
    store = ctx.store
    promoted = store.repair_orphans()
    archived = store.sweep_archive()
    lines = [f"Promoted orphan {i} to top level" for i in promoted]
    lines += [f"Archived {i}" for i in archived]
    return "\n".join(lines) or "Nothing to repair."


# ---- argument setup ----


def _setup_init(p: argparse.ArgumentParser) -> None:
    p.add_argument("--prefix", help="id prefix (default: $TSK_PREFIX or the project directory name)")
    p.add_argument("--from-jsonl", metavar="FILE", help="import a JSONL issue export ('-' for stdin)")
    p.add_argument("--from-beads", metavar="DB", help="import a legacy beads SQLite database")


def _priority(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}") from None
    if not MIN_PRIORITY <= value <= MAX_PRIORITY:
        raise argparse.ArgumentTypeError(f"must be {MIN_PRIORITY}-{MAX_PRIORITY}")
    return value


def _setup_add(p: argparse.ArgumentParser) -> None:
    p.add_argument("title")
    p.add_argument("-d", "--description", help="long description (Markdown)")
    p.add_argument("-P", "--parent", help="parent task id")
    p.add_argument(
        "-b", "--blocked-by", action="append", metavar="ID", help="task this one waits on (repeatable)"
    )
    p.add_argument("--after", metavar="ID", help="place right after this sibling")
    p.add_argument("--before", metavar="ID", help="place right before this sibling")
    p.add_argument("-p", "--priority", type=_priority, default=2, help="0 (highest) to 4")
    p.add_argument("-t", "--type", default="task", help="issue type (task, bug, feature...)")
    p.add_argument("--assignee")


def _setup_list(p: argparse.ArgumentParser) -> None:
    p.add_argument("--status", choices=["open", "active", "closed", "all"])
    p.add_argument("--json", action="store_true")


def _setup_json(p: argparse.ArgumentParser) -> None:
    p.add_argument("--json", action="store_true")


def _setup_id(p: argparse.ArgumentParser) -> None:
    p.add_argument("id", help="task id or unique prefix")


def _setup_show(p: argparse.ArgumentParser) -> None:
    _setup_id(p)
    _setup_json(p)


def _setup_tree(p: argparse.ArgumentParser) -> None:
    p.add_argument("id", nargs="?", help="only this task's subtree")
    p.add_argument("--all", action="store_true", help="include the archive")


def _setup_find(p: argparse.ArgumentParser) -> None:
    p.add_argument("query", nargs="+")
    _setup_json(p)


def _setup_close(p: argparse.ArgumentParser) -> None:
    _setup_id(p)
    p.add_argument("-r", "--reason")


def _setup_mv(p: argparse.ArgumentParser) -> None:
    _setup_id(p)
    p.add_argument("--after", metavar="ID")
    p.add_argument("--before", metavar="ID")


def _setup_dep(p: argparse.ArgumentParser) -> None:
    sub = p.add_subparsers(dest="dep_action", metavar="ACTION")
    sub.required = True
    add = sub.add_parser("add", help="SRC waits on DST")
    add.add_argument("src")
    add.add_argument("dst")
    add.add_argument("--type", choices=[k.value for k in DependencyKind], default="blocks")
    rm = sub.add_parser("rm", help="drop the link SRC -> DST")
    rm.add_argument("src")
    rm.add_argument("dst")


def _setup_import(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", help="JSONL file, or '-' for stdin")


def _setup_slugify(p: argparse.ArgumentParser) -> None:
    p.add_argument("title", nargs="*", help="print the slug of a title instead of renaming")


registry.register("init", cmd_init, "Create the task store here.", setup=_setup_init)
registry.register("add", cmd_add, "Add a task and print its id.", setup=_setup_add)
registry.register("ls", cmd_list, "List tasks in tree order.", aliases=["list"], setup=_setup_list)
registry.register("ready", cmd_ready, "List open tasks nothing blocks.", setup=_setup_json)
registry.register("blocked", cmd_blocked, "List tasks waiting on others.", setup=_setup_json)
registry.register("show", cmd_show, "Show one task in detail.", setup=_setup_show)
registry.register("tree", cmd_tree, "Draw the task hierarchy.", setup=_setup_tree)
registry.register("find", cmd_find, "Search titles, descriptions and close reasons.", setup=_setup_find)
registry.register("start", cmd_start, "Mark a task active.", setup=_setup_id)
registry.register("close", cmd_close, "Close a task.", aliases=["done"], setup=_setup_close)
registry.register("rm", cmd_rm, "Delete a task and its subtasks.", aliases=["remove"], setup=_setup_id)
registry.register("mv", cmd_mv, "Reorder a task among its siblings.", aliases=["reorder"], setup=_setup_mv)
registry.register("dep", cmd_dep, "Add or remove dependencies.", setup=_setup_dep)
registry.register("import", cmd_import, "Import a JSONL issue export.", setup=_setup_import)
registry.register("slugify", cmd_slugify, "Rename ids to carry a title slug.", setup=_setup_slugify)
registry.register("purge", cmd_purge, "Permanently delete archived tasks.")
registry.register("repair", cmd_repair, "Promote orphans and archive finished trees.")
