# src/tsk/cli/main.py

"""
CLI entrypoint.

Initializes logging, parses arguments, runs exactly one store operation and
maps failures to exit codes:
- 0 success, 2 usage error (argparse)
- TaskError subclasses exit with their own code (see tasks.errors)
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import TextIO

from ..config import get_settings
from ..logging_setup import setup_logging
from ..tasks.errors import TaskError
from .commands import CommandContext, registry

logger = logging.getLogger(__name__)


def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    settings = get_settings()
    setup_logging(console_level=settings.log_level, log_dir=settings.log_dir)

    parser = registry.build_parser(prog=settings.app_name)
    args = parser.parse_args(argv)

    ctx = CommandContext(settings=settings, directory=args.dir, stdin=stdin)
    logger.debug("Running %s", args.command)
    try:
        out = registry.handle(ctx, args)
    except TaskError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=stderr)
        return e.exit_code
    except OSError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=stderr)
        return 1

    if out:
        print(out, file=stdout)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
