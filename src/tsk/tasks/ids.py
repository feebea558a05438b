# src/tsk/tasks/ids.py

"""
Identifier grammar, generation and title slugs.

Generated ids look like `{prefix}-{8 hex}` or `{prefix}-{slug}-{8 hex}`
(e.g. `tsk-db-migration-abcd1234`). Ids read from disk or imported from a
legacy feed only need the looser `{prefix}-{segment}[-{segment}...]` form.
"""

from __future__ import annotations

import re
import secrets
import unicodedata
from collections.abc import Container

ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_]*(?:-[A-Za-z0-9_.]+)+$")
PREFIX_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9_-]*[A-Za-z0-9_])?$")
HEX_SUFFIX_RE = re.compile(r"^[0-9a-f]{8,}$")
SLUG_WORD_RE = re.compile(r"^[a-z0-9]+$")

HEX_BYTES = 4  # 8 hex chars
MAX_SLUG_LEN = 32
MAX_SLUG_WORDS = 3
DEFAULT_PREFIX = "tsk"

ABBREVIATIONS = {
    "application": "app",
    "authentication": "auth",
    "authorization": "authz",
    "configuration": "config",
    "database": "db",
    "dependencies": "deps",
    "dependency": "dep",
    "development": "dev",
    "documentation": "docs",
    "environment": "env",
    "implementation": "impl",
    "information": "info",
    "initialization": "init",
    "management": "mgmt",
    "performance": "perf",
    "production": "prod",
    "repository": "repo",
    "specification": "spec",
}


def is_valid_id(task_id: object) -> bool:
    return isinstance(task_id, str) and ID_RE.match(task_id) is not None


def is_valid_prefix(prefix: object) -> bool:
    return isinstance(prefix, str) and PREFIX_RE.match(prefix) is not None


def prefix_from_name(name: str) -> str:
    """Derive a project prefix from a directory name."""
    cleaned = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return cleaned if is_valid_prefix(cleaned) else DEFAULT_PREFIX


def slugify(title: str) -> str:
    """
    Turn a title into a short id slug.

    Rules:
    - ASCII-fold, lowercase, anything non-alphanumeric separates words
    - well-known long words are abbreviated
    - at most MAX_SLUG_WORDS words and MAX_SLUG_LEN chars, cut at a word boundary
    - "untitled" when nothing usable is left
    """
    folded = unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode()
    words = [ABBREVIATIONS.get(w, w) for w in re.findall(r"[a-z0-9]+", folded.lower())]

    slug = ""
    for word in words[:MAX_SLUG_WORDS]:
        word = word[:MAX_SLUG_LEN]
        candidate = f"{slug}-{word}" if slug else word
        if len(candidate) > MAX_SLUG_LEN:
            break
        slug = candidate
    return slug or "untitled"


def hex_suffix(task_id: str) -> str | None:
    tail = task_id.rsplit("-", 1)[-1]
    return tail if HEX_SUFFIX_RE.match(tail) else None


def is_slugged(task_id: str, prefix: str) -> bool:
    """True for `{prefix}-{slug words}-{hex}` ids."""
    head = f"{prefix}-"
    if not task_id.startswith(head):
        return False
    parts = task_id[len(head):].split("-")
    if len(parts) < 2 or not HEX_SUFFIX_RE.match(parts[-1]):
        return False
    return all(SLUG_WORD_RE.match(p) for p in parts[:-1])


def generate_id(
    prefix: str,
    title: str | None,
    *,
    taken: Container[str],
    slug: bool = True,
    attempts: int = 64,
) -> str:
    """Allocate a fresh id that is not in `taken`."""
    for _ in range(attempts):
        suffix = secrets.token_hex(HEX_BYTES)
        if slug and title is not None:
            candidate = f"{prefix}-{slugify(title)}-{suffix}"
        else:
            candidate = f"{prefix}-{suffix}"
        if candidate not in taken:
            return candidate
    raise RuntimeError(f"could not allocate a unique id with prefix {prefix!r}")


def slugged_id(task_id: str, title: str, prefix: str, *, taken: Container[str]) -> str:
    """Slug form of an existing id, keeping its hex suffix when it has one."""
    suffix = hex_suffix(task_id)
    if suffix is not None:
        candidate = f"{prefix}-{slugify(title)}-{suffix}"
        if candidate not in taken:
            return candidate
    return generate_id(prefix, title, taken=taken, slug=True)
