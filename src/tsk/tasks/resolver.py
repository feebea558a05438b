# src/tsk/tasks/resolver.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .errors import Ambiguous, NotFound


@dataclass(frozen=True, slots=True)
class Resolution:
    id: str
    archived: bool


class IdResolver:
    """
    Maps user-typed id fragments to full ids.

    A fragment matches every id it is a prefix of. Matching covers archived ids
    too, so history lookups keep working after archival; callers that change
    state look at Resolution.archived. An exact full-id match wins even when
    the same text prefixes longer ids.
    """

    def __init__(self, active: Iterable[str], archived: Iterable[str] = ()) -> None:
        self._archived = frozenset(archived)
        self._all = frozenset(active) | self._archived
        self._ids = sorted(self._all)

    def matches(self, fragment: str) -> list[str]:
        return [i for i in self._ids if i.startswith(fragment)]

    def resolve(self, fragment: str) -> Resolution:
        fragment = (fragment or "").strip()
        if not fragment:
            raise NotFound(fragment)

        found = self.matches(fragment)
        if not found:
            raise NotFound(fragment)
        if fragment in found:
            return Resolution(fragment, fragment in self._archived)
        if len(found) > 1:
            raise Ambiguous(fragment, found)
        return Resolution(found[0], found[0] in self._archived)
