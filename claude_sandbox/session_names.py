"""Session name allocation.

Names are ``<base>-<n>`` with the smallest non-negative ``n`` not held by any
container the engine knows about, running or stopped. There is no stored
counter: every allocation reads the engine's current state. The allocator
itself does not lock; the launcher serializes allocate-and-reserve and the
engine's ``create --name`` rejects a duplicate atomically.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from claude_sandbox.docker import list_container_names
from claude_sandbox.models import SessionIdentity


def _suffix_pattern(base_name: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(base_name)}-(\d+)$")


def used_indices(base_name: str, names: Iterable[str]) -> set[int]:
    """Extract suffixes in use from container *names* belonging to *base_name*.

    Names that merely share the prefix (``sandbox-old``, ``sandbox-1-x``)
    are ignored.
    """
    pattern = _suffix_pattern(base_name)
    used: set[int] = set()
    for name in names:
        match = pattern.match(name.lstrip("/"))
        if match:
            used.add(int(match.group(1)))
    return used


def next_free_index(base_name: str, existing: Iterable[str]) -> int:
    """Return the lowest suffix not present in *existing*."""
    used = used_indices(base_name, existing)
    index = 0
    while index in used:
        index += 1
    return index


def allocate(base_name: str) -> SessionIdentity:
    """Allocate the first free session identity for *base_name*.

    Raises:
        RuntimeUnavailable: If the engine cannot be queried.
    """
    existing = list_container_names(f"{base_name}-")
    return SessionIdentity(base_name=base_name, index=next_free_index(base_name, existing))
