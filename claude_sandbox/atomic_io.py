"""Atomic file primitives for state shared by concurrent launches.

Provides an advisory file lock (via ``fcntl.flock()``) used to serialize
session name reservation, and an atomic copy used to refresh the git
identity in the persistent directory without ever exposing a torn file.

WARNING: ``fcntl.flock()`` provides only advisory locking and does not
work reliably on NFS or other networked filesystems.  Keep the persistent
directory on local disk.
"""

from __future__ import annotations

import contextlib
import fcntl
import os
import shutil
import tempfile
import time
from collections.abc import Iterator
from pathlib import Path

from claude_sandbox.constants import SESSION_LOCK_TIMEOUT


@contextlib.contextmanager
def file_lock(lock_path: Path, *, timeout: float = SESSION_LOCK_TIMEOUT) -> Iterator[None]:
    """Hold an exclusive lock on *lock_path* for the duration of the block.

    Uses non-blocking attempts with a retry loop so that a stuck lock
    never blocks indefinitely.

    Raises:
        OSError: If the lock cannot be acquired within *timeout* seconds.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(lock_path), os.O_CREAT | os.O_RDWR, 0o600)
    acquired = False
    try:
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                acquired = True
                break
            except OSError:
                if time.monotonic() >= deadline:
                    raise OSError(
                        f"Timed out after {timeout}s waiting for lock on {lock_path}. "
                        f"If no other launch is running, remove it and retry."
                    )
                time.sleep(0.1)
        yield
    finally:
        if acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


def atomic_copy(src: Path, dest: Path) -> None:
    """Copy *src* over *dest* atomically with 600 permissions.

    Copies into a temp file in the destination directory, then
    ``os.replace()``s it into place, so readers see either the old or the
    new content. Concurrent callers race benignly: last write wins.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(dest.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as out, open(src, "rb") as inp:
            shutil.copyfileobj(inp, out)
        os.replace(tmp_path, dest)
    except OSError:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
