from __future__ import annotations

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator


class LockUnavailableError(RuntimeError):
    """Raised when a non-blocking lock cannot be acquired."""


def acquire_lockfile(path: Path, *, blocking: bool = True) -> IO[bytes]:
    """Open + flock a lockfile. Keep the returned handle open to hold the lock.

    flock locks belong to the open file description, so two threads that each
    call this get independent handles and exclude each other like two processes.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    f = path.open("r+b") if path.exists() else path.open("w+b")
    flags = fcntl.LOCK_EX
    if not blocking:
        flags |= fcntl.LOCK_NB
    try:
        fcntl.flock(f.fileno(), flags)
    except BlockingIOError as e:
        f.close()
        raise LockUnavailableError(str(e)) from e
    except OSError:
        f.close()
        raise
    return f


def release_lockfile(f: IO[bytes]) -> None:
    """Release a lockfile acquired via acquire_lockfile (best-effort)."""
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except OSError:
        pass
    try:
        f.close()
    except OSError:
        pass


@contextmanager
def locked(path: Path) -> Iterator[None]:
    f = acquire_lockfile(path, blocking=True)
    try:
        yield
    finally:
        release_lockfile(f)


def write_lock_owner(f: IO[bytes]) -> None:
    """Record the holder's pid inside the lock file (diagnostics only)."""
    try:
        f.seek(0)
        f.truncate()
        f.write(f"{os.getpid()}\n".encode("ascii"))
        f.flush()
    except OSError:
        pass
