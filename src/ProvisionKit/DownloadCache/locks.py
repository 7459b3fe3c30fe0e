"""Advisory shared/exclusive file locks for cache entries.

Responsibilities
----------------
- Map a dedicated lock file to a readers/writer lock that is honoured across
  operating-system processes.
- Guarantee release on every exit path, including exceptions raised by the
  guarded block.
- Log acquisition wait and hold times to troubleshoot contention.

Design Notes
------------
- POSIX systems use :func:`fcntl.flock`. Each acquisition opens its own file
  handle, so threads of one process contend exactly like separate processes.
- Windows only offers byte-range exclusive locks through :mod:`msvcrt`;
  shared requests are served exclusively there.
- Acquisition blocks until the lock is granted; there is no timeout.
"""

from __future__ import annotations

import contextlib
import errno
import logging
import time
from pathlib import Path
from typing import IO, Iterator

try:  # pragma: no cover - POSIX only
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - Windows fallback
    fcntl = None  # type: ignore[assignment]

try:  # pragma: no cover - Windows only
    import msvcrt  # type: ignore
except ImportError:  # pragma: no cover - POSIX fallback
    msvcrt = None  # type: ignore[assignment]

__all__ = ["SHARED", "EXCLUSIVE", "shared_lock", "exclusive_lock"]

LOGGER = logging.getLogger("ProvisionKit.DownloadCache.locks")

SHARED = "shared"
EXCLUSIVE = "exclusive"


def _acquire_file_lock(handle: IO[bytes], mode: str) -> None:
    if fcntl is not None:
        operation = fcntl.LOCK_SH if mode == SHARED else fcntl.LOCK_EX
        fcntl.flock(handle.fileno(), operation)  # type: ignore[attr-defined]
    elif msvcrt is not None:
        handle.seek(0)
        while True:
            try:
                msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)  # type: ignore[attr-defined]
                return
            except OSError as exc:
                # LK_LOCK gives up after ten one-second retries
                if exc.errno != errno.EDEADLK:
                    raise


def _release_file_lock(handle: IO[bytes]) -> None:
    if fcntl is not None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)  # type: ignore[attr-defined]
    elif msvcrt is not None:  # pragma: no cover - Windows only
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]


@contextlib.contextmanager
def _file_lock(lock_path: Path, mode: str) -> Iterator[None]:
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(lock_path, "a+b")
    try:
        start = time.monotonic()
        _acquire_file_lock(handle, mode)
        acquired_at = time.monotonic()
        wait_ms = max((acquired_at - start) * 1000.0, 0.0)
        LOGGER.debug(
            "lock-acquired mode=%s wait_ms=%.3f lock_file=%s",
            mode,
            wait_ms,
            lock_path,
        )
        try:
            yield None
        finally:
            _release_file_lock(handle)
            hold_ms = max((time.monotonic() - acquired_at) * 1000.0, 0.0)
            LOGGER.debug(
                "lock-release mode=%s hold_ms=%.3f wait_ms=%.3f lock_file=%s",
                mode,
                hold_ms,
                wait_ms,
                lock_path,
            )
    finally:
        handle.close()


def shared_lock(lock_path: Path) -> Iterator[None]:
    """Return a context manager holding a shared lock on ``lock_path``."""

    return _file_lock(Path(lock_path), SHARED)


def exclusive_lock(lock_path: Path) -> Iterator[None]:
    """Return a context manager holding an exclusive lock on ``lock_path``."""

    return _file_lock(Path(lock_path), EXCLUSIVE)
