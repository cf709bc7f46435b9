"""
Inter-process file locking for the file-backed stores.

Several CLI processes may share one data directory (a `status --watch`
loop next to `train` or `cancel`). Each read-modify-write cycle on a store
file holds an exclusive fcntl.flock() on a sidecar ``<file>.lock``, and the
store re-reads the file after acquiring it.

POSIX only.
"""

from __future__ import annotations

import fcntl
import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from .exceptions import StorageLockError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 30.0
_POLL_INTERVAL_SECONDS = 0.05


def lock_path_for(path: Union[str, Path]) -> Path:
    path = Path(path)
    return path.with_name(path.name + ".lock")


@contextmanager
def file_lock(
    path: Union[str, Path],
    timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT_SECONDS,
) -> Iterator[None]:
    """
    Hold an exclusive lock on ``path`` for the duration of the block.

    The lock file itself is never removed; deleting it while another
    process waits on it would let two writers in.

    Raises:
        StorageLockError: the lock was not acquired within ``timeout`` seconds
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    deadline = None if timeout is None else time.monotonic() + timeout

    with open(path, "a") as fh:
        while True:
            try:
                fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if deadline is not None and time.monotonic() >= deadline:
                    raise StorageLockError(f"Timed out waiting for lock {path}")
                time.sleep(_POLL_INTERVAL_SECONDS)
        try:
            yield
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


class FileSyncMixin:
    """
    Wraps store operations in a locked refresh from disk.

    Subclasses provide ``path``, a ``_lock`` RLock and ``_reload()``. Nested
    calls from the same thread reuse the outer lock, since flock() is not
    reentrant across file descriptors.
    """

    path: Path
    _lock: threading.RLock
    _sync_depth: int = 0

    def _reload(self) -> None:
        raise NotImplementedError

    @contextmanager
    def _synced(self) -> Iterator[None]:
        with self._lock:
            if self._sync_depth:
                self._sync_depth += 1
                try:
                    yield
                finally:
                    self._sync_depth -= 1
                return

            with file_lock(lock_path_for(self.path)):
                self._sync_depth = 1
                try:
                    self._reload()
                    yield
                finally:
                    self._sync_depth = 0
