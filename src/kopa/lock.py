"""Cross-process mutual exclusion using an exclusive marker file.

The lock is held while the marker exists. Ownership is not tracked: any
process that removes the file releases it, and a lock left behind by a
crashed writer is only cleared by hand.
"""

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from kopa.config import LOCK_POLL_INTERVAL, LOCK_TIMEOUT
from kopa.errors import HistoryWriteError, LockTimeout

logger = logging.getLogger(__name__)


def _try_create(path: Path) -> bool:
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
    except FileExistsError:
        return False
    except OSError as e:
        raise HistoryWriteError(f"Failed to acquire lock {path}: {e}") from e
    os.close(fd)
    return True


def acquire(path: str | Path, timeout: float = LOCK_TIMEOUT, poll_interval: float = LOCK_POLL_INTERVAL) -> None:
    """Block until the marker file at ``path`` is created by this call.

    Raises:
        LockTimeout: the marker still existed after ``timeout`` seconds.
        HistoryWriteError: the marker could not be created for another reason.
    """
    path = Path(path)
    deadline = time.monotonic() + timeout
    while True:
        if _try_create(path):
            return
        if time.monotonic() >= deadline:
            raise LockTimeout(path, timeout)
        time.sleep(poll_interval)


def release(path: str | Path) -> None:
    """Remove the marker file. An already-missing marker counts as released."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        raise HistoryWriteError(f"Failed to release lock {path}: {e}") from e


@contextmanager
def locked(path: str | Path, timeout: float = LOCK_TIMEOUT) -> Iterator[None]:
    acquire(path, timeout)
    try:
        yield
    finally:
        try:
            release(path)
        except HistoryWriteError:
            logger.exception("Error releasing history lock")
