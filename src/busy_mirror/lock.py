"""
Single-writer lock serializing sync cycles across threads and processes.
"""

import fcntl
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path

from busy_mirror.models import LockTimeout

logger = logging.getLogger(__name__)


class SyncLock:
    """Non-reentrant lock backed by ``flock`` on a lock file.

    A thread lock guards the file lock, so two threads sharing one
    ``SyncLock`` serialize as well as two separate processes do.
    """

    def __init__(self, path: Path, poll_interval: float = 0.1):
        self.path = path
        self.poll_interval = poll_interval
        self._thread_lock = threading.Lock()
        self._fd: int | None = None

    def acquire(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; return False if the lock stayed busy."""
        deadline = time.monotonic() + max(timeout, 0)
        if not self._thread_lock.acquire(timeout=max(timeout, 0)):
            return False

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError:
            self._thread_lock.release()
            raise

        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    self._thread_lock.release()
                    return False
                time.sleep(min(self.poll_interval, max(deadline - time.monotonic(), 0)))
                continue
            break

        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())
        self._fd = fd
        logger.debug("Acquired sync lock %s", self.path)
        return True

    def release(self):
        """Release the lock; a no-op when it is not held."""
        fd, self._fd = self._fd, None
        if fd is None:
            return
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
            self._thread_lock.release()
            logger.debug("Released sync lock %s", self.path)

    @property
    def locked(self) -> bool:
        return self._fd is not None

    @contextmanager
    def held(self, timeout: float):
        """Hold the lock for the body; raise LockTimeout if it cannot be taken."""
        if not self.acquire(timeout):
            raise LockTimeout(
                f"Another sync is still running (waited {timeout:g}s for {self.path})"
            )
        try:
            yield self
        finally:
            self.release()
