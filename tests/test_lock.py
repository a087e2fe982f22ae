"""
Tests for SyncLock: bounded wait, fail-fast, guaranteed release.
"""

import threading
import time

import pytest

from busy_mirror.lock import SyncLock
from busy_mirror.models import LockTimeout


def test_acquire_and_release(sync_lock):
    assert sync_lock.acquire(timeout=0.1)
    assert sync_lock.locked
    sync_lock.release()
    assert not sync_lock.locked


def test_release_when_not_held_is_noop(sync_lock):
    sync_lock.release()
    sync_lock.release()
    assert not sync_lock.locked


def test_second_holder_times_out(sync_lock, lock_path):
    """A separate lock on the same file (like another process) waits, then gives up."""
    other = SyncLock(lock_path, poll_interval=0.02)
    assert sync_lock.acquire(timeout=0.1)

    started = time.monotonic()
    assert other.acquire(timeout=0.2) is False
    elapsed = time.monotonic() - started

    assert 0.15 <= elapsed < 2.0
    assert not other.locked


def test_second_holder_gets_lock_after_release(sync_lock, lock_path):
    other = SyncLock(lock_path, poll_interval=0.02)
    assert sync_lock.acquire(timeout=0.1)
    sync_lock.release()

    assert other.acquire(timeout=0.1)
    other.release()


def test_waiter_proceeds_when_holder_releases(sync_lock, lock_path):
    other = SyncLock(lock_path, poll_interval=0.02)
    assert sync_lock.acquire(timeout=0.1)

    releaser = threading.Timer(0.1, sync_lock.release)
    releaser.start()
    try:
        assert other.acquire(timeout=2.0)
    finally:
        releaser.join()
        other.release()


def test_not_reentrant(sync_lock):
    assert sync_lock.acquire(timeout=0.1)
    assert sync_lock.acquire(timeout=0.1) is False
    assert sync_lock.locked


def test_threads_sharing_one_lock_are_serialized(sync_lock):
    assert sync_lock.acquire(timeout=0.1)
    result = []

    worker = threading.Thread(target=lambda: result.append(sync_lock.acquire(timeout=0.1)))
    worker.start()
    worker.join()

    assert result == [False]


def test_held_raises_lock_timeout(sync_lock, lock_path):
    other = SyncLock(lock_path, poll_interval=0.02)
    assert sync_lock.acquire(timeout=0.1)

    with pytest.raises(LockTimeout):
        with other.held(timeout=0.1):
            pytest.fail("body must not run without the lock")


def test_held_releases_on_error(sync_lock):
    with pytest.raises(RuntimeError):
        with sync_lock.held(timeout=0.1):
            assert sync_lock.locked
            raise RuntimeError("boom")

    assert not sync_lock.locked
    assert sync_lock.acquire(timeout=0.1)
