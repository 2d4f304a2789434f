import threading
import time

import pytest

from kopa import lock
from kopa.errors import HistoryWriteError, LockTimeout


class TestAcquireRelease:
    def test_acquire_creates_marker(self, tmp_path):
        path = tmp_path / "history.lock"
        lock.acquire(path, timeout=0.1)
        assert path.exists()

    def test_release_removes_marker(self, tmp_path):
        path = tmp_path / "history.lock"
        lock.acquire(path, timeout=0.1)
        lock.release(path)
        assert not path.exists()

    def test_release_missing_marker_is_ok(self, tmp_path):
        lock.release(tmp_path / "missing.lock")

    def test_timeout_when_held(self, tmp_path):
        path = tmp_path / "history.lock"
        path.touch()
        start = time.monotonic()
        with pytest.raises(LockTimeout) as exc_info:
            lock.acquire(path, timeout=0.2, poll_interval=0.01)
        assert time.monotonic() - start >= 0.2
        assert "Lock timeout after 0.20s" in str(exc_info.value)
        assert path.exists()

    def test_acquire_waits_for_release(self, tmp_path):
        path = tmp_path / "history.lock"
        path.touch()
        timer = threading.Timer(0.1, path.unlink)
        timer.start()
        try:
            lock.acquire(path, timeout=2.0, poll_interval=0.01)
        finally:
            timer.join()
        assert path.exists()

    def test_missing_directory_is_write_error(self, tmp_path):
        with pytest.raises(HistoryWriteError):
            lock.acquire(tmp_path / "nope" / "history.lock", timeout=0.1)


class TestLockedContext:
    def test_releases_after_block(self, tmp_path):
        path = tmp_path / "history.lock"
        with lock.locked(path, timeout=0.1):
            assert path.exists()
        assert not path.exists()

    def test_releases_on_exception(self, tmp_path):
        path = tmp_path / "history.lock"
        with pytest.raises(RuntimeError):
            with lock.locked(path, timeout=0.1):
                raise RuntimeError("boom")
        assert not path.exists()

    def test_mutual_exclusion(self, tmp_path):
        path = tmp_path / "history.lock"
        active = []
        overlaps = []

        def worker():
            for _ in range(5):
                with lock.locked(path, timeout=5.0):
                    active.append(1)
                    if len(active) > 1:
                        overlaps.append(True)
                    time.sleep(0.005)
                    active.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlaps == []
