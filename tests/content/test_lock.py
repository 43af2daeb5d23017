"""Tests for the index lock."""

import json
import os
import threading
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from filelock import FileLock

from tackle_content.content.lock import (
    IndexLock,
    LockData,
    LockHeldError,
    LockOwnershipError,
    LockTimeoutError,
)
from tackle_content.content.lock_metrics import LockMetricsStore


def _make_lock(tmp_path: Path, **kwargs: float) -> IndexLock:
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("poll_interval", 0.01)
    return IndexLock(tmp_path / "_system" / ".index.lock", **kwargs)


def _write_record(path: Path, created_at: datetime, lock_id: str = "other") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"lockId": lock_id, "createdAt": created_at.isoformat(), "processId": "pid-999"}
    path.write_text(json.dumps(data))


class TestHold:
    def test_writes_and_removes_ownership_record(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        with lock.hold():
            assert lock.is_locked()
            assert lock.owner_path.exists()
            data = lock.read_lock_data()
            assert data is not None
            assert data.process_id == f"pid-{os.getpid()}"
        assert not lock.is_locked()
        assert not lock.owner_path.exists()

    def test_reentrant(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        with lock.hold():
            outer = lock.read_lock_data()
            with lock.hold():
                assert lock.read_lock_data() == outer
            assert lock.is_locked()
        assert not lock.is_locked()

    def test_released_on_exception(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        with pytest.raises(RuntimeError):
            with lock.hold():
                raise RuntimeError("boom")
        assert not lock.is_locked()

    def test_run_returns_value(self, tmp_path: Path):
        assert _make_lock(tmp_path).run(lambda: 42) == 42

    def test_process_local_lock_has_no_file(self):
        lock = IndexLock(None)
        with lock.hold():
            assert not lock.is_locked()
        assert lock.read_lock_data() is None
        assert lock.metrics is None

    def test_serialises_threads(self, tmp_path: Path):
        lock = _make_lock(tmp_path, timeout=5.0)
        active = 0
        peak = 0
        guard = threading.Lock()

        def work() -> None:
            nonlocal active, peak
            with lock.hold():
                with guard:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.01)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=work) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert peak == 1

    def test_second_instance_is_excluded(self, tmp_path: Path):
        first = _make_lock(tmp_path)
        second = _make_lock(tmp_path, timeout=0.1)
        with first.hold():
            with pytest.raises(LockTimeoutError):
                with second.hold():
                    pass
        with second.hold():
            assert second.is_locked()


class TestContention:
    def test_times_out_while_another_holder_is_alive(self, tmp_path: Path):
        lock = _make_lock(tmp_path, timeout=0.1)
        lock.lock_path.parent.mkdir(parents=True)
        holder = FileLock(str(lock.lock_path))
        holder.acquire()
        try:
            _write_record(lock.owner_path, datetime.now(tz=UTC), lock_id="busy")
            with pytest.raises(LockTimeoutError, match="pid-999"):
                with lock.hold():
                    pass
            # The live holder's record is not ours to remove.
            assert lock.read_lock_data().lock_id == "busy"
        finally:
            holder.release()

    def test_long_running_holder_is_reported(self, tmp_path: Path, caplog):
        lock = _make_lock(tmp_path, timeout=0.05, stale_after=60)
        lock.lock_path.parent.mkdir(parents=True)
        holder = FileLock(str(lock.lock_path))
        holder.acquire()
        try:
            _write_record(lock.owner_path, datetime.now(tz=UTC) - timedelta(minutes=10))
            with pytest.raises(LockTimeoutError):
                with lock.hold():
                    pass
        finally:
            holder.release()
        assert "may be hung" in caplog.text

    def test_record_of_dead_holder_is_cleaned_up(self, tmp_path: Path, caplog):
        lock = _make_lock(tmp_path)
        _write_record(lock.owner_path, datetime.now(tz=UTC), lock_id="crashed")
        with lock.hold():
            data = lock.read_lock_data()
            assert data is not None
            assert data.lock_id != "crashed"
        assert "STALE INDEX LOCK DETECTED" in caplog.text
        metrics = lock.metrics.load()
        assert metrics.total_cleanups == 1
        assert metrics.recent_cleanups[0].lock_id == "crashed"

    def test_ownership_verified_on_release(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        with pytest.raises(LockOwnershipError):
            with lock.hold():
                _write_record(lock.owner_path, datetime.now(tz=UTC), lock_id="intruder")
        # The other owner's record is left in place, but the file lock is freed.
        data = lock.read_lock_data()
        assert data is not None
        assert data.lock_id == "intruder"
        assert not lock.is_locked()

    def test_missing_record_on_release_is_tolerated(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        with lock.hold():
            lock.owner_path.unlink()
        assert not lock.is_locked()


class TestLockData:
    def test_unparseable_record_is_dated_by_mtime(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        lock.owner_path.parent.mkdir(parents=True)
        lock.owner_path.write_text("1700000000000-abc")
        hour_ago = time.time() - 3600
        os.utime(lock.owner_path, (hour_ago, hour_ago))

        data = lock.read_lock_data()

        assert data is not None
        assert data.lock_id == "unparseable"
        assert data.process_id == "unknown"
        assert data.age_seconds() >= 3500

    def test_unparseable_record_is_replaced_on_acquire(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        lock.owner_path.parent.mkdir(parents=True)
        lock.owner_path.write_text("garbage")
        with lock.hold():
            assert lock.read_lock_data().lock_id != "unparseable"
        assert lock.metrics.load().recent_cleanups[0].lock_id == "unparseable"

    def test_age_seconds(self):
        created = datetime.now(tz=UTC) - timedelta(seconds=30)
        data = LockData(lock_id="x", created_at=created.isoformat(), process_id="pid-1")
        assert 29 <= data.age_seconds() <= 60


class TestForceRelease:
    def test_removes_leftover_record(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        _write_record(lock.owner_path, datetime.now(tz=UTC), lock_id="stuck")
        released = lock.force_release()
        assert released is not None
        assert released.lock_id == "stuck"
        assert not lock.owner_path.exists()
        assert lock.force_release() is None

    def test_refuses_while_held(self, tmp_path: Path):
        lock = _make_lock(tmp_path)
        other = _make_lock(tmp_path)
        with lock.hold():
            with pytest.raises(LockHeldError):
                other.force_release()
            assert lock.owner_path.exists()


class TestMetrics:
    def test_missing_file_yields_defaults(self, tmp_path: Path):
        metrics = LockMetricsStore(tmp_path / "lock-metrics.json").load()
        assert metrics.total_cleanups == 0
        assert metrics.recent_cleanups == []

    def test_keeps_newest_hundred_events(self, tmp_path: Path):
        store = LockMetricsStore(tmp_path / "lock-metrics.json")
        for i in range(105):
            store.record_cleanup(f"lock-{i}", "pid-1", "2026-01-01T00:00:00+00:00", 1.5)

        metrics = store.load()

        assert metrics.total_cleanups == 105
        assert len(metrics.recent_cleanups) == 100
        assert metrics.recent_cleanups[0].lock_id == "lock-104"
        assert metrics.recent_cleanups[0].age_ms == 1500
        on_disk = json.loads((tmp_path / "lock-metrics.json").read_text())
        assert on_disk["totalCleanups"] == 105
        assert "recentCleanups" in on_disk

    def test_malformed_file_is_ignored(self, tmp_path: Path):
        path = tmp_path / "lock-metrics.json"
        path.write_text('{"totalCleanups": "lots"}')
        store = LockMetricsStore(path)
        assert store.load().total_cleanups == 0
        store.record_cleanup("x", "pid-1", "2026-01-01T00:00:00+00:00", 0)
        assert store.load().total_cleanups == 1

    def test_write_failure_does_not_raise(self, tmp_path: Path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = LockMetricsStore(blocker / "lock-metrics.json")
        event = store.record_cleanup("x", "pid-1", "2026-01-01T00:00:00+00:00", 0)
        assert event.lock_id == "x"
        assert "Failed to record lock cleanup metrics" in caplog.text

    def test_reset(self, tmp_path: Path):
        store = LockMetricsStore(tmp_path / "lock-metrics.json")
        store.record_cleanup("x", "pid-1", "2026-01-01T00:00:00+00:00", 0)
        store.reset()
        assert store.load().total_cleanups == 0
