"""Index lock: single writer for every index mutation.

Within a process, a re-entrant mutex totally orders index writes (restore
from backup, rebuild-save, publish updates).  Across processes a hard
``filelock.FileLock`` on ``_system/.index.lock`` excludes other writers; the
operating system drops it when its holder dies, so a crashed writer never
wedges the index.

While held, an ownership record (lock id, creation time, process id) sits
beside the lock file in ``.index.lock.json``.  A record found on acquire
belongs to a holder that died mid-update; it is logged, counted in the lock
metrics and replaced.
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
import time
import uuid
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

from filelock import FileLock, Timeout
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from tackle_content.content.atomic import atomic_write
from tackle_content.content.files import LOCK_METRICS_FILENAME
from tackle_content.content.lock_metrics import LockMetricsStore

logger = logging.getLogger(__name__)

logging.getLogger("filelock").setLevel(logging.INFO)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.1
DEFAULT_STALE_AFTER_SECONDS = 300.0
OWNER_SUFFIX = ".json"


class LockTimeoutError(Exception):
    """The index lock could not be acquired in time."""


class LockOwnershipError(Exception):
    """The ownership record on release belongs to someone else."""


class LockHeldError(Exception):
    """A live process holds the lock, so it cannot be force released."""


class LockData(BaseModel):
    """Contents of the ownership record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    lock_id: str
    created_at: str
    process_id: str

    def age_seconds(self) -> float:
        try:
            created = datetime.fromisoformat(self.created_at)
        except ValueError:
            return 0.0
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        return (datetime.now(tz=UTC) - created).total_seconds()


def _new_lock_data() -> LockData:
    return LockData(
        lock_id=f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}",
        created_at=datetime.now(tz=UTC).isoformat(),
        process_id=f"pid-{os.getpid()}",
    )


class IndexLock:
    """Re-entrant index lock with an optional cross-process file lock.

    Args:
        lock_path: Lock file location.  ``None`` keeps the lock process-local.
        timeout: Seconds to wait before raising ``LockTimeoutError``.
        poll_interval: Seconds between attempts while another process holds it.
        stale_after: A holder older than this is reported as possibly hung.
        metrics: Where cleanups of abandoned records are counted.  Defaults
            to ``lock-metrics.json`` beside the lock file.
    """

    def __init__(
        self,
        lock_path: Path | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        stale_after: float = DEFAULT_STALE_AFTER_SECONDS,
        metrics: LockMetricsStore | None = None,
    ) -> None:
        self.lock_path = Path(lock_path) if lock_path is not None else None
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.stale_after = stale_after
        if metrics is None and self.lock_path is not None:
            metrics = LockMetricsStore(self.lock_path.with_name(LOCK_METRICS_FILENAME))
        self.metrics = metrics
        self._mutex = threading.RLock()
        self._depth = 0
        self._held: LockData | None = None
        self._file_lock: FileLock | None = None

    @property
    def owner_path(self) -> Path | None:
        if self.lock_path is None:
            return None
        return self.lock_path.with_name(self.lock_path.name + OWNER_SUFFIX)

    @contextlib.contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the lock for the duration of the ``with`` block."""
        if not self._mutex.acquire(timeout=self.timeout):
            raise LockTimeoutError(
                f"Failed to acquire index lock within {self.timeout}s "
                "(held by another thread)"
            )
        try:
            if self._depth == 0 and self.lock_path is not None:
                self._held = self._acquire_file()
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0 and self._held is not None:
                    held, self._held = self._held, None
                    self._release_file(held)
        finally:
            self._mutex.release()

    def run(self, fn: Callable[[], T]) -> T:
        """Call ``fn`` while holding the lock and return its result."""
        with self.hold():
            return fn()

    # ── Ownership record ─────────────────────────────────────────

    def read_lock_data(self) -> LockData | None:
        """Parse the ownership record.

        A record that is present but unreadable yields a synthetic entry
        dated by the file's modification time, so its age stays meaningful.
        """
        path = self.owner_path
        if path is None:
            return None
        try:
            text = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
        except OSError:
            return None
        try:
            return LockData.model_validate_json(text)
        except ValidationError:
            return LockData(
                lock_id="unparseable",
                created_at=datetime.fromtimestamp(mtime, tz=UTC).isoformat(),
                process_id="unknown",
            )

    def is_locked(self) -> bool:
        """Whether any holder, in this process or another, has the lock."""
        if self.lock_path is None or not self.lock_path.parent.is_dir():
            return False
        if self._file_lock is not None and self._file_lock.is_locked:
            return True
        other = FileLock(str(self.lock_path))
        try:
            other.acquire(timeout=0)
        except Timeout:
            return True
        other.release()
        return False

    def force_release(self) -> LockData | None:
        """Remove an ownership record left behind by a dead holder.

        Returns the removed record, or ``None`` when there was nothing to
        remove.  Raises ``LockHeldError`` while a live process holds the lock.
        """
        if self.owner_path is None:
            return None
        if self.is_locked():
            current = self.read_lock_data()
            owner = current.process_id if current is not None else "unknown"
            raise LockHeldError(f"Index lock is held by a live process ({owner})")
        data = self.read_lock_data()
        try:
            self.owner_path.unlink()
        except FileNotFoundError:
            logger.info("No index lock to force release")
            return None
        if data is not None:
            logger.warning(
                "Force released index lock %s (owner %s, created %s, age %ds)",
                data.lock_id,
                data.process_id,
                data.created_at,
                data.age_seconds(),
            )
        return data

    # ── File lock ────────────────────────────────────────────────

    def _acquire_file(self) -> LockData:
        assert self.lock_path is not None
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        file_lock = FileLock(str(self.lock_path), thread_local=False)
        try:
            file_lock.acquire(timeout=self.timeout, poll_interval=self.poll_interval)
        except Timeout:
            holder = self.read_lock_data()
            if holder is not None and holder.age_seconds() > self.stale_after:
                logger.error(
                    "Index lock held for %ds by %s (lockId=%s); the holder may be hung",
                    holder.age_seconds(),
                    holder.process_id,
                    holder.lock_id,
                )
            owner = f" Held by {holder.process_id}." if holder is not None else ""
            raise LockTimeoutError(
                f"Failed to acquire index lock within {self.timeout}s. "
                f"Another process may be updating the index.{owner}"
            ) from None

        try:
            leftover = self.read_lock_data()
            if leftover is not None:
                self._record_cleanup(leftover)
            data = _new_lock_data()
            atomic_write(self.owner_path, data.model_dump_json(by_alias=True, indent=2))
        except BaseException:
            file_lock.release()
            raise
        self._file_lock = file_lock
        logger.debug("Index lock acquired (%s)", data.lock_id)
        return data

    def _record_cleanup(self, leftover: LockData) -> None:
        age = leftover.age_seconds()
        logger.warning(
            "STALE INDEX LOCK DETECTED: lockId=%s processId=%s createdAt=%s age=%ds; "
            "its holder exited without releasing, replacing it",
            leftover.lock_id,
            leftover.process_id,
            leftover.created_at,
            age,
        )
        if self.metrics is not None:
            self.metrics.record_cleanup(
                leftover.lock_id, leftover.process_id, leftover.created_at, age
            )

    def _release_file(self, held: LockData) -> None:
        file_lock, self._file_lock = self._file_lock, None
        try:
            current = self.read_lock_data()
            if current is None:
                logger.warning(
                    "Lock record missing during release of %s (removed by another process?)",
                    held.lock_id,
                )
                return
            if current.lock_id != held.lock_id:
                logger.error(
                    "Index lock ownership verification failed: expected %s, found %s "
                    "(owned by %s)",
                    held.lock_id,
                    current.lock_id,
                    current.process_id,
                )
                raise LockOwnershipError(
                    f"Cannot release lock: expected lockId={held.lock_id!r}, "
                    f"got {current.lock_id!r} (owned by {current.process_id})"
                )
            self.owner_path.unlink(missing_ok=True)  # type: ignore[union-attr]
            logger.debug("Index lock released (%s)", held.lock_id)
        finally:
            if file_lock is not None:
                file_lock.release()
