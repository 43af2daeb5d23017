"""Lock cleanup metrics.

Every time the index lock finds an owner record left behind by a dead
holder, the cleanup is counted in ``_system/lock-metrics.json`` together
with the most recent events.  Recording is best effort: a metrics write
failure is logged and never blocks the lock.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from tackle_content.content.atomic import WriteError, atomic_write
from tackle_content.content.files import LoadError, read_json

logger = logging.getLogger(__name__)

METRICS_VERSION = "1.0.0"
MAX_RECENT_CLEANUPS = 100


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LockCleanupEvent(_CamelModel):
    """One abandoned lock that was cleaned up."""

    timestamp: str
    lock_id: str
    process_id: str
    created_at: str
    age_ms: int


class LockMetrics(_CamelModel):
    version: str = METRICS_VERSION
    last_updated: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())
    total_cleanups: int = 0
    recent_cleanups: list[LockCleanupEvent] = Field(default_factory=list)


class LockMetricsStore:
    """Reads and appends to the lock metrics file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> LockMetrics:
        """Current metrics; a missing or unreadable file yields empty metrics."""
        raw = read_json(self.path)
        if isinstance(raw, LoadError):
            return LockMetrics()
        try:
            return LockMetrics.model_validate(raw)
        except ValidationError:
            logger.warning("Ignoring malformed lock metrics at %s", self.path)
            return LockMetrics()

    def record_cleanup(
        self, lock_id: str, process_id: str, created_at: str, age_seconds: float
    ) -> LockCleanupEvent:
        """Count a cleanup and keep it among the recent events, newest first."""
        event = LockCleanupEvent(
            timestamp=datetime.now(tz=UTC).isoformat(),
            lock_id=lock_id,
            process_id=process_id,
            created_at=created_at,
            age_ms=max(0, int(age_seconds * 1000)),
        )
        metrics = self.load()
        metrics.total_cleanups += 1
        metrics.recent_cleanups = [event, *metrics.recent_cleanups][:MAX_RECENT_CLEANUPS]
        metrics.last_updated = event.timestamp
        try:
            atomic_write(self.path, metrics.model_dump_json(by_alias=True, indent=2))
        except (OSError, WriteError) as exc:
            logger.warning("Failed to record lock cleanup metrics: %s", exc)
            return event
        logger.info(
            "Recorded lock cleanup event: lockId=%s processId=%s age=%dms total=%d",
            event.lock_id,
            event.process_id,
            event.age_ms,
            metrics.total_cleanups,
        )
        return event

    def reset(self) -> None:
        atomic_write(self.path, LockMetrics().model_dump_json(by_alias=True, indent=2))
