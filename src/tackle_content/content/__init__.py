"""Content domain - documents, the listing index and its recovery.

Documents are JSON files owned by the ``FileStore``; the ``ContentIndex``
is a derived cache owned by an ``IndexStore`` and healed by the
``RecoveryEngine``; the ``DriftValidator`` reports where the two disagree.
"""

from tackle_content.content.atomic import WriteError, atomic_write
from tackle_content.content.drift import DriftReport, DriftValidator, render_drift_report
from tackle_content.content.entries import (
    IndexEntryError,
    build_index_entry,
    sanitize_index_entry,
    validate_index_entry,
)
from tackle_content.content.files import FileStore, LoadError, LoadErrorKind, UnsafeSlugError
from tackle_content.content.index_store import IndexStore
from tackle_content.content.lock import (
    IndexLock,
    LockHeldError,
    LockOwnershipError,
    LockTimeoutError,
)
from tackle_content.content.lock_metrics import LockMetrics, LockMetricsStore
from tackle_content.content.migrate import MigrationError, MigrationReport, migrate_index
from tackle_content.content.models import (
    BlogDocument,
    ContentDocument,
    ContentIndex,
    IndexEntry,
    PageType,
    TopicState,
    TopicStatus,
)
from tackle_content.content.recovery import RebuildStats, RecoveryEngine, RecoveryError
from tackle_content.content.schema import (
    Decoded,
    ValidationFailure,
    ValidationResult,
    decode_document,
    validate_and_quarantine,
    validate_document,
)

__all__ = [
    "BlogDocument",
    "ContentDocument",
    "ContentIndex",
    "Decoded",
    "DriftReport",
    "DriftValidator",
    "FileStore",
    "IndexEntry",
    "IndexEntryError",
    "IndexLock",
    "IndexStore",
    "LoadError",
    "LoadErrorKind",
    "LockHeldError",
    "LockMetrics",
    "LockMetricsStore",
    "LockOwnershipError",
    "LockTimeoutError",
    "MigrationError",
    "MigrationReport",
    "PageType",
    "RebuildStats",
    "RecoveryEngine",
    "RecoveryError",
    "TopicState",
    "TopicStatus",
    "UnsafeSlugError",
    "ValidationFailure",
    "ValidationResult",
    "WriteError",
    "atomic_write",
    "build_index_entry",
    "decode_document",
    "migrate_index",
    "render_drift_report",
    "sanitize_index_entry",
    "validate_and_quarantine",
    "validate_document",
    "validate_index_entry",
]
