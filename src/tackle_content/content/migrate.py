"""Index migration: fill in listing fields that older entries lack.

Entries written before the index carried full listing data are rebuilt
from their documents.  Entries whose document is missing or invalid are
dropped; complete entries are kept as they are.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from tackle_content.content.atomic import WriteError
from tackle_content.content.entries import (
    IndexEntryError,
    build_index_entry,
    validate_index_entry,
)
from tackle_content.content.files import LoadError, UnsafeSlugError
from tackle_content.content.index_store import IndexStore, read_index
from tackle_content.content.lock import LockOwnershipError, LockTimeoutError
from tackle_content.content.models import IndexEntry, PageType, utc_now_iso
from tackle_content.content.schema import Decoded, decode_document

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """The index could not be read or the migrated index could not be saved."""


@dataclass
class MigrationReport:
    """Outcome per entry, each named ``<page type>:<slug>``."""

    complete: list[str] = field(default_factory=list)
    migrated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total_kept(self) -> int:
        return len(self.complete) + len(self.migrated)


def _is_complete(entry: IndexEntry) -> bool:
    if not (entry.title and entry.description and entry.published_at):
        return False
    if entry.word_count is None:
        return False
    try:
        validate_index_entry(entry)
    except IndexEntryError:
        return False
    return True


def _rebuild_entry(store: IndexStore, page_type: PageType, slug: str) -> IndexEntry | None:
    try:
        path = store.files.document_path(page_type, slug)
    except UnsafeSlugError:
        return None
    raw = store.files.load_document(path, slug)
    if isinstance(raw, LoadError):
        return None
    decoded = decode_document(raw, page_type)
    if not isinstance(decoded, Decoded):
        return None
    return build_index_entry(decoded.document)


def migrate_index(
    store: IndexStore, page_types: Iterable[PageType] | None = None
) -> MigrationReport:
    """Complete the entries of ``page_types`` (default: all) in place.

    Every entry is validated when the index is written, so entries of the
    types not migrated must already be complete.

    The primary index is backed up first.  Raises ``MigrationError`` when it
    cannot be loaded or the result cannot be saved.
    """
    report = MigrationReport()
    selected = list(page_types) if page_types is not None else list(PageType)
    try:
        with store.lock.hold():
            index = read_index(store.index_path)
            if isinstance(index, LoadError):
                raise MigrationError(f"Failed to load index {store.index_path}: {index}")
            store.backup_content_index()

            for page_type in selected:
                index.entries(page_type)[:] = _migrate_entries(
                    store, page_type, index.entries(page_type), report
                )
            index.last_updated = utc_now_iso()
            store.write_index_unlocked(index)
    except (OSError, WriteError, LockTimeoutError, LockOwnershipError, IndexEntryError) as exc:
        raise MigrationError(f"Migrated index could not be saved: {exc}") from exc

    logger.info(
        "Migrated index: %d complete, %d migrated, %d skipped",
        len(report.complete),
        len(report.migrated),
        len(report.skipped),
    )
    return report


def _migrate_entries(
    store: IndexStore, page_type: PageType, entries: list[IndexEntry], report: MigrationReport
) -> list[IndexEntry]:
    kept: list[IndexEntry] = []
    for entry in entries:
        name = f"{page_type}:{entry.slug}"
        if _is_complete(entry):
            report.complete.append(name)
            kept.append(entry)
            continue
        rebuilt = _rebuild_entry(store, page_type, entry.slug)
        if rebuilt is None:
            logger.warning("Dropping %s from index: file not found or invalid", name)
            report.skipped.append(name)
            continue
        report.migrated.append(name)
        kept.append(rebuilt)
    return kept
