"""Index recovery: restore from backup, or rebuild from document files.

Recovery is self-healing rather than read-only: whichever branch succeeds,
the recovered index is written back to the primary path before it is
returned, so the next load reads a valid file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from tackle_content.content.atomic import WriteError, atomic_write
from tackle_content.content.entries import (
    IndexEntryError,
    build_index_entry,
    validate_index_entry,
)
from tackle_content.content.files import LoadError, LoadErrorKind
from tackle_content.content.lock import LockOwnershipError, LockTimeoutError
from tackle_content.content.models import ContentIndex, PageType
from tackle_content.content.schema import validate_and_quarantine

if TYPE_CHECKING:
    from tackle_content.content.index_store import IndexStore

logger = logging.getLogger(__name__)

_PERSIST_ERRORS = (OSError, WriteError, LockTimeoutError, LockOwnershipError, IndexEntryError)


class RecoveryError(Exception):
    """A recovered index could not be persisted to the primary path."""


@dataclass
class RebuildIssue:
    slug: str
    file_path: Path
    reason: str
    page_type: PageType


@dataclass
class RebuildStats:
    """Counters and itemised problems from a rebuild."""

    total_files: int = 0
    valid_posts: int = 0
    invalid_posts: int = 0
    quarantined_posts: int = 0
    draft_posts: int = 0
    errors: list[RebuildIssue] = field(default_factory=list)


@dataclass
class _Backup:
    index: ContentIndex
    text: str


class RecoveryEngine:
    """Recovers the primary index owned by ``store``."""

    def __init__(self, store: IndexStore) -> None:
        self.store = store

    def recover_index(self) -> ContentIndex:
        """Return a valid index and leave a valid primary file on disk.

        Raises:
            RecoveryError: The recovered index could not be written back.
        """
        logger.info("Attempting index recovery (backup, then rebuild from files)")

        backup = self._load_backup()
        if isinstance(backup, _Backup):
            self._persist_text(backup.text)
            logger.info(
                "Restored index from backup %s (%d blog posts)",
                self.store.backup_path,
                len(backup.index.blog_posts),
            )
            return backup.index

        logger.warning("Backup unusable (%s), rebuilding index from files", backup)
        index, stats = self.rebuild_index_from_files()
        self._persist_index(index)
        logger.info(
            "Rebuilt index from files: %d valid, %d invalid, %d quarantined",
            stats.valid_posts,
            stats.invalid_posts,
            stats.quarantined_posts,
        )
        if not self.store.backup_content_index():
            logger.warning("Rebuilt index saved but backup refresh failed")
        return index

    def rebuild_index_from_files(self) -> tuple[ContentIndex, RebuildStats]:
        """Build a fresh index from every document file on disk.

        Invalid documents are quarantined and counted, never fatal.
        Draft and noindex documents are skipped.
        """
        files = self.store.files
        index = ContentIndex()
        stats = RebuildStats()

        for page_type in PageType:
            for path in files.list_files(files.type_dir(page_type)):
                slug = path.name.removesuffix(".json")
                stats.total_files += 1

                raw = files.load_document(path, slug)
                if isinstance(raw, LoadError):
                    stats.invalid_posts += 1
                    stats.errors.append(
                        RebuildIssue(slug, path, f"Failed to load document: {raw}", page_type)
                    )
                    continue

                document = validate_and_quarantine(raw, slug, path, page_type)
                if document is None:
                    stats.quarantined_posts += 1
                    stats.errors.append(
                        RebuildIssue(
                            slug, path, "Schema validation failed (quarantined)", page_type
                        )
                    )
                    continue

                if not document.is_listed:
                    stats.draft_posts += 1
                    continue

                entry = build_index_entry(document)
                try:
                    validate_index_entry(entry)
                except IndexEntryError as exc:
                    stats.invalid_posts += 1
                    stats.errors.append(RebuildIssue(slug, path, str(exc), page_type))
                    continue

                if index.has_slug(page_type, entry.slug):
                    stats.invalid_posts += 1
                    stats.errors.append(
                        RebuildIssue(
                            slug, path, f"Duplicate slug {entry.slug!r} already indexed", page_type
                        )
                    )
                    continue

                index.entries(page_type).append(entry)
                stats.valid_posts += 1
                logger.debug("Indexed %s:%s", page_type, slug)

        logger.info(
            "Rebuild scanned %d files: %d indexed, %d invalid, %d quarantined, %d draft/noindex",
            stats.total_files,
            stats.valid_posts,
            stats.invalid_posts,
            stats.quarantined_posts,
            stats.draft_posts,
        )
        return index, stats

    def rebuild_and_save_index(self) -> RebuildStats:
        """Rebuild from files and persist to the primary path.

        Raises ``RecoveryError`` when the rebuilt index cannot be saved.
        """
        index, stats = self.rebuild_index_from_files()
        try:
            self.store.save_index(index)
        except _PERSIST_ERRORS as exc:
            logger.error("Failed to save rebuilt index to %s: %s", self.store.index_path, exc)
            raise RecoveryError(f"Rebuilt index could not be saved: {exc}") from exc
        return stats

    # ── Internals ────────────────────────────────────────────────

    def _load_backup(self) -> _Backup | LoadError:
        from tackle_content.content.index_store import parse_index

        path = self.store.backup_path
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            return LoadError(LoadErrorKind.NOT_FOUND, path, str(exc))
        except OSError as exc:
            return LoadError(LoadErrorKind.READ_FAILED, path, str(exc))
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            return LoadError(LoadErrorKind.INVALID_JSON, path, str(exc))
        parsed = parse_index(raw, path)
        if isinstance(parsed, LoadError):
            return parsed
        return _Backup(index=parsed, text=text)

    def _persist_text(self, text: str) -> None:
        try:
            with self.store.lock.hold():
                atomic_write(self.store.index_path, text)
        except _PERSIST_ERRORS as exc:
            logger.error("Failed to restore backup as primary index: %s", exc)
            raise RecoveryError(
                f"Recovery from backup succeeded but failed to save: {exc}"
            ) from exc

    def _persist_index(self, index: ContentIndex) -> None:
        try:
            with self.store.lock.hold():
                self.store.write_index_unlocked(index)
        except _PERSIST_ERRORS as exc:
            logger.error("CRITICAL: failed to save rebuilt index: %s", exc)
            raise RecoveryError(f"Recovery from files succeeded but failed to save: {exc}") from exc
