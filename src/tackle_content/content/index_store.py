"""IndexStore: the single owner of the content index and its backup.

One ``IndexStore`` is built per process and handed to the recovery
engine, the drift validator and the publisher.  It owns the index file
paths, the file store and the index lock, so there is no module-level
index state anywhere else.

``load_content_index`` is the only read path for the index and never
raises: a missing, unreadable or malformed primary is routed to recovery,
which heals the file on disk before returning.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tackle_content.content.atomic import WriteError, atomic_write
from tackle_content.content.entries import validate_index_entry
from tackle_content.content.files import (
    FileStore,
    LoadError,
    LoadErrorKind,
    UnsafeSlugError,
    read_json,
)
from tackle_content.content.lock import IndexLock
from tackle_content.content.models import (
    INDEX_VERSION,
    ContentDocument,
    ContentIndex,
    IndexEntry,
    PageType,
    utc_now_iso,
)
from tackle_content.content.schema import validate_and_quarantine

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "content"


def parse_index(raw: Any, path: Path) -> ContentIndex | LoadError:
    """Structurally validate raw index JSON.

    Missing or non-array type arrays are coerced to ``[]`` and entries
    without a usable shape are dropped; only a non-object root is fatal.
    """
    if not isinstance(raw, dict):
        return LoadError(LoadErrorKind.INVALID_STRUCTURE, path, "index is not an object")

    data: dict[str, Any] = {
        "version": raw.get("version") or INDEX_VERSION,
        "lastUpdated": raw.get("lastUpdated") or utc_now_iso(),
    }
    for page_type in PageType:
        key = page_type.index_key
        values = raw.get(key)
        if not isinstance(values, list):
            if values is not None:
                logger.warning("Index array %s is not a list, resetting to []", key)
            data[key] = []
            continue
        entries: list[IndexEntry] = []
        for pos, item in enumerate(values):
            try:
                entries.append(IndexEntry.model_validate(item))
            except ValidationError:
                logger.warning("Dropping malformed index entry %s[%d] in %s", key, pos, path)
        data[key] = entries

    try:
        return ContentIndex.model_validate(data)
    except ValidationError as exc:
        return LoadError(LoadErrorKind.INVALID_STRUCTURE, path, str(exc))


def read_index(path: Path) -> ContentIndex | LoadError:
    raw = read_json(path)
    if isinstance(raw, LoadError):
        return raw
    return parse_index(raw, path)


class IndexStore:
    """Owns the index file, its backup and the lock that guards them.

    Args:
        content_root: Root of the content tree.
        collection: Index name; the file is ``_system/<collection>Index.json``.
        lock: Lock to serialise index writes (defaults to a lock file
            under ``_system``).
    """

    def __init__(
        self,
        content_root: Path,
        collection: str = DEFAULT_COLLECTION,
        *,
        lock: IndexLock | None = None,
        files: FileStore | None = None,
    ) -> None:
        self.files = files or FileStore(content_root)
        self.collection = collection
        self.lock = lock or IndexLock(self.files.lock_path)

    @property
    def index_path(self) -> Path:
        return self.files.index_path(self.collection)

    @property
    def backup_path(self) -> Path:
        return self.files.backup_path(self.collection)

    # ── Load path ────────────────────────────────────────────────

    def read_primary(self) -> ContentIndex | LoadError:
        return read_index(self.index_path)

    def load_content_index(self) -> ContentIndex:
        """Load the index, recovering from backup or files if it is unusable."""
        result = self.read_primary()
        if isinstance(result, ContentIndex):
            logger.debug(
                "Loaded primary index %s (%d blog posts)",
                self.index_path,
                len(result.blog_posts),
            )
            return result

        logger.error("Primary index load failed (%s): %s", self.index_path, result)
        from tackle_content.content.recovery import RecoveryEngine, RecoveryError

        try:
            recovered = RecoveryEngine(self).recover_index()
        except RecoveryError:
            logger.exception(
                "CRITICAL: index recovery failed; returning an empty index until it succeeds"
            )
            return ContentIndex()

        logger.info("Recovery successful: %d entries recovered", recovered.total_entries)
        return recovered

    def load_backup_index(self) -> ContentIndex | LoadError:
        result = read_index(self.backup_path)
        if isinstance(result, LoadError):
            logger.warning("Backup index not available: %s", result)
        return result

    # ── Write path ───────────────────────────────────────────────

    def write_index_unlocked(self, index: ContentIndex) -> None:
        """Validate and atomically write the index.  Caller holds the lock."""
        for page_type in PageType:
            for entry in index.entries(page_type):
                validate_index_entry(entry)
        atomic_write(self.index_path, index.to_json())

    def save_index(self, index: ContentIndex) -> None:
        """Persist ``index`` to the primary path under the index lock."""
        index.last_updated = utc_now_iso()
        with self.lock.hold():
            self.write_index_unlocked(index)
        logger.info("Index saved to %s", self.index_path)

    def backup_content_index(self) -> bool:
        """Copy the primary index to the backup path.

        Skipped when the primary is missing or is not valid JSON, so a
        corrupt index never overwrites a good backup.  Best effort: failures
        are logged and reported as ``False``.
        """
        if not self.index_path.is_file():
            return False
        try:
            text = self.index_path.read_text(encoding="utf-8")
            json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Skipping backup: current index %s is corrupted", self.index_path)
            return False
        except OSError as exc:
            logger.warning("Failed to read index for backup: %s", exc)
            return False

        try:
            atomic_write(self.backup_path, text)
        except (OSError, WriteError) as exc:
            logger.warning("Failed to create index backup: %s", exc)
            return False
        logger.debug("Index backup created: %s", self.backup_path)
        return True

    def update_index(self, page_type: PageType, entry: IndexEntry) -> bool:
        """Append ``entry`` unless its slug is already indexed.

        Runs under the lock: backup, reload, final duplicate check, append,
        save.  Returns ``True`` if the entry was appended.
        """
        validate_index_entry(entry)
        with self.lock.hold():
            self.backup_content_index()
            index = self.load_content_index()
            if index.has_slug(page_type, entry.slug):
                logger.warning(
                    "Slug %s already in %s index, not appending a duplicate",
                    entry.slug,
                    page_type,
                )
                return False
            index.entries(page_type).append(entry)
            index.last_updated = utc_now_iso()
            self.write_index_unlocked(index)
        logger.info("Added %s:%s to content index", page_type, entry.slug)
        return True

    # ── Read helpers ─────────────────────────────────────────────

    def get_sorted_entries(
        self, page_type: PageType, *, include_hidden: bool = False
    ) -> list[IndexEntry]:
        """Listing order: newest ``publishedAt`` first."""
        entries = self.load_content_index().entries(page_type)
        if not include_hidden:
            entries = [
                e for e in entries if not (e.flags and (e.flags.draft or e.flags.noindex))
            ]
        return sorted(entries, key=lambda e: e.published_at, reverse=True)

    def get_slugs(self, page_type: PageType) -> list[str]:
        return [e.slug for e in self.get_sorted_entries(page_type)]

    def get_document(self, page_type: PageType, slug: str) -> ContentDocument | None:
        """Load one document for rendering; ``None`` means render a 404.

        A missing file and an invalid file are logged differently.
        """
        try:
            path = self.files.document_path(page_type, slug)
        except UnsafeSlugError:
            logger.warning("Refusing unsafe document slug %r", slug)
            return None
        if not path.is_file():
            logger.info("Document not found: %s:%s (%s)", page_type, slug, path)
            return None
        raw = self.files.load_document(path, slug)
        if isinstance(raw, LoadError):
            return None
        return validate_and_quarantine(raw, slug, path, page_type)
