"""Idempotent publisher: document file → topic state → index entry.

Every attempt re-derives where the document stands from three checks
(file on disk, slug in the index, topic key recorded as published) and
only writes what is missing.  A retry after a crash therefore finishes
the job instead of duplicating it, and a fully published document is a
no-op.  On failure, only what this attempt wrote is rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from tackle_content.content.atomic import WriteError, atomic_write
from tackle_content.content.entries import IndexEntryError, build_index_entry
from tackle_content.content.files import LoadError, read_json
from tackle_content.content.index_store import IndexStore
from tackle_content.content.lock import LockOwnershipError, LockTimeoutError
from tackle_content.content.models import ContentDocument, PageType, TopicState
from tackle_content.content.schema import ValidationFailure, decode_document
from tackle_content.publish.dedupe import content_hash, find_exact_duplicate
from tackle_content.publish.quality import QualityGate
from tackle_content.publish.topics import TopicStateStore

logger = logging.getLogger(__name__)

_INDEX_ERRORS = (OSError, WriteError, IndexEntryError, LockTimeoutError, LockOwnershipError)


class PublishErrorCode(StrEnum):
    SLUG_TOPICKEY_CONFLICT = "SLUG_TOPICKEY_CONFLICT"
    EXISTING_FILE_INVALID = "EXISTING_FILE_INVALID"
    INVALID_DOCUMENT = "INVALID_DOCUMENT"
    QUALITY_GATE_FAILED = "QUALITY_GATE_FAILED"
    DUPLICATE_CONTENT = "DUPLICATE_CONTENT"
    WRITE_FAILED = "WRITE_FAILED"
    INDEX_UPDATE_FAILED = "INDEX_UPDATE_FAILED"


class PublishError(Exception):
    """A publish attempt failed; ``code`` is machine-readable."""

    def __init__(self, code: PublishErrorCode, message: str) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message


class PublishState(StrEnum):
    NOT_PUBLISHED = "not_published"
    PARTIALLY_PUBLISHED = "partially_published"
    FULLY_PUBLISHED = "fully_published"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a successful publish.

    ``state`` is what the attempt found before writing anything; the
    ``wrote_*`` flags say which resources this attempt created.
    """

    route_path: str
    slug: str
    state: PublishState
    wrote_file: bool = False
    wrote_topic: bool = False
    wrote_index: bool = False

    @property
    def was_noop(self) -> bool:
        return not (self.wrote_file or self.wrote_topic or self.wrote_index)


def generate_topic_key(document: ContentDocument) -> str:
    if document.page_type == PageType.SPECIES:
        return f"species::{document.slug}::global"
    return f"{document.page_type.topic_prefix}::{document.slug}"


def route_path(document: ContentDocument) -> str:
    return f"{document.page_type.route_prefix}/{document.slug}"


def sources_used(document: ContentDocument) -> list[str]:
    urls: list[str] = []
    for source in document.sources or []:
        if isinstance(source, dict) and isinstance(source.get("url"), str):
            urls.append(source["url"])
    return urls


def decode_for_publish(raw: Any, source: str = "<document>") -> ContentDocument:
    """Decode raw JSON into a publishable document or raise INVALID_DOCUMENT."""
    decoded = decode_document(raw)
    if isinstance(decoded, ValidationFailure):
        raise PublishError(
            PublishErrorCode.INVALID_DOCUMENT,
            f"{source} failed validation: " + "; ".join(decoded.errors),
        )
    return decoded.document


def load_for_publish(path: Path) -> ContentDocument:
    """Read and decode a candidate document from ``path``."""
    raw = read_json(path)
    if isinstance(raw, LoadError):
        raise PublishError(PublishErrorCode.INVALID_DOCUMENT, str(raw))
    return decode_for_publish(raw, str(path))


@dataclass(frozen=True)
class _Detection:
    file_exists: bool
    slug_in_index: bool
    topic_key_published: bool
    previous: TopicState | None

    @property
    def state(self) -> PublishState:
        checks = (self.file_exists, self.slug_in_index, self.topic_key_published)
        if all(checks):
            return PublishState.FULLY_PUBLISHED
        if any(checks):
            return PublishState.PARTIALLY_PUBLISHED
        return PublishState.NOT_PUBLISHED


class Publisher:
    """Publishes documents into the store behind ``store``.

    Args:
        store: The process-wide index store.
        topics: Topic state store (defaults to ``_system/topicIndex.json``).
        quality_gate: Optional gate run before a new document file is written.
    """

    def __init__(
        self,
        store: IndexStore,
        topics: TopicStateStore | None = None,
        quality_gate: QualityGate | None = None,
    ) -> None:
        self.store = store
        self.topics = topics or TopicStateStore(store.files.topic_index_path)
        self.quality_gate = quality_gate

    def detect(self, document: ContentDocument, topic_key: str) -> _Detection:
        path = self.store.files.document_path(document.page_type, document.slug)
        index = self.store.load_content_index()
        previous = self.topics.get(topic_key)
        # Unlisted documents never get an entry, so the index side is satisfied.
        in_index = index.has_slug(document.page_type, document.slug) or not document.is_listed
        return _Detection(
            file_exists=path.is_file(),
            slug_in_index=in_index,
            topic_key_published=(
                previous is not None and previous.is_published and previous.slug == document.slug
            ),
            previous=previous,
        )

    def publish(self, document: ContentDocument, topic_key: str | None = None) -> PublishResult:
        topic_key = topic_key or generate_topic_key(document)
        page_type, slug = document.page_type, document.slug
        path = self.store.files.document_path(page_type, slug)
        logger.info("Publishing %s:%s (topic %s)", page_type, slug, topic_key)

        found = self.detect(document, topic_key)
        if found.state == PublishState.FULLY_PUBLISHED:
            logger.info("%s:%s is already fully published, nothing to do", page_type, slug)
            return PublishResult(route_path=route_path(document), slug=slug, state=found.state)

        if found.file_exists:
            self._check_slug_owner(page_type, slug, topic_key)
            self._verify_existing_file(path, slug)
        else:
            self._check_new_content(document, topic_key)

        wrote_file = wrote_topic = wrote_index = False
        try:
            if not found.file_exists:
                try:
                    atomic_write(path, document.to_json())
                except (OSError, WriteError) as exc:
                    raise PublishError(
                        PublishErrorCode.WRITE_FAILED, f"Could not write {path}: {exc}"
                    ) from exc
                wrote_file = True
                logger.info("Written to: %s", path)

            if not found.topic_key_published:
                try:
                    self.topics.mark_published(
                        topic_key,
                        page_type,
                        slug,
                        content_hash(document.body),
                        sources_used(document),
                    )
                except (OSError, WriteError) as exc:
                    raise PublishError(
                        PublishErrorCode.WRITE_FAILED,
                        f"Could not record topic state for {topic_key}: {exc}",
                    ) from exc
                wrote_topic = True

            if not found.slug_in_index:
                try:
                    wrote_index = self.store.update_index(page_type, build_index_entry(document))
                except _INDEX_ERRORS as exc:
                    raise PublishError(
                        PublishErrorCode.INDEX_UPDATE_FAILED,
                        f"Could not add {page_type}:{slug} to the index: {exc}",
                    ) from exc
        except PublishError:
            self._rollback(path, topic_key, found.previous, wrote_file, wrote_topic)
            raise

        logger.info("Published %s:%s at %s", page_type, slug, route_path(document))
        return PublishResult(
            route_path=route_path(document),
            slug=slug,
            state=found.state,
            wrote_file=wrote_file,
            wrote_topic=wrote_topic,
            wrote_index=wrote_index,
        )

    def _check_slug_owner(self, page_type: PageType, slug: str, topic_key: str) -> None:
        owners = [r.topic_key for r in self.topics.find_by_slug(page_type, slug)]
        others = [key for key in owners if key != topic_key]
        if others:
            raise PublishError(
                PublishErrorCode.SLUG_TOPICKEY_CONFLICT,
                f"Slug {page_type}:{slug} already belongs to topic {others[0]}, "
                f"refusing to publish it as {topic_key}",
            )

    def _verify_existing_file(self, path: Path, slug: str) -> None:
        raw = self.store.files.load_document(path, slug)
        if isinstance(raw, LoadError):
            raise PublishError(
                PublishErrorCode.EXISTING_FILE_INVALID, f"Existing file unreadable: {raw}"
            )
        if raw.get("slug") != slug:
            raise PublishError(
                PublishErrorCode.EXISTING_FILE_INVALID,
                f"Existing file {path} has slug {raw.get('slug')!r}, expected {slug!r}",
            )

    def _check_new_content(self, document: ContentDocument, topic_key: str) -> None:
        if self.quality_gate is not None:
            report = self.quality_gate.check(document)
            if not report.passed:
                raise PublishError(
                    PublishErrorCode.QUALITY_GATE_FAILED, "; ".join(report.errors)
                )

        match = find_exact_duplicate(
            document.body, self.topics.published(), exclude_topic_key=topic_key
        )
        if match is not None:
            raise PublishError(
                PublishErrorCode.DUPLICATE_CONTENT,
                f"Body duplicates published topic {match.topic_key} ({match.slug})",
            )

    def _rollback(
        self,
        path: Path,
        topic_key: str,
        previous: TopicState | None,
        wrote_file: bool,
        wrote_topic: bool,
    ) -> None:
        if wrote_topic:
            try:
                self.topics.restore(topic_key, previous)
                logger.warning("Rolled back topic state for %s", topic_key)
            except (OSError, WriteError):
                logger.exception("Failed to roll back topic state for %s", topic_key)
        if wrote_file:
            try:
                self.store.files.remove(path)
                logger.warning("Rolled back document file %s", path)
            except OSError:
                logger.exception("Failed to remove %s during rollback", path)
