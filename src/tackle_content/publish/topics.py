"""Topic state: which logical topics have been published, and as what slug.

Stored as a JSON array in ``_system/topicIndex.json``.  This file is the
source of truth for "has this topic already been published", so a corrupt
file is an error rather than a reason to start fresh.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from tackle_content.content.atomic import atomic_write
from tackle_content.content.files import LoadError, LoadErrorKind, read_json
from tackle_content.content.models import PageType, TopicState, TopicStatus, utc_now_iso

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[TopicState])


class TopicStateError(Exception):
    """The topic state file exists but cannot be read."""


class TopicStateStore:
    """JSON-backed store of ``TopicState`` records keyed by topic key."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> list[TopicState]:
        raw = read_json(self.path)
        if isinstance(raw, LoadError):
            if raw.kind == LoadErrorKind.NOT_FOUND:
                return []
            raise TopicStateError(f"Cannot read topic state {self.path}: {raw}")
        try:
            return _RECORDS.validate_python(raw)
        except ValidationError as exc:
            raise TopicStateError(f"Invalid topic state {self.path}: {exc}") from exc

    def save(self, records: list[TopicState]) -> None:
        data = [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in records]
        atomic_write(self.path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
        logger.debug("Saved topic state with %d records", len(records))

    def get(self, topic_key: str) -> TopicState | None:
        for record in self.load():
            if record.topic_key == topic_key:
                return record
        return None

    def find_by_slug(self, page_type: PageType, slug: str) -> list[TopicState]:
        return [r for r in self.load() if r.page_type == page_type and r.slug == slug]

    def published(self) -> list[TopicState]:
        return [r for r in self.load() if r.is_published]

    def upsert(self, record: TopicState) -> TopicState:
        """Insert or replace a record by topic key, bumping ``lastUpdatedAt``."""
        record = record.model_copy(update={"last_updated_at": utc_now_iso()})
        records = [r for r in self.load() if r.topic_key != record.topic_key]
        records.append(record)
        self.save(records)
        return record

    def restore(self, topic_key: str, previous: TopicState | None) -> None:
        """Put back ``previous`` verbatim, or drop the record if there was none."""
        records = [r for r in self.load() if r.topic_key != topic_key]
        if previous is not None:
            records.append(previous)
        self.save(records)

    def mark_published(
        self,
        topic_key: str,
        page_type: PageType,
        slug: str,
        content_hash: str,
        sources_used: list[str],
    ) -> TopicState:
        existing = self.get(topic_key)
        base = existing or TopicState(topic_key=topic_key, page_type=page_type)
        record = base.model_copy(
            update={
                "slug": slug,
                "status": TopicStatus.PUBLISHED,
                "content_hash": content_hash,
                "sources_used": list(sources_used),
                "last_published_at": utc_now_iso(),
                "last_error": None,
            }
        )
        saved = self.upsert(record)
        logger.info("Marked topic as published: %s -> %s", topic_key, slug)
        return saved

    def mark_failed(self, topic_key: str, page_type: PageType, error: str) -> TopicState:
        existing = self.get(topic_key)
        base = existing or TopicState(topic_key=topic_key, page_type=page_type)
        record = base.model_copy(
            update={
                "status": TopicStatus.FAILED,
                "last_error": error,
                "attempts": base.attempts + 1,
            }
        )
        saved = self.upsert(record)
        logger.warning("Marked topic as failed: %s - %s", topic_key, error)
        return saved
