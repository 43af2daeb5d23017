"""Content hashing and duplicate-content detection."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from tackle_content.content.models import TopicState


def normalize_text_for_hash(text: str) -> str:
    """Lowercase, collapse whitespace and strip punctuation."""
    text = re.sub(r"\s+", " ", text.lower())
    text = re.sub(r"[^\w\s]", "", text)
    return text.strip()


def content_hash(text: str) -> str:
    """SHA-256 of the normalized text."""
    return hashlib.sha256(normalize_text_for_hash(text).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class DuplicateMatch:
    topic_key: str
    slug: str


def find_exact_duplicate(
    text: str, topics: list[TopicState], *, exclude_topic_key: str | None = None
) -> DuplicateMatch | None:
    """Return a published topic whose content hash matches ``text``, if any."""
    digest = content_hash(text)
    for record in topics:
        if record.topic_key == exclude_topic_key:
            continue
        if record.is_published and record.content_hash == digest:
            return DuplicateMatch(topic_key=record.topic_key, slug=record.slug)
    return None
