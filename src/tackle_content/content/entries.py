"""Index entries: the listing-only projection of a document.

The index must stay small enough to enumerate without reading every
document, so entries never carry the heavy fields and keep only a capped
number of keywords and tags.
"""

from __future__ import annotations

from typing import Any

from tackle_content.content.models import (
    FORBIDDEN_INDEX_FIELDS,
    MAX_KEYWORDS_IN_INDEX,
    MAX_TAGS_IN_INDEX,
    SLUG_PATTERN,
    ContentDocument,
    IndexEntry,
    IndexFlags,
)

_REQUIRED_LISTING_FIELDS = ("slug", "title", "description", "category", "publishedAt")

_ALLOWED_FIELDS = frozenset(
    {
        "slug",
        "title",
        "description",
        "category",
        "publishedAt",
        "updatedAt",
        "wordCount",
        "author",
        "flags",
        "heroImage",
        "featuredImage",
        "keywords",
        "tags",
    }
)


class IndexEntryError(ValueError):
    """An index entry carries heavy data or lacks listing fields."""

    def __init__(self, slug: str, problems: list[str]) -> None:
        detail = "\n".join(f"  - {p}" for p in problems)
        super().__init__(f"Invalid index entry for slug={slug!r}:\n{detail}")
        self.slug = slug
        self.problems = problems


def build_index_entry(document: ContentDocument) -> IndexEntry:
    """Project a document onto its index entry."""
    extras = document.extra_fields
    tags = document.tags
    return IndexEntry(
        slug=document.slug,
        title=document.title,
        description=document.description,
        category=document.category,
        published_at=document.dates.published_at,
        updated_at=document.dates.updated_at,
        word_count=document.word_count,
        author=document.author.name,
        flags=IndexFlags(draft=document.flags.draft, noindex=document.flags.noindex),
        hero_image=extras.get("heroImage") if isinstance(extras.get("heroImage"), str) else None,
        featured_image=(
            extras.get("featuredImage") if isinstance(extras.get("featuredImage"), str) else None
        ),
        keywords=[document.primary_keyword, *document.secondary_keywords][:MAX_KEYWORDS_IN_INDEX],
        tags=tags[:MAX_TAGS_IN_INDEX] if tags else None,
    )


def validate_index_entry(entry: IndexEntry | dict[str, Any]) -> None:
    """Raise ``IndexEntryError`` unless the entry is listing-only and complete."""
    raw = entry.to_dict() if isinstance(entry, IndexEntry) else entry
    problems: list[str] = []

    for name in FORBIDDEN_INDEX_FIELDS:
        if name in raw:
            problems.append(
                f'Forbidden field "{name}" found in index entry. '
                "Index should only contain listing data."
            )

    keywords = raw.get("keywords") or []
    if len(keywords) > MAX_KEYWORDS_IN_INDEX:
        problems.append(
            f"Keywords array too long ({len(keywords)} items, max {MAX_KEYWORDS_IN_INDEX})"
        )
    tags = raw.get("tags") or []
    if len(tags) > MAX_TAGS_IN_INDEX:
        problems.append(f"Tags array too long ({len(tags)} items, max {MAX_TAGS_IN_INDEX})")

    for name in _REQUIRED_LISTING_FIELDS:
        if not raw.get(name):
            problems.append(f"Missing required field: {name}")
    slug = raw.get("slug")
    if isinstance(slug, str) and slug and not SLUG_PATTERN.fullmatch(slug):
        problems.append(f"Slug is not URL-safe: {slug!r}")

    if problems:
        raise IndexEntryError(str(raw.get("slug", "")), problems)


def sanitize_index_entry(raw: dict[str, Any]) -> IndexEntry:
    """Keep only allowed listing fields and truncate long arrays."""
    data = {k: v for k, v in raw.items() if k in _ALLOWED_FIELDS}
    if isinstance(data.get("keywords"), list):
        data["keywords"] = data["keywords"][:MAX_KEYWORDS_IN_INDEX]
    if isinstance(data.get("tags"), list):
        data["tags"] = data["tags"][:MAX_TAGS_IN_INDEX]
    return IndexEntry.model_validate(data)
