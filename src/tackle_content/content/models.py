"""Content domain models - pure Pydantic v2 data types.

Every published page (blog post, species guide, how-to guide, location
page) is stored as one ``ContentDocument`` JSON file.  The ``ContentIndex``
is a derived listing cache built from those documents; it never holds the
heavy fields and can always be rebuilt from disk.  ``TopicState`` records
whether a logical topic has already been published, independent of the
index.

On-disk JSON is camelCase; Python attributes are snake_case.
"""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
)
from pydantic.alias_generators import to_camel

INDEX_VERSION = "1.0.0"
MAX_KEYWORDS_IN_INDEX = 10
MAX_TAGS_IN_INDEX = 5

# Heavy document fields that must never be mirrored into an index entry.
FORBIDDEN_INDEX_FIELDS = (
    "body",
    "faqs",
    "sources",
    "related",
    "headings",
    "vibeTest",
    "alternativeRecommendations",
)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(tz=UTC).isoformat()


class PageType(StrEnum):
    """Kind of content page."""

    BLOG = "blog"
    SPECIES = "species"
    HOW_TO = "how-to"
    LOCATION = "location"

    @property
    def directory(self) -> str:
        """Directory (under the content root) holding this type's documents."""
        return _DIRECTORIES[self]

    @property
    def index_key(self) -> str:
        """Name of this type's array inside the content index JSON."""
        return _INDEX_KEYS[self]

    @property
    def route_prefix(self) -> str:
        return f"/{self.directory}"

    @property
    def topic_prefix(self) -> str:
        return _TOPIC_PREFIXES[self]


_DIRECTORIES = {
    PageType.BLOG: "blog",
    PageType.SPECIES: "species",
    PageType.HOW_TO: "how-to",
    PageType.LOCATION: "locations",
}

_INDEX_KEYS = {
    PageType.BLOG: "blogPosts",
    PageType.SPECIES: "species",
    PageType.HOW_TO: "howTo",
    PageType.LOCATION: "locations",
}

_TOPIC_PREFIXES = {
    PageType.BLOG: "blog",
    PageType.SPECIES: "species",
    PageType.HOW_TO: "howto",
    PageType.LOCATION: "location",
}


# ── Field types ──────────────────────────────────────────────────


SLUG_PATTERN = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must be non-empty string")
    return value


def _url_safe_slug(value: str) -> str:
    if not SLUG_PATTERN.fullmatch(value):
        raise ValueError("must be a URL-safe slug (lowercase letters, digits, single hyphens)")
    return value


def _iso_timestamp(value: str) -> str:
    try:
        datetime.fromisoformat(value)
    except ValueError:
        raise ValueError("must be ISO 8601 string") from None
    return value


NonEmptyStr = Annotated[StrictStr, AfterValidator(_not_blank)]
IsoTimestamp = Annotated[StrictStr, AfterValidator(_not_blank), AfterValidator(_iso_timestamp)]
Slug = Annotated[StrictStr, AfterValidator(_not_blank), AfterValidator(_url_safe_slug)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Documents ────────────────────────────────────────────────────


class DocumentDates(_CamelModel):
    """Publication timestamps; ``published_at`` never changes after publish."""

    published_at: IsoTimestamp
    updated_at: IsoTimestamp


class DocumentFlags(_CamelModel):
    """Visibility flags. Draft or noindex documents are left out of listings."""

    draft: StrictBool
    noindex: StrictBool


class Author(_CamelModel):
    name: NonEmptyStr
    url: StrictStr | None = None


class ContentDocument(_CamelModel):
    """A single generated page, stored as ``<root>/<dir>/<slug>.json``.

    Unknown fields (hero images, tags, embedded tools, ...) are kept as
    extras so a document survives a load/save cycle unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: NonEmptyStr
    slug: Slug
    page_type: PageType
    title: NonEmptyStr
    description: NonEmptyStr
    body: NonEmptyStr
    primary_keyword: NonEmptyStr
    secondary_keywords: list[StrictStr]
    dates: DocumentDates
    flags: DocumentFlags
    author: Author

    # Heavy optional fields, never mirrored into the index.
    faqs: list[Any] | None = None
    sources: list[Any] | None = None
    related: dict[str, Any] | None = None
    headings: list[Any] | None = None

    @property
    def is_listed(self) -> bool:
        """Whether this document belongs in the listing index."""
        return not (self.flags.draft or self.flags.noindex)

    @property
    def word_count(self) -> int:
        return len(self.body.split())

    @property
    def extra_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    @property
    def category(self) -> str:
        value = self.extra_fields.get("category")
        return value if isinstance(value, str) and value else "uncategorized"

    @property
    def tags(self) -> list[str]:
        value = self.extra_fields.get("tags")
        if not isinstance(value, list):
            return []
        return [t for t in value if isinstance(t, str)]

    def to_json(self) -> str:
        """Serialize exactly as the document is stored on disk."""
        data = self.model_dump(mode="json", by_alias=True, exclude_unset=True)
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class BlogDocument(ContentDocument):
    """Blog post; the only page type that requires a category."""

    category_slug: NonEmptyStr

    @property
    def category(self) -> str:
        return self.category_slug


class SpeciesDocument(ContentDocument):
    """Species guide."""


class HowToDocument(ContentDocument):
    """How-to guide."""


class LocationDocument(ContentDocument):
    """Location page."""


DOCUMENT_MODELS: dict[PageType, type[ContentDocument]] = {
    PageType.BLOG: BlogDocument,
    PageType.SPECIES: SpeciesDocument,
    PageType.HOW_TO: HowToDocument,
    PageType.LOCATION: LocationDocument,
}


# ── Index ────────────────────────────────────────────────────────


class IndexFlags(_CamelModel):
    draft: bool = False
    noindex: bool = False


class IndexEntry(_CamelModel):
    """Listing-only view of a published document.

    Loaded leniently (unknown keys are dropped) so that an old index can
    still be read; the strict checks live in
    ``tackle_content.content.entries.validate_index_entry`` and run at
    write time.
    """

    slug: str
    title: str = ""
    description: str = ""
    category: str = ""
    published_at: str = ""
    updated_at: str | None = None
    word_count: int | None = None
    author: str | None = None
    flags: IndexFlags | None = None
    hero_image: str | None = None
    featured_image: str | None = None
    keywords: list[str] = Field(default_factory=list)
    tags: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ContentIndex(_CamelModel):
    """The listing index: one array of entries per page type."""

    version: str = INDEX_VERSION
    last_updated: str = Field(default_factory=utc_now_iso)
    blog_posts: list[IndexEntry] = Field(default_factory=list)
    species: list[IndexEntry] = Field(default_factory=list)
    how_to: list[IndexEntry] = Field(default_factory=list)
    locations: list[IndexEntry] = Field(default_factory=list)

    def entries(self, page_type: PageType) -> list[IndexEntry]:
        """Return the (mutable) entry list for a page type."""
        return getattr(self, _ATTRS[page_type])

    def slugs(self, page_type: PageType) -> set[str]:
        return {e.slug for e in self.entries(page_type)}

    def has_slug(self, page_type: PageType, slug: str) -> bool:
        return any(e.slug == slug for e in self.entries(page_type))

    @property
    def total_entries(self) -> int:
        return sum(len(self.entries(t)) for t in PageType)

    def to_json(self) -> str:
        data = {
            "version": self.version,
            "lastUpdated": self.last_updated,
        }
        for page_type in PageType:
            data[page_type.index_key] = [e.to_dict() for e in self.entries(page_type)]
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


_ATTRS = {
    PageType.BLOG: "blog_posts",
    PageType.SPECIES: "species",
    PageType.HOW_TO: "how_to",
    PageType.LOCATION: "locations",
}


# ── Topic state ──────────────────────────────────────────────────


class TopicStatus(StrEnum):
    """Publish status of a logical topic."""

    DRAFT = "draft"
    PUBLISHED = "published"
    FAILED = "failed"
    ARCHIVED = "archived"


class TopicState(_CamelModel):
    """Publish record for one topic key; maps to at most one slug."""

    topic_key: str
    page_type: PageType
    slug: str = ""
    status: TopicStatus = TopicStatus.DRAFT
    content_hash: str = ""
    sources_used: list[str] = Field(default_factory=list)
    last_published_at: str | None = None
    last_updated_at: str = Field(default_factory=utc_now_iso)
    last_error: str | None = None
    attempts: int = 0

    @property
    def is_published(self) -> bool:
        return self.status == TopicStatus.PUBLISHED
