"""Shared fixtures: raw document builders and a store rooted in tmp_path."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from tackle_content.content.files import FileStore
from tackle_content.content.index_store import IndexStore
from tackle_content.content.lock import IndexLock
from tackle_content.content.models import PageType

RawDoc = dict[str, Any]


def _raw_document(
    slug: str = "first-cast",
    page_type: str = "blog",
    *,
    published_at: str = "2026-01-05T10:00:00+00:00",
    draft: bool = False,
    noindex: bool = False,
    **overrides: Any,
) -> RawDoc:
    raw: RawDoc = {
        "id": f"{page_type}-{slug}",
        "slug": slug,
        "pageType": page_type,
        "title": f"Guide to {slug.replace('-', ' ')}",
        "description": f"Everything you need to know about {slug.replace('-', ' ')}.",
        "body": f"## Intro\n\nA short body about {slug}.",
        "primaryKeyword": slug.replace("-", " "),
        "secondaryKeywords": ["fishing", "tips"],
        "dates": {"publishedAt": published_at, "updatedAt": published_at},
        "flags": {"draft": draft, "noindex": noindex},
        "author": {"name": "Tackle Team", "url": "/about"},
        "faqs": [],
        "sources": [],
        "related": {},
        "headings": [],
    }
    if page_type == "blog":
        raw["categorySlug"] = "tips"
    raw.update(overrides)
    return raw


@pytest.fixture
def make_raw() -> Callable[..., RawDoc]:
    """Factory for raw (camelCase) document dicts with sensible defaults."""
    return _raw_document


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    root = tmp_path / "content"
    root.mkdir()
    return root


@pytest.fixture
def write_raw(content_root: Path) -> Callable[..., Path]:
    """Write a raw document to its conventional path and return the path."""

    def _write(raw: RawDoc, page_type: PageType | None = None) -> Path:
        pt = page_type or PageType(raw["pageType"])
        path = FileStore(content_root).document_path(pt, raw["slug"])
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(raw, indent=2), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_store(content_root: Path) -> Callable[..., IndexStore]:
    def _make(collection: str = "content") -> IndexStore:
        files = FileStore(content_root)
        lock = IndexLock(files.lock_path, timeout=2.0, poll_interval=0.01)
        return IndexStore(content_root, collection, lock=lock, files=files)

    return _make


@pytest.fixture
def store(make_store: Callable[..., IndexStore]) -> IndexStore:
    return make_store()
