"""Index/files drift validation.

Compares the slugs in one index array against the documents on disk and
sorts every inconsistency into a disjoint class:

* index-only      - entry whose file is missing or unreadable
* file-only       - file with no entry (missing, draft/noindex, wrong type, unloadable)
* metadata        - per-field differences for slugs present in both
* duplicates      - slugs listed more than once in the index
* invalid schema  - documents failing schema validation

The first four are fixed by a rebuild; invalid documents need a human.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from tackle_content.content.files import LoadError, LoadErrorKind, UnsafeSlugError
from tackle_content.content.index_store import IndexStore
from tackle_content.content.models import ContentDocument, IndexEntry, PageType
from tackle_content.content.schema import Decoded, decode_document

logger = logging.getLogger(__name__)


@dataclass
class IndexOnlyItem:
    slug: str
    reason: str


@dataclass
class FileOnlyItem:
    slug: str
    file_path: Path
    reason: str


@dataclass
class MetadataMismatch:
    slug: str
    field: str
    index_value: Any
    file_value: Any


@dataclass
class DuplicateItem:
    slug: str
    count: int
    locations: list[str]


@dataclass
class InvalidSchemaItem:
    slug: str
    file_path: Path
    errors: list[str]
    warnings: list[str] = field(default_factory=list)


@dataclass
class DriftSummary:
    total_index_entries: int = 0
    total_files: int = 0
    index_only_count: int = 0
    file_only_count: int = 0
    metadata_mismatch_count: int = 0
    duplicate_count: int = 0
    invalid_schema_count: int = 0
    valid_count: int = 0


@dataclass
class DriftReport:
    page_type: PageType
    index_only: list[IndexOnlyItem] = field(default_factory=list)
    file_only: list[FileOnlyItem] = field(default_factory=list)
    metadata_mismatches: list[MetadataMismatch] = field(default_factory=list)
    duplicates: list[DuplicateItem] = field(default_factory=list)
    invalid_schema: list[InvalidSchemaItem] = field(default_factory=list)
    summary: DriftSummary = field(default_factory=DriftSummary)

    @property
    def auto_fixable(self) -> bool:
        """Whether a rebuild from files would resolve something."""
        return bool(
            self.index_only or self.file_only or self.metadata_mismatches or self.duplicates
        )

    @property
    def has_issues(self) -> bool:
        return self.auto_fixable or bool(self.invalid_schema)


def _find_duplicates(entries: list[IndexEntry]) -> list[DuplicateItem]:
    counts = Counter(e.slug for e in entries)
    locations: dict[str, list[str]] = {}
    for pos, entry in enumerate(entries):
        locations.setdefault(entry.slug, []).append(f"index[{pos}]")
    return [
        DuplicateItem(slug=slug, count=counts[slug], locations=locs)
        for slug, locs in locations.items()
        if counts[slug] > 1
    ]


def _compare_metadata(entry: IndexEntry, document: ContentDocument) -> list[MetadataMismatch]:
    pairs = [
        ("slug", entry.slug, document.slug),
        ("title", entry.title, document.title),
        ("description", entry.description, document.description),
        ("category", entry.category, document.category),
        ("publishedAt", entry.published_at, document.dates.published_at),
    ]
    return [
        MetadataMismatch(slug=entry.slug, field=name, index_value=idx, file_value=doc)
        for name, idx, doc in pairs
        if idx != doc
    ]


def _load_failure_reason(error: LoadError) -> str:
    if error.kind == LoadErrorKind.NOT_FOUND:
        return "File not found"
    if error.kind == LoadErrorKind.PERMISSION_DENIED:
        return f"Cannot access file: {error.detail}"
    return "File exists but failed to load (invalid JSON or file error)"


class DriftValidator:
    """Compares the index held by ``store`` with the documents on disk."""

    def __init__(self, store: IndexStore) -> None:
        self.store = store

    def validate_index_drift(self, page_type: PageType = PageType.BLOG) -> DriftReport:
        files = self.store.files
        report = DriftReport(page_type=page_type)

        entries = self.store.load_content_index().entries(page_type)
        report.summary.total_index_entries = len(entries)
        report.duplicates = _find_duplicates(entries)

        file_slugs = files.list_document_slugs(page_type)
        report.summary.total_files = len(file_slugs)

        first_entries: dict[str, IndexEntry] = {}
        for entry in entries:
            first_entries.setdefault(entry.slug, entry)

        for slug, entry in first_entries.items():
            try:
                path = files.document_path(page_type, slug)
            except UnsafeSlugError:
                report.index_only.append(IndexOnlyItem(slug=slug, reason="Unsafe slug"))
                continue
            if not path.is_file():
                report.index_only.append(IndexOnlyItem(slug=slug, reason="File not found"))
                continue

            raw = files.load_document(path, slug)
            if isinstance(raw, LoadError):
                report.index_only.append(
                    IndexOnlyItem(slug=slug, reason=_load_failure_reason(raw))
                )
                continue

            decoded = decode_document(raw, page_type)
            if not isinstance(decoded, Decoded):
                report.invalid_schema.append(
                    InvalidSchemaItem(
                        slug=slug, file_path=path, errors=decoded.errors, warnings=decoded.warnings
                    )
                )
                continue

            mismatches = _compare_metadata(entry, decoded.document)
            if mismatches:
                report.metadata_mismatches.extend(mismatches)
            else:
                report.summary.valid_count += 1

        for slug in file_slugs:
            if slug in first_entries:
                continue
            path = files.document_path(page_type, slug)
            raw = files.load_document(path, slug)
            if isinstance(raw, LoadError):
                report.file_only.append(
                    FileOnlyItem(
                        slug=slug,
                        file_path=path,
                        reason="File exists but failed to load (invalid JSON or file error)",
                    )
                )
                continue

            decoded = decode_document(raw)
            if not isinstance(decoded, Decoded):
                report.invalid_schema.append(
                    InvalidSchemaItem(
                        slug=slug, file_path=path, errors=decoded.errors, warnings=decoded.warnings
                    )
                )
                continue

            document = decoded.document
            if document.page_type != page_type:
                reason = f"File exists but wrong pageType: {document.page_type}"
            elif not document.is_listed:
                reason = "File exists but is draft/noindex (excluded from index)"
            else:
                reason = "File exists but missing from index"
            report.file_only.append(FileOnlyItem(slug=slug, file_path=path, reason=reason))

        summary = report.summary
        summary.index_only_count = len(report.index_only)
        summary.file_only_count = len(report.file_only)
        summary.metadata_mismatch_count = len(report.metadata_mismatches)
        summary.duplicate_count = len(report.duplicates)
        summary.invalid_schema_count = len(report.invalid_schema)

        logger.info(
            "Drift check for %s: %d index-only, %d file-only, %d mismatches, "
            "%d duplicates, %d invalid",
            page_type,
            summary.index_only_count,
            summary.file_only_count,
            summary.metadata_mismatch_count,
            summary.duplicate_count,
            summary.invalid_schema_count,
        )
        return report


def render_drift_report(report: DriftReport, console: Console) -> None:
    """Print a deterministic, human-readable drift report."""
    s = report.summary
    rule = "─" * 60
    console.print(f"\n[bold]Index ↔ Files Drift Report[/bold] ({report.page_type})")
    console.print("═" * 60)
    console.print("\nSummary:")
    console.print(f"   Total index entries: {s.total_index_entries}")
    console.print(f"   Total files: {s.total_files}")
    console.print(f"   Valid matches: {s.valid_count}")
    console.print(f"   Index-only (missing files): {s.index_only_count}")
    console.print(f"   File-only (missing from index): {s.file_only_count}")
    console.print(f"   Metadata mismatches: {s.metadata_mismatch_count}")
    console.print(f"   Duplicates in index: {s.duplicate_count}")
    console.print(f"   Invalid schema docs: {s.invalid_schema_count}")

    if report.index_only:
        console.print("\n[red]Index Entries with Missing Files:[/red]")
        console.print(rule)
        for item in report.index_only:
            console.print(f"   • {item.slug}", markup=False)
            console.print(f"     Reason: {item.reason}", markup=False)

    if report.file_only:
        console.print("\n[yellow]Files Missing from Index:[/yellow]")
        console.print(rule)
        for item in report.file_only:
            console.print(f"   • {item.slug}", markup=False)
            console.print(f"     File: {item.file_path}", markup=False)
            console.print(f"     Reason: {item.reason}", markup=False)

    if report.metadata_mismatches:
        console.print("\n[yellow]Metadata Mismatches:[/yellow]")
        console.print(rule)
        by_slug: dict[str, list[MetadataMismatch]] = {}
        for item in report.metadata_mismatches:
            by_slug.setdefault(item.slug, []).append(item)
        for slug, items in by_slug.items():
            console.print(f"   • {slug}:", markup=False)
            for item in items:
                console.print(f"     - {item.field}:", markup=False)
                console.print(f"       Index: {json.dumps(item.index_value)}", markup=False)
                console.print(f"       File:  {json.dumps(item.file_value)}", markup=False)

    if report.duplicates:
        console.print("\n[red]Duplicate Entries in Index:[/red]")
        console.print(rule)
        for item in report.duplicates:
            console.print(f"   • {item.slug} (appears {item.count} times)", markup=False)
            console.print(f"     Locations: {', '.join(item.locations)}", markup=False)

    if report.invalid_schema:
        console.print("\n[red]Invalid Schema Documents:[/red]")
        console.print(rule)
        for item in report.invalid_schema:
            console.print(f"   • {item.slug}", markup=False)
            console.print(f"     File: {item.file_path}", markup=False)
            console.print("     Schema Errors:")
            for error in item.errors:
                console.print(f"       - {error}", markup=False)

    console.print("\n" + "═" * 60)
    if report.has_issues:
        console.print("\n[bold yellow]Issues detected![/bold yellow]")
        console.print("   To fix:")
        if report.auto_fixable:
            console.print("     • Run `tackle-content validate-index --fix` to rebuild the index")
        if report.invalid_schema:
            console.print("     • Fix invalid schema documents by hand (see errors above)")
    else:
        console.print("\n[green]No drift detected - index and files are in sync![/green]")
    console.print("")
