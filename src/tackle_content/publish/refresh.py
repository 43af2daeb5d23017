"""Refresh schedule for published content.

Each page type is revisited on a fixed cadence measured from its last
update.  Blog posts are refreshed by hand only.  Documents that were never
touched after publishing are also surfaced as pruning candidates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from tackle_content.content.models import ContentDocument, PageType

DAYS_PER_MONTH = 30
OUTDATED_AFTER_MONTHS = 6
NO_IMPRESSIONS_AFTER_MONTHS = 9


class RefreshPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class RefreshSchedule:
    page_type: PageType
    # 0 means manual refresh only.
    frequency_months: int
    priority: RefreshPriority


REFRESH_SCHEDULES: dict[PageType, RefreshSchedule] = {
    PageType.SPECIES: RefreshSchedule(PageType.SPECIES, 12, RefreshPriority.MEDIUM),
    PageType.HOW_TO: RefreshSchedule(PageType.HOW_TO, 12, RefreshPriority.MEDIUM),
    PageType.LOCATION: RefreshSchedule(PageType.LOCATION, 6, RefreshPriority.HIGH),
    PageType.BLOG: RefreshSchedule(PageType.BLOG, 0, RefreshPriority.LOW),
}


class PruningReason(StrEnum):
    NO_IMPRESSIONS = "no_impressions"
    OUTDATED = "outdated"


@dataclass(frozen=True)
class PruningCandidate:
    slug: str
    page_type: PageType
    reason: PruningReason
    action: str = "noindex"


def _parse(timestamp: str) -> datetime:
    parsed = datetime.fromisoformat(timestamp)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def months_since(timestamp: str, now: datetime | None = None) -> float:
    """Whole 30-day months (fractional) elapsed since ``timestamp``."""
    now = now or datetime.now(tz=UTC)
    return (now - _parse(timestamp)).total_seconds() / (DAYS_PER_MONTH * 86400)


def needs_refresh(document: ContentDocument, now: datetime | None = None) -> bool:
    """True once the document's last update is at least one cadence old."""
    schedule = REFRESH_SCHEDULES.get(document.page_type)
    if schedule is None or schedule.frequency_months == 0:
        return False
    return months_since(document.dates.updated_at, now) >= schedule.frequency_months


def refresh_priority(document: ContentDocument) -> RefreshPriority:
    schedule = REFRESH_SCHEDULES.get(document.page_type)
    return schedule.priority if schedule is not None else RefreshPriority.LOW


def identify_pruning_candidates(
    documents: list[ContentDocument],
    impressions: dict[str, int] | None = None,
    now: datetime | None = None,
) -> list[PruningCandidate]:
    """Documents that should be noindexed rather than left to rot.

    With ``impressions`` (slug to search impressions), documents older than
    nine months with none are flagged.  Independently, documents published
    more than six months ago and never updated are flagged as outdated.
    """
    now = now or datetime.now(tz=UTC)
    no_impressions_cutoff = now - timedelta(days=NO_IMPRESSIONS_AFTER_MONTHS * DAYS_PER_MONTH)
    outdated_cutoff = now - timedelta(days=OUTDATED_AFTER_MONTHS * DAYS_PER_MONTH)

    candidates: list[PruningCandidate] = []
    for doc in documents:
        published = _parse(doc.dates.published_at)
        if impressions is not None and published < no_impressions_cutoff:
            if not impressions.get(doc.slug):
                candidates.append(
                    PruningCandidate(doc.slug, doc.page_type, PruningReason.NO_IMPRESSIONS)
                )
        if published < outdated_cutoff and doc.dates.updated_at == doc.dates.published_at:
            candidates.append(PruningCandidate(doc.slug, doc.page_type, PruningReason.OUTDATED))
    return candidates
