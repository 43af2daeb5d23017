"""Pre-publish quality gate for generated documents.

Errors block the publish; warnings are logged and reported but do not.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from tackle_content.config import QualitySectionConfig
from tackle_content.content.models import ContentDocument, PageType

logger = logging.getLogger(__name__)

# Specific regulations go stale; pages must defer to the official source.
_REGULATION_PATTERNS = [
    (
        re.compile(
            r"bag limit|daily limit|keep \d+|harvest limit|\d+\s+fish per|limit.*\d+\s+fish",
            re.IGNORECASE,
        ),
        "CRITICAL: Content contains bag limit information. Remove all specific bag limits.",
    ),
    (
        re.compile(
            r"slot limit|size limit|minimum.*\d+\s*inch|maximum.*\d+\s*inch"
            r"|\d+\s*-\s*\d+\s*inch|must be.*\d+\s*inch",
            re.IGNORECASE,
        ),
        "CRITICAL: Content contains size limit information. Remove all specific measurements.",
    ),
    (
        re.compile(
            r"closed season|open season|no fishing.*january|no fishing.*june"
            r"|closed.*december|season runs",
            re.IGNORECASE,
        ),
        "CRITICAL: Content contains closed season information. Remove all specific dates.",
    ),
    (
        re.compile(
            r"illegal to|must have.*license|violations.*fine|against the law", re.IGNORECASE
        ),
        "CRITICAL: Content makes legal claims. Remove all legal advice.",
    ),
]

_APP_CTA = re.compile(r"tackle app|download tackle", re.IGNORECASE)
_VALUE_PROP = re.compile(
    r"log your catches|track patterns|discover hot spots|ai fish id|catch more", re.IGNORECASE
)
_SEASONAL_WORDS = ("season", "winter", "summer", "spring", "fall")

_MARKDOWN_LINK = re.compile(r"\[.*?\]\(/(?:species|how-to|locations|blog)/[^)]+\)")
_HTML_LINK = re.compile(r"""<a[^>]+href=["']/(?:species|how-to|locations|blog)/[^"']+["']""")

_REQUIRED_SECTIONS = {
    PageType.SPECIES: ["About", "Habitat", "Techniques"],
    PageType.HOW_TO: ["Step-by-Step", "Tips", "Best Conditions"],
    PageType.LOCATION: ["Best Fishing Spots", "Popular Species", "Fishing Techniques"],
    PageType.BLOG: ["Introduction", "Conclusion"],
}


@dataclass
class QualityReport:
    """Outcome of a quality check."""

    passed: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def count_internal_links(body: str) -> int:
    """Count markdown and HTML links pointing at other content pages."""
    return len(_MARKDOWN_LINK.findall(body)) + len(_HTML_LINK.findall(body))


def count_h2_headings(document: ContentDocument) -> int:
    count = 0
    for heading in document.headings or []:
        if isinstance(heading, dict) and heading.get("level") == 2:
            count += 1
    return count


def lexical_diversity(body: str) -> float | None:
    """Ratio of unique to total words longer than two letters.

    Returns ``None`` for bodies too short to judge.
    """
    words = [w for w in body.lower().split() if len(w) > 2]
    if len(words) < 50:
        return None
    return len(set(words)) / len(words)


class QualityGate:
    """Editorial checks run before a document is written."""

    def __init__(self, config: QualitySectionConfig | None = None) -> None:
        self.config = config or QualitySectionConfig()

    def check(self, document: ContentDocument) -> QualityReport:
        cfg = self.config
        errors: list[str] = []
        warnings: list[str] = []
        body = document.body
        body_lower = body.lower()

        word_count = document.word_count
        min_words = cfg.min_word_counts.get(document.page_type.value, 1000)
        if word_count < min_words * 0.8:
            errors.append(f"Word count {word_count} is below minimum {min_words}")
        elif word_count < min_words:
            warnings.append(f"Word count {word_count} is below recommended {min_words}")

        h2_count = count_h2_headings(document)
        if h2_count < cfg.min_h2_sections:
            errors.append(
                f"Only {h2_count} H2 sections found, minimum is {cfg.min_h2_sections}"
            )

        faq_count = len(document.faqs or [])
        if faq_count < cfg.min_faqs:
            errors.append(f"Only {faq_count} FAQs found, minimum is {cfg.min_faqs}")
        if faq_count > cfg.max_faqs:
            warnings.append(f"More than {cfg.max_faqs} FAQs found ({faq_count})")

        link_count = count_internal_links(body)
        min_links = cfg.min_internal_links.get(document.page_type.value, 3)
        if link_count < min_links:
            warnings.append(
                f"Only {link_count} internal links found in body, recommended is {min_links}"
            )

        for phrase in cfg.forbidden_phrases:
            if phrase.lower() in body_lower:
                errors.append(f'Content contains forbidden phrase: "{phrase}"')

        for pattern, message in _REGULATION_PATTERNS:
            if pattern.search(body):
                errors.append(message)

        source_count = len(document.sources or [])
        if (
            any(word in body_lower for word in _SEASONAL_WORDS)
            and source_count < cfg.min_sources_for_seasonal
        ):
            warnings.append(
                f"Seasonal content recommends at least {cfg.min_sources_for_seasonal} "
                f"sources, found {source_count}"
            )

        has_cta = bool(_APP_CTA.search(body))
        if document.page_type == PageType.BLOG:
            if not has_cta:
                errors.append("REQUIRED: Blog post must include Tackle app CTA")
            elif not _VALUE_PROP.search(body):
                warnings.append(
                    "App CTA should include value proposition (track catches, discover spots, etc.)"
                )
        elif not has_cta and "download" not in body_lower:
            warnings.append("Content may be missing app download CTA")

        for section in _REQUIRED_SECTIONS[document.page_type]:
            if section.lower() not in body_lower:
                warnings.append(f'Content may be missing required section: "{section}"')

        desc_len = len(document.description)
        if desc_len < 100 or desc_len > 160:
            warnings.append(f"Meta description length is {desc_len} (recommended: 100-160)")

        if len(document.title) > 60:
            warnings.append(f"Title length is {len(document.title)} (recommended: < 60)")

        diversity = lexical_diversity(body)
        if diversity is not None and diversity < cfg.min_lexical_diversity:
            errors.append(
                f"Low lexical diversity: {diversity * 100:.1f}% "
                f"(minimum {cfg.min_lexical_diversity * 100:.0f}%)"
            )

        report = QualityReport(passed=not errors, errors=errors, warnings=warnings)
        if not report.passed:
            logger.error(
                "Quality gate failed for %s:%s: %s", document.page_type, document.slug, errors
            )
        elif warnings:
            logger.warning(
                "Quality gate passed with warnings for %s:%s: %s",
                document.page_type,
                document.slug,
                warnings,
            )
        else:
            logger.info("Quality gate passed for %s:%s", document.page_type, document.slug)
        return report
