"""Tests for the pre-publish quality gate."""

from tackle_content.config import QualitySectionConfig
from tackle_content.content.models import BlogDocument, ContentDocument, SpeciesDocument
from tackle_content.publish.quality import (
    QualityGate,
    count_internal_links,
    lexical_diversity,
)

_LINKS = (
    "Read about [snook](/species/snook), [knots](/how-to/knots) and [Tampa](/locations/tampa)."
)
_CTA = "Download the Tackle app to log your catches."


def _body(words: int = 1000, *, extra: str = "", cta: str = _CTA) -> str:
    filler = " ".join(f"term{i}" for i in range(words))
    return f"## Introduction\n\n{filler}\n\n{_LINKS}\n\n## Conclusion\n\n{cta} {extra}"


def _make_doc(make_raw, page_type: str = "blog", **overrides: object) -> ContentDocument:
    fields: dict[str, object] = {
        "body": _body(),
        "description": "d" * 120,
        "headings": [{"level": 2, "text": f"Section {i}"} for i in range(4)],
        "faqs": [{"question": f"Q{i}?", "answer": f"A{i}."} for i in range(5)],
    }
    fields.update(overrides)
    raw = make_raw("first-cast", page_type, **fields)
    model = BlogDocument if page_type == "blog" else SpeciesDocument
    return model.model_validate(raw)


class TestPasses:
    def test_clean_blog_post(self, make_raw):
        report = QualityGate().check(_make_doc(make_raw))
        assert report.passed
        assert report.errors == []
        assert report.warnings == []


class TestWordCount:
    def test_far_below_minimum_is_error(self, make_raw):
        report = QualityGate().check(_make_doc(make_raw, body=_body(500)))
        assert not report.passed
        assert any(e.startswith("Word count") for e in report.errors)

    def test_slightly_below_minimum_is_warning(self, make_raw):
        report = QualityGate().check(_make_doc(make_raw, body=_body(800)))
        assert report.passed
        assert any("below recommended 900" in w for w in report.warnings)

    def test_minimum_depends_on_page_type(self, make_raw):
        report = QualityGate().check(_make_doc(make_raw, "species", body=_body(1000)))
        assert any("below recommended 1200" in w for w in report.warnings)


class TestStructure:
    def test_too_few_h2_sections(self, make_raw):
        headings = [{"level": 2, "text": "Only"}, {"level": 3, "text": "x"}]
        doc = _make_doc(make_raw, headings=headings)
        report = QualityGate().check(doc)
        assert "Only 1 H2 sections found, minimum is 4" in report.errors

    def test_faq_bounds(self, make_raw):
        few = QualityGate().check(_make_doc(make_raw, faqs=[]))
        assert "Only 0 FAQs found, minimum is 5" in few.errors
        many = QualityGate().check(_make_doc(make_raw, faqs=[{"q": i} for i in range(9)]))
        assert many.passed
        assert "More than 8 FAQs found (9)" in many.warnings


class TestClaims:
    def test_forbidden_phrase(self, make_raw):
        doc = _make_doc(make_raw, body=_body(extra="This is not Legal Advice."))
        report = QualityGate().check(doc)
        assert 'Content contains forbidden phrase: "legal advice"' in report.errors

    def test_bag_limit(self, make_raw):
        doc = _make_doc(make_raw, body=_body(extra="Anglers can keep 3 on a good day."))
        report = QualityGate().check(doc)
        assert any("bag limit" in e for e in report.errors)

    def test_size_limit(self, make_raw):
        doc = _make_doc(make_raw, body=_body(extra="Keepers must be 28 inches."))
        report = QualityGate().check(doc)
        assert any("size limit" in e for e in report.errors)

    def test_closed_season(self, make_raw):
        doc = _make_doc(make_raw, body=_body(extra="Note the closed season."))
        report = QualityGate().check(doc)
        assert any("closed season" in e for e in report.errors)

    def test_legal_claim(self, make_raw):
        doc = _make_doc(make_raw, body=_body(extra="It is illegal to gaff them."))
        report = QualityGate().check(doc)
        assert any("legal claims" in e for e in report.errors)


class TestCallToAction:
    def test_blog_requires_app_cta(self, make_raw):
        report = QualityGate().check(_make_doc(make_raw, body=_body(cta="Tight lines.")))
        assert "REQUIRED: Blog post must include Tackle app CTA" in report.errors

    def test_blog_cta_without_value_prop_warns(self, make_raw):
        report = QualityGate().check(_make_doc(make_raw, body=_body(cta="Get the Tackle app.")))
        assert report.passed
        assert any("value proposition" in w for w in report.warnings)

    def test_species_cta_is_only_a_warning(self, make_raw):
        doc = _make_doc(make_raw, "species", body=_body(1300, cta="Tight lines."))
        report = QualityGate().check(doc)
        assert report.passed
        assert "Content may be missing app download CTA" in report.warnings
        assert any("internal links" in w for w in report.warnings)
        assert 'Content may be missing required section: "Habitat"' in report.warnings


class TestMetadata:
    def test_description_and_title_length(self, make_raw):
        doc = _make_doc(make_raw, description="Too short.", title="T" * 61)
        report = QualityGate().check(doc)
        assert report.passed
        assert "Meta description length is 10 (recommended: 100-160)" in report.warnings
        assert "Title length is 61 (recommended: < 60)" in report.warnings

    def test_seasonal_content_wants_sources(self, make_raw):
        doc = _make_doc(make_raw, body=_body(extra="Summer mornings are best."))
        report = QualityGate().check(doc)
        assert any("Seasonal content" in w for w in report.warnings)


class TestLexicalDiversity:
    def test_repetitive_body_fails(self, make_raw):
        body = _body(0, extra="snook bait " * 600)
        report = QualityGate().check(_make_doc(make_raw, body=body))
        assert any(e.startswith("Low lexical diversity") for e in report.errors)

    def test_short_bodies_are_not_judged(self):
        assert lexical_diversity("snook " * 10) is None
        assert lexical_diversity(" ".join(f"w{i}xx" for i in range(60))) == 1.0


class TestConfig:
    def test_thresholds_come_from_config(self, make_raw):
        config = QualitySectionConfig(min_faqs=0, min_h2_sections=0)
        doc = _make_doc(make_raw, faqs=[], headings=[])
        assert QualityGate(config).check(doc).passed

    def test_count_internal_links(self):
        body = '[a](/blog/a) <a href="/species/snook">snook</a> [ext](https://example.com)'
        assert count_internal_links(body) == 2
