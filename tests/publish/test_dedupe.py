"""Tests for content hashing and duplicate detection."""

from tackle_content.content.models import PageType, TopicState, TopicStatus
from tackle_content.publish.dedupe import (
    content_hash,
    find_exact_duplicate,
    normalize_text_for_hash,
)


def _topic(key: str, body: str, status: TopicStatus = TopicStatus.PUBLISHED) -> TopicState:
    return TopicState(
        topic_key=key,
        page_type=PageType.BLOG,
        slug=key.split("::")[1],
        status=status,
        content_hash=content_hash(body),
    )


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize_text_for_hash("  Hello,\n\tWORLD!  ") == "hello world"

    def test_hash_ignores_formatting(self):
        assert content_hash("Snook bite at dawn.") == content_hash("snook   bite at DAWN")
        assert content_hash("snook") != content_hash("tarpon")
        assert len(content_hash("x")) == 64


class TestFindExactDuplicate:
    def test_match(self):
        topics = [_topic("blog::a", "Same body text")]
        match = find_exact_duplicate("same body text!", topics)
        assert match is not None
        assert match.topic_key == "blog::a"
        assert match.slug == "a"

    def test_ignores_own_topic(self):
        topics = [_topic("blog::a", "Same body")]
        assert find_exact_duplicate("Same body", topics, exclude_topic_key="blog::a") is None

    def test_ignores_unpublished(self):
        topics = [_topic("blog::a", "Same body", TopicStatus.FAILED)]
        assert find_exact_duplicate("Same body", topics) is None

    def test_no_match(self):
        assert find_exact_duplicate("fresh", [_topic("blog::a", "stale")]) is None
