"""
Tests for Content Cleaner
=========================
"""

import pytest
from datetime import datetime, timezone

from metrofeed.database.models import RawItem
from metrofeed.ingestion.content_cleaner import ContentCleaner, strip_markup, truncate, base_slug
from metrofeed.utils.exceptions import ItemParseError


class TestHelpers:
    """Module-level text helpers."""

    def test_strip_markup_removes_tags_and_entities(self):
        html = "<p>Mining &amp; farming</p><script>alert(1)</script>\n\n<b>news</b>"
        assert strip_markup(html) == "Mining & farming news"

    def test_strip_markup_handles_empty(self):
        assert strip_markup(None) == ""
        assert strip_markup("   ") == ""

    def test_truncate_prefers_word_boundary(self):
        text = "The Reserve Bank announced a new monetary policy statement today"
        result = truncate(text, 30)
        assert len(result) <= 30
        assert result.endswith("...")
        assert not result[:-3].endswith(" ")

    def test_truncate_leaves_short_text(self):
        assert truncate("short", 30) == "short"

    def test_base_slug(self):
        assert base_slug("ZiG Gains Against US$ -- Analysts React!") == "zig-gains-against-us-analysts-react"
        assert base_slug("!!!") == "article"
        assert len(base_slug("word " * 50, max_length=20)) <= 20


class TestContentCleaner:
    """Test suite for ContentCleaner.normalize."""

    @pytest.fixture
    def cleaner(self, settings):
        return ContentCleaner(settings, suffix_factory=lambda: "abc12345")

    def test_normalize_builds_candidate(self, cleaner, sample_source):
        published = datetime(2024, 3, 14, 8, 0, tzinfo=timezone.utc)
        item = RawItem(
            title="  <b>Harare</b> council   approves budget ",
            link="HTTPS://WWW.Herald.co.zw/council-budget/#comments",
            guid="herald-42",
            description="<p>Council approved the 2024 budget.</p>",
            author="Herald Reporter",
            published_at=published,
        )

        candidate = cleaner.normalize(item, sample_source)

        assert candidate.title == "Harare council approves budget"
        assert candidate.slug == "harare-council-approves-budget-abc12345"
        assert candidate.description == "Council approved the 2024 budget."
        assert candidate.original_url == "https://www.herald.co.zw/council-budget/"
        assert candidate.dedup_key == "herald-42"
        assert candidate.source_id == sample_source.id
        assert candidate.source_name == sample_source.name
        assert candidate.published_at == published
        assert candidate.category_id is None
        assert candidate.image_url is None

    def test_description_falls_back_to_content(self, cleaner, sample_source):
        item = RawItem(
            title="Story",
            link="https://www.herald.co.zw/story/",
            content="<div>Full body text of the story.</div>",
        )

        candidate = cleaner.normalize(item, sample_source)

        assert candidate.description == "Full body text of the story."

    def test_description_is_bounded(self, settings, sample_source):
        cleaner = ContentCleaner(settings)
        item = RawItem(title="Long", link="https://example.com/long", description="word " * 400)

        candidate = cleaner.normalize(item, sample_source)

        assert len(candidate.description) <= settings.processing.max_description_length

    def test_title_empty_after_cleaning_raises(self, cleaner, sample_source):
        item = RawItem(title="<img src='x.jpg'/>", link="https://example.com/a")

        with pytest.raises(ItemParseError):
            cleaner.normalize(item, sample_source)

    @pytest.mark.parametrize("link", ["javascript:alert(1)", "not-a-url", "/relative/path"])
    def test_unusable_link_raises(self, cleaner, sample_source, link):
        item = RawItem(title="Story", link=link)

        with pytest.raises(ItemParseError) as exc_info:
            cleaner.normalize(item, sample_source)

        assert exc_info.value.context["field_name"] == "link"

    def test_slugs_are_unique_per_call(self, settings):
        cleaner = ContentCleaner(settings)
        assert cleaner.make_slug("Same title") != cleaner.make_slug("Same title")
