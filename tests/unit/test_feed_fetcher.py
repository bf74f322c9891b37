"""
Tests for Feed Fetcher
======================

RSS and Atom parsing into RawItems, entry-level drops and feed-level
failures.
"""

import asyncio
import pytest
from datetime import datetime, timezone

from metrofeed.ingestion.feed_fetcher import FeedFetcher, RssChannel, AtomFeed
from metrofeed.utils.exceptions import FeedFetchError, ErrorCode

FEED_URL = "https://www.herald.co.zw/feed/"

SAMPLE_ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Techzim</title>
  <link href="https://www.techzim.co.zw/"/>
  <updated>2024-03-14T10:00:00Z</updated>
  <id>urn:techzim</id>
  <entry>
    <title>EcoCash launches new fintech product</title>
    <link rel="alternate" href="https://www.techzim.co.zw/2024/03/ecocash-fintech/"/>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <updated>2024-03-14T09:30:00Z</updated>
    <summary>Mobile money operator expands services.</summary>
    <author><name>Staff Writer</name></author>
  </entry>
</feed>
"""


class TestFeedFetcher:
    """Test suite for FeedFetcher."""

    @pytest.fixture
    def fetcher(self, http_client, settings):
        return FeedFetcher(http_client, settings)

    @pytest.mark.asyncio
    async def test_fetch_rss_feed(self, fetcher, http_client, rss_builder, sample_source):
        """RSS items come back in feed order with parsed fields."""
        http_client.feed(FEED_URL, rss_builder([
            {
                "title": "Parliament passes budget",
                "link": "https://www.herald.co.zw/parliament-passes-budget/",
                "guid": "herald-1001",
                "description": "<p>The <b>budget</b> was passed.</p>",
                "pubDate": "Thu, 14 Mar 2024 08:00:00 +0000",
                "image": "https://www.herald.co.zw/wp-content/uploads/budget.jpg",
            },
            {
                "title": "Warriors name squad",
                "link": "https://www.herald.co.zw/warriors-squad/",
            },
        ]))

        items = await fetcher.fetch_feed(sample_source, 10)

        assert len(items) == 2
        first = items[0]
        assert first.title == "Parliament passes budget"
        assert first.link == "https://www.herald.co.zw/parliament-passes-budget/"
        assert first.guid == "herald-1001"
        assert first.dedup_key == "herald-1001"
        assert "budget" in first.description
        assert first.published_at == datetime(2024, 3, 14, 8, 0, tzinfo=timezone.utc)
        assert first.media_urls == ["https://www.herald.co.zw/wp-content/uploads/budget.jpg"]

        # No guid: link doubles as the dedup key
        assert items[1].dedup_key == "https://www.herald.co.zw/warriors-squad/"

    @pytest.mark.asyncio
    async def test_fetch_atom_feed(self, fetcher, http_client, sample_source):
        """Atom entries use the alternate link and the entry id."""
        http_client.route("GET", FEED_URL, text=SAMPLE_ATOM_FEED)

        items = await fetcher.fetch_feed(sample_source, 10)

        assert len(items) == 1
        item = items[0]
        assert item.link == "https://www.techzim.co.zw/2024/03/ecocash-fintech/"
        assert item.guid == "urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a"
        assert item.author == "Staff Writer"
        assert item.published_at == datetime(2024, 3, 14, 9, 30, tzinfo=timezone.utc)

    def test_parse_feed_resolves_variant(self, fetcher, rss_builder, sample_source):
        rss = fetcher.parse_feed(rss_builder([{"title": "A", "link": "https://example.com/a"}]), sample_source)
        atom = fetcher.parse_feed(SAMPLE_ATOM_FEED, sample_source)

        assert isinstance(rss, RssChannel)
        assert isinstance(atom, AtomFeed)
        assert atom.version.startswith("atom")

    @pytest.mark.asyncio
    async def test_item_without_title_or_link_is_dropped(self, fetcher, http_client, rss_builder, sample_source):
        """A broken entry is skipped; its siblings survive."""
        http_client.feed(FEED_URL, rss_builder([
            {"link": "https://www.herald.co.zw/no-title/"},
            {"title": "No link here", "guid": "not-a-url"},
            {"title": "Valid story", "link": "https://www.herald.co.zw/valid/"},
        ]))

        items = await fetcher.fetch_feed(sample_source, 10)

        assert [item.title for item in items] == ["Valid story"]

    @pytest.mark.asyncio
    async def test_malformed_date_falls_back_to_now(self, fetcher, http_client, rss_builder, sample_source):
        http_client.feed(FEED_URL, rss_builder([
            {"title": "Undated", "link": "https://www.herald.co.zw/undated/", "pubDate": "not a date"},
        ]))

        before = datetime.now(timezone.utc)
        items = await fetcher.fetch_feed(sample_source, 10)
        after = datetime.now(timezone.utc)

        assert len(items) == 1
        assert before <= items[0].published_at <= after

    @pytest.mark.asyncio
    async def test_max_items_is_respected(self, fetcher, http_client, rss_builder, sample_source):
        http_client.feed(FEED_URL, rss_builder([
            {"title": f"Story {i}", "link": f"https://www.herald.co.zw/story-{i}/"}
            for i in range(8)
        ]))

        items = await fetcher.fetch_feed(sample_source, 3)

        assert [item.title for item in items] == ["Story 0", "Story 1", "Story 2"]

    @pytest.mark.asyncio
    async def test_max_items_capped_by_settings(self, http_client, settings, rss_builder, sample_source):
        settings.processing.max_items_per_fetch = 2
        fetcher = FeedFetcher(http_client, settings)
        http_client.feed(FEED_URL, rss_builder([
            {"title": f"Story {i}", "link": f"https://www.herald.co.zw/story-{i}/"}
            for i in range(5)
        ]))

        items = await fetcher.fetch_feed(sample_source, 50)

        assert len(items) == 2

    @pytest.mark.asyncio
    async def test_malformed_document_raises(self, fetcher, http_client, sample_source):
        http_client.route("GET", FEED_URL, text="<html><body><p>Maintenance</p></body></html>")

        with pytest.raises(FeedFetchError) as exc_info:
            await fetcher.fetch_feed(sample_source, 10)

        assert exc_info.value.error_code == ErrorCode.FEED_PARSE_ERROR
        assert exc_info.value.source_id == sample_source.id

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self, fetcher, http_client, sample_source):
        http_client.route("GET", FEED_URL, status=500, text="Internal Server Error")

        with pytest.raises(FeedFetchError) as exc_info:
            await fetcher.fetch_feed(sample_source, 10)

        assert exc_info.value.error_code == ErrorCode.FEED_HTTP_STATUS
        assert exc_info.value.context["status"] == 500

    @pytest.mark.asyncio
    async def test_timeout_raises(self, fetcher, http_client, sample_source):
        http_client.route("GET", FEED_URL, error=asyncio.TimeoutError())

        with pytest.raises(FeedFetchError) as exc_info:
            await fetcher.fetch_feed(sample_source, 10)

        assert exc_info.value.error_code == ErrorCode.FEED_FETCH_TIMEOUT

    @pytest.mark.asyncio
    async def test_network_error_raises(self, fetcher, http_client, sample_source):
        with pytest.raises(FeedFetchError) as exc_info:
            await fetcher.fetch_feed(sample_source, 10)

        assert exc_info.value.error_code == ErrorCode.FEED_NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_invalid_source_url_is_not_requested(self, fetcher, http_client, sample_source):
        source = sample_source.model_copy(update={"url": "https://"})

        with pytest.raises(FeedFetchError) as exc_info:
            await fetcher.fetch_feed(source, 10)

        assert exc_info.value.error_code == ErrorCode.FEED_INVALID_URL
        assert http_client.calls == []
