"""
Tests for Image Extractor
=========================

Candidate ordering, URL resolution and the HEAD check with its
heuristic fallback.
"""

import asyncio
import pytest
from datetime import timedelta

from metrofeed.database.models import RawItem
from metrofeed.processing.image_extractor import (
    ImageExtractor,
    looks_like_image_url,
    first_img_src,
    find_og_image,
)

ARTICLE_URL = "https://www.newsday.co.zw/2024/03/budget-story/"


class TestImageHelpers:

    @pytest.mark.parametrize("url,expected", [
        ("https://cdn.example.com/a/b/photo.JPG", True),
        ("https://cdn.example.com/a/b/pic.webp?w=600", True),
        ("https://example.com/wp-content/uploads/2024/03/abc", True),
        ("https://example.com/article/123", False),
        ("", False),
    ])
    def test_looks_like_image_url(self, url, expected):
        assert looks_like_image_url(url) is expected

    def test_first_img_src_skips_data_uris(self):
        html = '<p><img src="data:image/gif;base64,R0lGOD"/><img data-src="/img/lazy.jpg"/></p>'
        assert first_img_src(html) == "/img/lazy.jpg"

    def test_find_og_image(self):
        html = '<html><head><meta property="og:image" content=" https://cdn.example.com/og.png "/></head></html>'
        assert find_og_image(html) == "https://cdn.example.com/og.png"
        assert find_og_image("<html></html>") is None


class TestImageExtractor:
    """Test suite for ImageExtractor."""

    @pytest.fixture
    def extractor(self, http_client, settings, clock):
        return ImageExtractor(http_client, settings, clock=clock)

    @pytest.fixture
    def item(self, clock):
        return RawItem(title="Story", link=ARTICLE_URL, published_at=clock())

    @pytest.mark.asyncio
    async def test_dead_candidate_is_skipped(self, extractor, http_client, item):
        """A 404 candidate is rejected and the next valid one is used."""
        dead = "https://cdn.example.com/missing.jpg"
        alive = "https://cdn.example.com/present.jpg"
        http_client.image(dead, status=404)
        http_client.image(alive)
        item.media_urls = [dead, alive]

        assert await extractor.extract_image(item, ARTICLE_URL) == alive
        assert http_client.calls_for("HEAD") == [dead, alive]

    @pytest.mark.asyncio
    async def test_candidate_order(self, extractor, http_client, item):
        item.media_urls = ["https://cdn.example.com/media.jpg"]
        item.content = '<img src="https://cdn.example.com/content.jpg">'
        item.description = '<img src="https://cdn.example.com/description.jpg">'

        candidates = extractor.collect_candidates(item, ARTICLE_URL)

        assert candidates == [
            "https://cdn.example.com/media.jpg",
            "https://cdn.example.com/content.jpg",
            "https://cdn.example.com/description.jpg",
        ]

    def test_relative_candidates_are_resolved(self, extractor, item):
        item.media_urls = ["//cdn.newsday.co.zw/a.jpg", "/wp-content/uploads/b.jpg", "c.jpg", "javascript:void(0)"]

        candidates = extractor.collect_candidates(item, ARTICLE_URL)

        assert candidates == [
            "https://cdn.newsday.co.zw/a.jpg",
            "https://www.newsday.co.zw/wp-content/uploads/b.jpg",
            "https://www.newsday.co.zw/2024/03/budget-story/c.jpg",
        ]

    @pytest.mark.asyncio
    async def test_head_refused_uses_heuristic(self, extractor, http_client):
        image_like = "https://cdn.example.com/pic.png"
        not_image_like = "https://cdn.example.com/resource/42"
        http_client.image(image_like, status=405)
        http_client.image(not_image_like, status=403)

        assert await extractor.is_image_accessible(image_like) is True
        assert await extractor.is_image_accessible(not_image_like) is False

    @pytest.mark.asyncio
    async def test_timeout_uses_heuristic(self, extractor, http_client):
        url = "https://cdn.example.com/slow.jpg"
        http_client.route("HEAD", url, error=asyncio.TimeoutError())

        assert await extractor.is_image_accessible(url) is True

    @pytest.mark.asyncio
    async def test_non_image_content_type_uses_heuristic(self, extractor, http_client):
        http_client.image("https://example.com/page", content_type="text/html")
        http_client.image("https://example.com/photo.jpg", content_type="text/html")

        assert await extractor.is_image_accessible("https://example.com/page") is False
        assert await extractor.is_image_accessible("https://example.com/photo.jpg") is True

    @pytest.mark.asyncio
    async def test_missing_content_type_passes(self, extractor, http_client):
        http_client.route("HEAD", "https://example.com/resource/1", status=200)
        assert await extractor.is_image_accessible("https://example.com/resource/1") is True

    @pytest.mark.asyncio
    async def test_og_image_used_when_no_candidates(self, extractor, http_client, item):
        http_client.route(
            "GET", ARTICLE_URL,
            text='<html><head><meta property="og:image" content="/uploads/og.jpg"></head></html>',
        )
        http_client.image("https://www.newsday.co.zw/uploads/og.jpg")

        assert await extractor.extract_image(item, ARTICLE_URL) == "https://www.newsday.co.zw/uploads/og.jpg"

    @pytest.mark.asyncio
    async def test_og_image_skipped_for_old_items(self, extractor, http_client, item, clock):
        item.published_at = clock() - timedelta(days=30)

        assert await extractor.extract_image(item, ARTICLE_URL) is None
        assert http_client.calls == []

    @pytest.mark.asyncio
    async def test_og_image_not_fetched_when_candidates_exist(self, extractor, http_client, item):
        item.media_urls = ["https://cdn.example.com/missing.jpg"]

        assert await extractor.extract_image(item, ARTICLE_URL) is None
        assert http_client.calls_for("GET") == []

    @pytest.mark.asyncio
    async def test_failures_never_raise(self, extractor, http_client, item):
        url = "https://cdn.example.com/boom.jpg"
        http_client.route("HEAD", url, error=RuntimeError("boom"))
        item.media_urls = [url]

        assert await extractor.extract_image(item, ARTICLE_URL) is None
