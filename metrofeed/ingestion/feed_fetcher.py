"""
Feed Fetcher
============

Retrieves one feed over HTTP and parses it into RawItem records.

The feedparser result is resolved once into a tagged variant
(``RssChannel`` or ``AtomFeed``); each variant has its own entry
conversion routine, and everything downstream sees only ``RawItem``.
"""

import asyncio
import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Any, Union

import aiohttp
import feedparser

from ..database.models import RawItem, Source
from ..utils.http_client import HttpClient
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import FeedFetchError, ItemParseError, ValidationError, ErrorCode
from ..utils.validators import URLValidator


@dataclass
class RssChannel:
    """RSS 0.9x/1.0/2.0 document."""

    title: str
    link: str
    version: str
    entries: List[Any] = field(default_factory=list)


@dataclass
class AtomFeed:
    """Atom 0.3/1.0 document."""

    title: str
    link: str
    version: str
    entries: List[Any] = field(default_factory=list)


ParsedFeed = Union[RssChannel, AtomFeed]


class FeedFetcher:
    """Fetch and parse a single source's feed."""

    def __init__(self, http_client: HttpClient, settings=None):
        """Initialize feed fetcher.

        Args:
            http_client: Shared HTTP client
            settings: Application settings (default from config)
        """
        if settings is None:
            from ..config.settings import get_settings
            settings = get_settings()

        self.http_client = http_client
        self.timeout = settings.http.request_timeout
        self.max_items_per_fetch = settings.processing.max_items_per_fetch
        self.logger = get_logger_for_component("feed_fetcher")

    async def fetch_feed(self, source: Source, max_items: int) -> List[RawItem]:
        """Fetch and parse one feed.

        Args:
            source: Source to fetch
            max_items: Maximum number of valid items to return

        Returns:
            Up to ``max_items`` RawItems in feed order

        Raises:
            FeedFetchError: On invalid URL, non-2xx status, timeout, network
                error, or a document that is not a feed
        """
        logger = self.logger.bind(source_id=source.id)

        try:
            feed_url = URLValidator.validate_feed_url(source.url)
        except ValidationError as e:
            raise FeedFetchError(
                f"Invalid feed URL: {source.url}",
                source_id=source.id, feed_url=source.url, cause=e,
                error_code=ErrorCode.FEED_INVALID_URL, recoverable=False,
            )

        logger.debug(f"Fetching feed: {feed_url}")
        start_time = datetime.now(timezone.utc)

        try:
            response = await self.http_client.get(feed_url, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.timeout}s",
                source_id=source.id, feed_url=feed_url, cause=e,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            )
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Network error: {e}",
                source_id=source.id, feed_url=feed_url, cause=e,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            )

        if not response.ok:
            raise FeedFetchError(
                f"HTTP {response.status}",
                source_id=source.id, feed_url=feed_url,
                error_code=ErrorCode.FEED_HTTP_STATUS,
                context={"status": response.status},
            )

        parsed = self.parse_feed(response.text, source)
        items = self.extract_items(parsed, source, max_items)

        logger.info(
            f"Fetched {len(items)} items from {source.name} "
            f"in {(datetime.now(timezone.utc) - start_time).total_seconds():.2f}s",
            extra={"item_count": len(items), "feed_version": parsed.version},
        )
        return items

    def parse_feed(self, content: str, source: Source) -> ParsedFeed:
        """Parse a document and resolve its variant.

        Raises:
            FeedFetchError: If the document is malformed beyond recovery
        """
        feed_data = feedparser.parse(content)
        entries = list(feed_data.get("entries", []))
        version = feed_data.get("version", "") or ""

        if feed_data.get("bozo") and not entries:
            cause = feed_data.get("bozo_exception")
            raise FeedFetchError(
                f"Feed parse error: {cause or 'invalid XML structure'}",
                source_id=source.id, feed_url=source.url, cause=cause,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )

        if not version and not entries:
            raise FeedFetchError(
                "Document is not an RSS or Atom feed",
                source_id=source.id, feed_url=source.url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )

        if feed_data.get("bozo"):
            self.logger.info(
                f"Feed has parse warnings but contains entries: {source.url}",
                extra={"source_id": source.id},
            )

        channel = feed_data.get("feed", {}) or {}
        title = channel.get("title", "") or ""
        link = channel.get("link", "") or ""

        if version.startswith("atom"):
            return AtomFeed(title=title, link=link, version=version, entries=entries)
        return RssChannel(title=title, link=link, version=version or "rss", entries=entries)

    def extract_items(self, parsed: ParsedFeed, source: Source, max_items: int) -> List[RawItem]:
        """Convert entries to RawItems, dropping unusable entries.

        Args:
            parsed: Resolved feed variant
            source: Owning source (for logging)
            max_items: Requested item count

        Returns:
            At most ``min(max_items, max_items_per_fetch)`` items
        """
        limit = min(max_items, self.max_items_per_fetch)
        if limit <= 0:
            return []

        if isinstance(parsed, AtomFeed):
            convert = self._atom_item
        else:
            convert = self._rss_item

        items: List[RawItem] = []
        for entry in parsed.entries:
            if len(items) >= limit:
                break
            try:
                items.append(convert(entry))
            except ItemParseError as e:
                self.logger.warning(
                    f"Dropping entry from {source.name}: {e.message}",
                    extra={"source_id": source.id, **e.context},
                )

        return items

    def _rss_item(self, entry: Any) -> RawItem:
        """RSS <item>: guid, then link."""
        title = self._require_title(entry)
        guid = (entry.get("id") or entry.get("guid") or "").strip() or None
        link = (entry.get("link") or "").strip()

        if not link and guid and URLValidator.is_http_url(guid):
            link = guid
        if not link:
            raise ItemParseError("Entry has no link", field_name="link",
                                 context={"entry_title": title[:80]})

        return RawItem(
            title=title,
            link=link,
            guid=guid or link,
            description=self._text(entry.get("summary") or entry.get("description")),
            content=self._content(entry),
            author=self._author(entry),
            published_at=self._parse_date(entry, ("published_parsed", "updated_parsed", "created_parsed")),
            media_urls=self._media_urls(entry),
        )

    def _atom_item(self, entry: Any) -> RawItem:
        """Atom <entry>: alternate link, id as dedup key."""
        title = self._require_title(entry)
        guid = (entry.get("id") or "").strip() or None

        link = ""
        for candidate in entry.get("links", []) or []:
            if candidate.get("rel", "alternate") == "alternate" and candidate.get("href"):
                link = candidate["href"].strip()
                break
        if not link:
            link = (entry.get("link") or "").strip()
        if not link and guid and URLValidator.is_http_url(guid):
            link = guid
        if not link:
            raise ItemParseError("Entry has no link", field_name="link",
                                 context={"entry_title": title[:80]})

        return RawItem(
            title=title,
            link=link,
            guid=guid or link,
            description=self._text(entry.get("summary")),
            content=self._content(entry),
            author=self._author(entry),
            published_at=self._parse_date(entry, ("published_parsed", "updated_parsed")),
            media_urls=self._media_urls(entry),
        )

    @staticmethod
    def _require_title(entry: Any) -> str:
        title = entry.get("title")
        if not title or not str(title).strip():
            raise ItemParseError("Entry has no title", field_name="title",
                                 context={"entry_link": entry.get("link")})
        return str(title).strip()

    @staticmethod
    def _text(value: Any) -> str:
        if isinstance(value, dict):
            value = value.get("value", "")
        return value if isinstance(value, str) else ""

    def _content(self, entry: Any) -> str:
        """Full content (content:encoded / atom:content), joined."""
        blocks = entry.get("content") or []
        values = [self._text(block) for block in blocks]
        return "\n".join(v for v in values if v)

    @staticmethod
    def _author(entry: Any) -> Optional[str]:
        author = entry.get("author")
        if not author:
            detail = entry.get("author_detail") or {}
            author = detail.get("name")
        return str(author).strip() if author else None

    def _parse_date(self, entry: Any, fields) -> datetime:
        """Parse a publish date as UTC; malformed or missing means now."""
        for name in fields:
            date_tuple = entry.get(name)
            if date_tuple:
                try:
                    return datetime.fromtimestamp(calendar.timegm(date_tuple), tz=timezone.utc)
                except (TypeError, ValueError, OverflowError):
                    continue

        return datetime.now(timezone.utc)

    @staticmethod
    def _media_urls(entry: Any) -> List[str]:
        """media:content, media:thumbnail and image enclosures, in that order."""
        urls: List[str] = []

        for media in entry.get("media_content", []) or []:
            medium = (media.get("medium") or "").lower()
            media_type = (media.get("type") or "").lower()
            if medium in ("", "image") and (not media_type or media_type.startswith("image/")):
                if media.get("url"):
                    urls.append(media["url"])

        for thumb in entry.get("media_thumbnail", []) or []:
            if thumb.get("url"):
                urls.append(thumb["url"])

        for enclosure in entry.get("enclosures", []) or []:
            enclosure_type = (enclosure.get("type") or "").lower()
            href = enclosure.get("href") or enclosure.get("url")
            if href and (not enclosure_type or enclosure_type.startswith("image/")):
                urls.append(href)

        deduped = []
        for url in urls:
            url = url.strip()
            if url and url not in deduped:
                deduped.append(url)
        return deduped
