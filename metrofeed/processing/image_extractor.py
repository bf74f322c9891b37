"""
Image Extractor
===============

Finds a representative image for a feed item and checks that it exists.

Candidate order:
1. media:content / media:thumbnail / image enclosures
2. first <img src> in full content
3. first <img src> in the description
4. og:image of the article page, only when 1-3 found nothing and the
   item is recent

Each candidate is resolved to an absolute http(s) URL and checked with a
short HEAD request. When the check cannot give a definite answer
(HEAD refused, timeout, network error) a URL heuristic decides.
"""

import asyncio
import re
from datetime import datetime, timezone, timedelta
from typing import List, Optional
from urllib.parse import urlparse

import aiohttp
from bs4 import BeautifulSoup

from ..database.models import RawItem
from ..utils.http_client import HttpClient
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator

IMAGE_EXTENSION_PATTERN = re.compile(r"\.(jpe?g|png|gif|webp|svg|bmp|avif)(\?.*)?$", re.IGNORECASE)
IMAGE_PATH_KEYWORDS = ("image", "photo", "img", "media", "uploads")

# HEAD refused or unsupported; existence is unknown
INCONCLUSIVE_STATUSES = {403, 405, 501}


def looks_like_image_url(url: str) -> bool:
    """URL heuristic used when a HEAD check is inconclusive."""
    if not url:
        return False
    path = urlparse(url).path.lower()
    if IMAGE_EXTENSION_PATTERN.search(path) or IMAGE_EXTENSION_PATTERN.search(url.lower()):
        return True
    return any(keyword in path for keyword in IMAGE_PATH_KEYWORDS)


def first_img_src(html: Optional[str]) -> Optional[str]:
    """First non-empty <img src> in an HTML fragment."""
    if not html or "<img" not in html.lower():
        return None
    soup = BeautifulSoup(html, "html.parser")
    for img in soup.find_all("img"):
        src = (img.get("src") or img.get("data-src") or "").strip()
        if src and not src.lower().startswith("data:"):
            return src
    return None


def find_og_image(html: Optional[str]) -> Optional[str]:
    """Content of the og:image meta tag, if any."""
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for attr in ("property", "name"):
        tag = soup.find("meta", attrs={attr: "og:image"})
        if tag and tag.get("content"):
            return tag["content"].strip()
    return None


class ImageExtractor:
    """Extracts and validates an article image URL."""

    def __init__(self, http_client: HttpClient, settings=None, clock=None):
        """Initialize image extractor.

        Args:
            http_client: Shared HTTP client
            settings: Application settings (default from config)
            clock: Callable returning the current UTC datetime
        """
        if settings is None:
            from ..config.settings import get_settings
            settings = get_settings()

        self.http_client = http_client
        self.check_timeout = settings.http.image_check_timeout
        self.og_image_timeout = settings.http.og_image_timeout
        self.og_image_max_age = timedelta(days=settings.processing.og_image_max_age_days)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger_for_component("image_extractor")

    async def extract_image(self, raw_item: RawItem, article_link: str) -> Optional[str]:
        """Return the first candidate that passes validation.

        Args:
            raw_item: Parsed feed entry
            article_link: Absolute article URL used to resolve relative URLs

        Returns:
            Absolute image URL, or None
        """
        try:
            candidates = self.collect_candidates(raw_item, article_link)

            if not candidates and self._og_image_allowed(raw_item):
                og_image = await self._fetch_og_image(article_link)
                if og_image:
                    candidates = self._absolute([og_image], article_link)

            for candidate in candidates:
                if await self.is_image_accessible(candidate):
                    return candidate
                self.logger.debug(f"Rejected image candidate: {candidate}")

            return None

        except Exception as e:
            self.logger.warning(
                f"Image extraction failed for {article_link}: {e}",
                extra={"article_link": article_link},
            )
            return None

    def collect_candidates(self, raw_item: RawItem, article_link: str) -> List[str]:
        """Absolute candidate URLs from the item itself, in priority order."""
        raw = list(raw_item.media_urls)

        content_img = first_img_src(raw_item.content)
        if content_img:
            raw.append(content_img)

        description_img = first_img_src(raw_item.description)
        if description_img:
            raw.append(description_img)

        return self._absolute(raw, article_link)

    @staticmethod
    def _absolute(urls: List[str], article_link: str) -> List[str]:
        resolved: List[str] = []
        for url in urls:
            absolute = URLValidator.absolutize(url, article_link)
            if absolute and absolute not in resolved:
                resolved.append(absolute)
        return resolved

    def _og_image_allowed(self, raw_item: RawItem) -> bool:
        age = self.clock() - raw_item.published_at
        return age <= self.og_image_max_age

    async def _fetch_og_image(self, article_link: str) -> Optional[str]:
        if not URLValidator.is_http_url(article_link):
            return None
        try:
            response = await self.http_client.get(
                article_link,
                timeout=self.og_image_timeout,
                headers={"Accept": "text/html"},
            )
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            self.logger.debug(f"og:image lookup failed for {article_link}: {e}")
            return None

        if not response.ok:
            return None
        return find_og_image(response.text)

    async def is_image_accessible(self, url: str) -> bool:
        """HEAD-check an image URL.

        2xx with an image or missing content type passes. 2xx with another
        content type, a refused HEAD (403/405/501), a timeout or a network
        error defer to the URL heuristic. 404 and other statuses reject.
        """
        try:
            response = await self.http_client.head(url, timeout=self.check_timeout)
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            self.logger.debug(f"HEAD check inconclusive for {url}: {type(e).__name__}")
            return looks_like_image_url(url)
        except Exception as e:
            self.logger.debug(f"HEAD check failed for {url}: {e}")
            return False

        if response.ok:
            content_type = response.content_type
            if content_type is None or content_type.startswith("image/"):
                return True
            return looks_like_image_url(url)

        if response.status in INCONCLUSIVE_STATUSES:
            return looks_like_image_url(url)

        return False
