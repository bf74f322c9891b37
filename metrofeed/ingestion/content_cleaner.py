"""
Content Cleaner
===============

Turns a RawItem into an ArticleCandidate: markup stripped, whitespace
collapsed, lengths bounded, slug derived.
"""

import re
import uuid
from typing import Callable, Optional

from bs4 import BeautifulSoup

from ..database.models import RawItem, Source, ArticleCandidate
from ..utils.exceptions import ItemParseError, ValidationError
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG_CHARS = re.compile(r"[^\w\s-]")
_SLUG_SEPARATORS = re.compile(r"[\s_-]+")


def strip_markup(text: Optional[str]) -> str:
    """Remove tags and decode entities, then collapse whitespace."""
    if not text:
        return ""
    if "<" in text or "&" in text:
        soup = BeautifulSoup(text, "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()
        text = soup.get_text(separator=" ")
    return _WHITESPACE.sub(" ", text).strip()


def truncate(text: str, max_length: int, ellipsis: str = "...") -> str:
    """Bound text length, preferring a word boundary."""
    if len(text) <= max_length:
        return text
    cut = text[: max_length - len(ellipsis)]
    space = cut.rfind(" ")
    if space > max_length // 2:
        cut = cut[:space]
    return cut.rstrip(" ,;:-") + ellipsis


def base_slug(title: str, max_length: int = 100) -> str:
    """Lower-case, drop non-word characters, hyphenate spaces."""
    slug = _NON_SLUG_CHARS.sub("", title.lower())
    slug = _SLUG_SEPARATORS.sub("-", slug).strip("-")
    slug = slug[:max_length].strip("-")
    return slug or "article"


def random_suffix() -> str:
    return uuid.uuid4().hex[:8]


class ContentCleaner:
    """Normalizes raw feed items for storage."""

    def __init__(self, settings=None, suffix_factory: Callable[[], str] = random_suffix):
        """Initialize content cleaner.

        Args:
            settings: Application settings (default from config)
            suffix_factory: Produces the slug uniqueness suffix
        """
        if settings is None:
            from ..config.settings import get_settings
            settings = get_settings()

        self.max_title_length = settings.processing.max_title_length
        self.max_description_length = settings.processing.max_description_length
        self.max_slug_length = settings.processing.max_slug_length
        self.suffix_factory = suffix_factory
        self.logger = get_logger_for_component("content_cleaner")

    def normalize(self, raw_item: RawItem, source: Source) -> ArticleCandidate:
        """Build an ArticleCandidate from a RawItem.

        Args:
            raw_item: Parsed feed entry
            source: Source the entry came from

        Returns:
            Candidate without category or image

        Raises:
            ItemParseError: If the title is empty after cleaning or the link
                is not a usable URL
        """
        title = truncate(strip_markup(raw_item.title), self.max_title_length)
        if not title:
            raise ItemParseError("Title is empty after cleaning", field_name="title",
                                 context={"link": raw_item.link})

        try:
            original_url = URLValidator.validate_article_url(raw_item.link)
        except ValidationError as e:
            raise ItemParseError(f"Unusable article link: {raw_item.link}", field_name="link",
                                 context={"reason": e.message})

        description = strip_markup(raw_item.description) or strip_markup(raw_item.content)
        description = truncate(description, self.max_description_length)

        author = strip_markup(raw_item.author)[:255] or None

        return ArticleCandidate(
            title=title,
            slug=self.make_slug(title),
            description=description,
            author=author,
            source_id=source.id,
            source_name=source.name,
            source_url=source.url,
            published_at=raw_item.published_at,
            original_url=original_url,
            dedup_key=(raw_item.guid or original_url).strip(),
        )

    def make_slug(self, title: str) -> str:
        return f"{base_slug(title, self.max_slug_length)}-{self.suffix_factory()}"
