"""
MetroFeed Input Validators
==========================

URL validation, normalization and resolution helpers shared by the feed
fetcher and the image extractor.
"""

import re
from urllib.parse import urlparse, urlunparse, urljoin
from typing import Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    # Allowed schemes for feeds, articles and images
    ALLOWED_SCHEMES = {'http', 'https'}

    SUSPICIOUS_PATTERNS = [
        r'^javascript:',
        r'^data:',
        r'^file:',
        r'^ftp:',
    ]

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()
        parsed = urlparse(url)

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http or https",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            path=parsed.path or '/',
            fragment=''
        ))

    @classmethod
    def validate_article_url(cls, url: str) -> str:
        """Validate and normalize an article URL.

        Same rules as feed URLs; the path is kept verbatim so the result can
        be used as a dedup key.
        """
        if url and any(re.search(p, url.strip().lower()) for p in cls.SUSPICIOUS_PATTERNS):
            raise ValidationError(
                "URL uses a disallowed scheme",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )
        return cls.validate_feed_url(url)

    @classmethod
    def is_http_url(cls, url: Optional[str]) -> bool:
        """Check for an absolute http(s) URL with a host."""
        if not url or not isinstance(url, str):
            return False
        parsed = urlparse(url.strip())
        return parsed.scheme.lower() in cls.ALLOWED_SCHEMES and bool(parsed.netloc)

    @classmethod
    def absolutize(cls, candidate: Optional[str], base_url: Optional[str]) -> Optional[str]:
        """Resolve a possibly relative URL against the article's origin.

        ``//host/x`` takes the article's scheme, ``/path`` and bare relative
        paths resolve against the article URL. Returns None when the result
        is not an absolute http(s) URL.
        """
        if not candidate or not isinstance(candidate, str):
            return None

        candidate = candidate.strip()
        if not candidate:
            return None

        if cls.is_http_url(candidate):
            return candidate

        if any(re.search(p, candidate.lower()) for p in cls.SUSPICIOUS_PATTERNS):
            return None

        if not cls.is_http_url(base_url):
            return None

        if candidate.startswith('//'):
            scheme = urlparse(base_url).scheme.lower()
            resolved = f"{scheme}:{candidate}"
        else:
            resolved = urljoin(base_url, candidate)

        return resolved if cls.is_http_url(resolved) else None
