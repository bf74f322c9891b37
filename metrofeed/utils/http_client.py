"""
MetroFeed HTTP Client
=====================

Thin wrapper over a shared aiohttp session. Every call takes its own
timeout so a slow image check cannot stall a feed request.

Network failures surface as ``asyncio.TimeoutError`` or
``aiohttp.ClientError``; callers decide the scope of the failure.
"""

import ssl
from dataclasses import dataclass, field
from typing import Dict, Optional, Any

import aiohttp
import certifi

from ..utils.logging import get_logger_for_component


@dataclass
class HttpResponse:
    """Fully-read HTTP response."""

    status: int
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> Optional[str]:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.split(";")[0].strip().lower() or None
        return None


class HttpClient:
    """Shared aiohttp session with per-request timeouts.

    Usage:
        async with HttpClient(settings.http) as client:
            response = await client.get(url, timeout=30)
    """

    FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"

    def __init__(self, http_settings=None, user_agent: Optional[str] = None,
                 default_timeout: Optional[float] = None, max_connections: Optional[int] = None):
        """Initialize HTTP client.

        Args:
            http_settings: HttpSettings section (default from config)
            user_agent: Override for the User-Agent header
            default_timeout: Timeout used when a call passes none
            max_connections: Connection pool limit
        """
        if http_settings is None:
            from ..config.settings import get_settings
            http_settings = get_settings().http

        self.user_agent = user_agent or http_settings.user_agent
        self.default_timeout = default_timeout or http_settings.request_timeout
        self.max_connections = max_connections or http_settings.max_connections
        self.logger = get_logger_for_component("http_client")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def open(self) -> None:
        """Create the underlying session if needed."""
        if self._session is not None and not self._session.closed:
            return

        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_connections,
            limit_per_host=5,
            enable_cleanup_closed=True,
        )

        headers = {
            "User-Agent": self.user_agent,
            "Accept-Encoding": "gzip, deflate",
        }

        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.default_timeout),
            headers=headers,
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            raise RuntimeError("HttpClient used outside of 'async with' or after close()")
        return self._session

    def _timeout(self, timeout: Optional[float]) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=timeout or self.default_timeout)

    async def get(self, url: str, timeout: Optional[float] = None,
                  headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        """GET a URL and read the body as text.

        Args:
            url: Absolute URL
            timeout: Total timeout in seconds
            headers: Extra request headers

        Returns:
            HttpResponse with the decoded body
        """
        request_headers = {"Accept": self.FEED_ACCEPT}
        request_headers.update(headers or {})

        async with self.session.get(url, timeout=self._timeout(timeout),
                                    headers=request_headers) as response:
            text = await response.text(errors="replace")
            self.logger.debug(f"GET {url} -> {response.status}")
            return HttpResponse(
                status=response.status,
                text=text,
                headers=dict(response.headers),
                url=str(response.url),
            )

    async def head(self, url: str, timeout: Optional[float] = None) -> HttpResponse:
        """HEAD a URL. The body is never read."""
        async with self.session.head(url, timeout=self._timeout(timeout),
                                     allow_redirects=True) as response:
            self.logger.debug(f"HEAD {url} -> {response.status}")
            return HttpResponse(
                status=response.status,
                headers=dict(response.headers),
                url=str(response.url),
            )

    async def post(self, url: str, data: Any = None, timeout: Optional[float] = None,
                   headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        """POST form or multipart data and read the body as text."""
        async with self.session.post(url, data=data, timeout=self._timeout(timeout),
                                     headers=headers or {}) as response:
            text = await response.text(errors="replace")
            self.logger.debug(f"POST {url} -> {response.status}")
            return HttpResponse(
                status=response.status,
                text=text,
                headers=dict(response.headers),
                url=str(response.url),
            )
