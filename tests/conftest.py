"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for MetroFeed tests.

- File-backed temporary databases (the refresh lock and quota logic rely on
  real SQLite transactions, so there is no in-memory shortcut)
- A scriptable fake HTTP client standing in for HttpClient
- A controllable clock
"""

import asyncio
import pytest
import tempfile
import os
import sys
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import aiohttp

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "metrofeed_tests"
os.environ["METROFEED_DATABASE__PATH"] = str(_TEST_DIR / "metrofeed_env.db")
os.environ["METROFEED_LOGGING__FILE_PATH"] = ""
os.environ["METROFEED_LOGGING__CONSOLE_LOGGING"] = "false"


# ============================================================================
# Test Doubles
# ============================================================================


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, moment: datetime):
        self.now = moment

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeHttpClient:
    """In-memory stand-in for HttpClient.

    Routes are keyed by (method, url). A route maps to an HttpResponse or
    to an exception instance that is raised. Unrouted GETs raise a
    connection error; unrouted HEADs answer 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Union[object, BaseException]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.posted: List[dict] = []

    def route(self, method: str, url: str, status: int = 200, text: str = "",
              headers: Optional[Dict[str, str]] = None, error: Optional[BaseException] = None) -> None:
        from metrofeed.utils.http_client import HttpResponse

        if error is not None:
            self.routes[(method, url)] = error
        else:
            self.routes[(method, url)] = HttpResponse(status=status, text=text,
                                                      headers=headers or {}, url=url)

    def feed(self, url: str, xml: str) -> None:
        self.route("GET", url, text=xml, headers={"Content-Type": "application/rss+xml"})

    def image(self, url: str, status: int = 200, content_type: str = "image/jpeg") -> None:
        self.route("HEAD", url, status=status, headers={"Content-Type": content_type})

    def calls_for(self, method: str) -> List[str]:
        return [url for m, url in self.calls if m == method]

    async def _dispatch(self, method: str, url: str):
        from metrofeed.utils.http_client import HttpResponse

        self.calls.append((method, url))
        # Yield like real I/O so concurrent coroutines interleave
        await asyncio.sleep(0)
        response = self.routes.get((method, url))
        if response is None:
            if method == "HEAD":
                return HttpResponse(status=404, url=url)
            raise aiohttp.ClientConnectionError(f"No route for {method} {url}")
        if isinstance(response, BaseException):
            raise response
        return response

    async def get(self, url, timeout=None, headers=None):
        return await self._dispatch("GET", url)

    async def head(self, url, timeout=None):
        return await self._dispatch("HEAD", url)

    async def post(self, url, data=None, timeout=None, headers=None):
        self.posted.append({"url": url, "data": data, "headers": headers or {}})
        return await self._dispatch("POST", url)


def build_rss(items: List[Dict[str, str]], title: str = "Test Feed") -> str:
    """Render a minimal RSS 2.0 document.

    Each item dict may carry title, link, guid, description, pubDate and
    image (rendered as media:content).
    """
    parts = []
    for item in items:
        fields = []
        if "title" in item:
            fields.append(f"<title>{item['title']}</title>")
        if "link" in item:
            fields.append(f"<link>{item['link']}</link>")
        if "guid" in item:
            fields.append(f'<guid isPermaLink="false">{item["guid"]}</guid>')
        if "description" in item:
            fields.append(f"<description><![CDATA[{item['description']}]]></description>")
        if "pubDate" in item:
            fields.append(f"<pubDate>{item['pubDate']}</pubDate>")
        if "image" in item:
            fields.append(f'<media:content url="{item["image"]}" medium="image" />')
        parts.append("<item>" + "".join(fields) + "</item>")

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/"'
        ' xmlns:content="http://purl.org/rss/1.0/modules/content/">'
        f"<channel><title>{title}</title><link>https://example.com/</link>"
        "<description>Test</description>"
        + "".join(parts)
        + "</channel></rss>"
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def temp_db(tmp_path):
    """Fresh database file with the full schema."""
    from metrofeed.database.schema import DatabaseSchema

    db_path = tmp_path / "metrofeed_test.db"
    DatabaseSchema(str(db_path)).create_tables()
    yield str(db_path)


@pytest.fixture
def db_connection(temp_db):
    """Create a database connection manager for testing."""
    from metrofeed.database.connection import DatabaseConnection

    connection = DatabaseConnection(temp_db, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def settings(temp_db):
    """Production-profile settings pointing at the test database."""
    from metrofeed.config.settings import MetroFeedSettings, DatabaseSettings, LoggingSettings

    return MetroFeedSettings(
        database=DatabaseSettings(path=temp_db),
        logging=LoggingSettings(file_path=None, console_logging=False),
    )


@pytest.fixture
def clock():
    """Clock fixed at midday UTC."""
    return FixedClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def http_client():
    return FakeHttpClient()


@pytest.fixture
def rss_builder():
    return build_rss


@pytest.fixture
def sample_source():
    from metrofeed.database.models import Source

    return Source(
        id="herald-zimbabwe",
        name="Herald Zimbabwe",
        url="https://www.herald.co.zw/feed/",
        category="general",
        priority=5,
        batch_size=20,
        daily_quota=100,
    )
