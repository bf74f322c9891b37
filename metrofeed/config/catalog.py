"""
Source Catalog
==============

Loads the current sources and category table for a refresh cycle.

Rows come from the ``sources`` and ``categories`` tables. When the
database cannot be read, or a table is empty, the built-in defaults below
are used so a cycle can still run.
"""

import json
import sqlite3
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from ..database.connection import DatabaseConnection
from ..database.models import Source, Category, CategoryTable
from ..utils.exceptions import DatabaseError
from ..utils.logging import get_logger_for_component

CATCH_ALL_CATEGORY_ID = "general"

DEFAULT_SOURCES: List[Dict[str, Any]] = [
    {"id": "herald-zimbabwe", "name": "Herald Zimbabwe", "url": "https://www.herald.co.zw/feed/", "category": "general", "priority": 5},
    {"id": "newsday-zimbabwe", "name": "NewsDay Zimbabwe", "url": "https://www.newsday.co.zw/feed/", "category": "general", "priority": 5},
    {"id": "chronicle-zimbabwe", "name": "Chronicle Zimbabwe", "url": "https://www.chronicle.co.zw/feed/", "category": "general", "priority": 5},
    {"id": "zbc-news", "name": "ZBC News", "url": "https://www.zbc.co.zw/feed/", "category": "general", "priority": 4},
    {"id": "business-weekly", "name": "Business Weekly", "url": "https://businessweekly.co.zw/feed/", "category": "economy", "priority": 4},
    {"id": "techzim", "name": "Techzim", "url": "https://www.techzim.co.zw/feed/", "category": "technology", "priority": 4},
    {"id": "the-standard", "name": "The Standard", "url": "https://www.thestandard.co.zw/feed/", "category": "general", "priority": 4},
    {"id": "zimlive", "name": "ZimLive", "url": "https://www.zimlive.com/feed/", "category": "general", "priority": 4},
    {"id": "new-zimbabwe", "name": "New Zimbabwe", "url": "https://www.newzimbabwe.com/feed/", "category": "general", "priority": 4},
    {"id": "263chat", "name": "263Chat", "url": "https://263chat.com/feed/", "category": "general", "priority": 4},
    {"id": "sunday-mail", "name": "Sunday Mail", "url": "https://www.sundaymail.co.zw/feed/", "category": "general", "priority": 3},
]

DEFAULT_CATEGORIES: List[Dict[str, Any]] = [
    {"id": "general", "name": "General", "sort_order": 0, "is_catch_all": True, "keywords": []},
    {
        "id": "politics", "name": "Politics", "sort_order": 1,
        "keywords": [
            "politics", "political", "government", "election", "vote", "parliament",
            "minister", "president", "policy", "legislation", "democracy", "party",
            "campaign", "senate", "governance", "reform", "harare", "zanu-pf",
            "ccc", "mnangagwa", "chamisa",
        ],
    },
    {
        "id": "economy", "name": "Economy", "sort_order": 2,
        "keywords": [
            "economy", "economic", "business", "finance", "financial", "banking",
            "investment", "market", "currency", "inflation", "gdp", "trade",
            "export", "import", "stock", "forex", "dollar", "zig", "rtgs",
            "reserve bank", "budget",
        ],
    },
    {
        "id": "agriculture", "name": "Agriculture & Mining", "sort_order": 3,
        "keywords": [
            "agriculture", "farming", "farmer", "tobacco", "maize", "harvest",
            "livestock", "irrigation", "drought", "mining", "miners", "gold",
            "platinum", "diamonds", "lithium",
        ],
    },
    {
        "id": "technology", "name": "Technology", "sort_order": 4,
        "keywords": [
            "technology", "digital", "innovation", "startup", "internet", "mobile",
            "software", "hardware", "computer", "blockchain", "cryptocurrency",
            "fintech", "ecocash", "econet", "netone", "telecel", "artificial intelligence",
        ],
    },
    {
        "id": "sports", "name": "Sports", "sort_order": 5,
        "keywords": [
            "sports", "football", "soccer", "cricket", "rugby", "tennis", "athletics",
            "olympics", "world cup", "premier league", "warriors", "chevrons",
            "sables", "dynamos", "caps united", "highlanders", "fc platinum",
        ],
    },
    {
        "id": "health", "name": "Health", "sort_order": 6,
        "keywords": [
            "health", "medical", "hospital", "doctor", "medicine", "healthcare",
            "pandemic", "vaccine", "disease", "treatment", "wellness", "clinic",
            "nursing", "pharmacy", "cholera", "malaria",
        ],
    },
    {
        "id": "education", "name": "Education", "sort_order": 7,
        "keywords": [
            "education", "school", "university", "student", "teacher", "learning",
            "academic", "examination", "zimsec", "o level", "a level", "degree",
        ],
    },
    {
        "id": "entertainment", "name": "Entertainment", "sort_order": 8,
        "keywords": [
            "entertainment", "music", "movie", "film", "celebrity", "artist",
            "culture", "theatre", "concert", "festival", "literature", "dancehall",
            "sungura", "gospel",
        ],
    },
    {
        "id": "international", "name": "International", "sort_order": 9,
        "keywords": [
            "international", "world", "global", "foreign", "sadc", "south africa",
            "botswana", "zambia", "malawi", "mozambique", "china", "europe",
            "united states", "united nations",
        ],
    },
]


@dataclass
class CatalogSnapshot:
    """Sources and categories for one cycle."""

    sources: List[Source] = field(default_factory=list)
    categories: CategoryTable = field(default_factory=CategoryTable)
    from_defaults: bool = False

    def enabled_sources(self) -> List[Source]:
        """Enabled sources, highest priority first (stable on ties)."""
        return sorted((s for s in self.sources if s.enabled), key=lambda s: -s.priority)


def default_categories() -> CategoryTable:
    return CategoryTable.build([Category(**c) for c in DEFAULT_CATEGORIES], CATCH_ALL_CATEGORY_ID)


class SourceCatalog:
    """Config store for sources and categories."""

    def __init__(self, db_connection: Optional[DatabaseConnection], settings=None):
        """Initialize catalog.

        Args:
            db_connection: Database connection manager, or None to use defaults
            settings: Application settings (default from config)
        """
        if settings is None:
            from .settings import get_settings
            settings = get_settings()

        self.db = db_connection
        self.settings = settings
        self.logger = get_logger_for_component("catalog")

    def default_sources(self) -> List[Source]:
        processing = self.settings.processing
        return [
            Source(
                batch_size=processing.default_batch_size,
                daily_quota=processing.default_daily_quota,
                **data,
            )
            for data in DEFAULT_SOURCES
        ]

    def load(self) -> CatalogSnapshot:
        """Read sources and categories, falling back to defaults.

        Returns:
            CatalogSnapshot for the current cycle
        """
        if self.db is None:
            return CatalogSnapshot(self._profile_limits(self.default_sources()), default_categories(), True)

        try:
            sources = self._load_sources()
            categories = self._load_categories()
        except (sqlite3.Error, DatabaseError, ValueError) as e:
            self.logger.warning(f"Config store unavailable, using built-in defaults: {e}")
            return CatalogSnapshot(self._profile_limits(self.default_sources()), default_categories(), True)

        from_defaults = False
        if not sources:
            self.logger.warning("No sources configured, seeding built-in defaults")
            sources = self._seed_missing_sources()
            from_defaults = True

        if categories is None:
            self.logger.warning("No categories configured, using built-in defaults")
            categories = default_categories()
            from_defaults = True

        return CatalogSnapshot(self._profile_limits(sources), categories, from_defaults)

    def _seed_missing_sources(self) -> List[Source]:
        """Persist the default sources so their fetch status can be recorded."""
        try:
            with self.db.transaction() as conn:
                self._insert_default_sources(conn)
            sources = self._load_sources()
        except (sqlite3.Error, DatabaseError) as e:
            self.logger.warning(f"Could not seed default sources, status will not be recorded: {e}")
            return self.default_sources()
        return sources or self.default_sources()

    def _load_sources(self) -> List[Source]:
        with self.db.get_connection() as conn:
            rows = conn.execute("SELECT * FROM sources ORDER BY priority DESC, id ASC").fetchall()

        sources = []
        for row in rows:
            try:
                sources.append(Source.from_row(row))
            except ValueError as e:
                self.logger.warning(f"Skipping invalid source row {row['id']}: {e}")
        return sources

    def _load_categories(self) -> Optional[CategoryTable]:
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM categories WHERE enabled = 1 ORDER BY sort_order ASC, rowid ASC"
            ).fetchall()

        if not rows:
            return None

        categories = [Category.from_row(row) for row in rows]
        ids = {c.id for c in categories}
        catch_all = next((c.id for c in categories if c.is_catch_all), None)
        if catch_all is None:
            catch_all = CATCH_ALL_CATEGORY_ID
            if catch_all not in ids:
                categories.append(Category(id=catch_all, name="General", sort_order=-1, is_catch_all=True))
        return CategoryTable.build(categories, catch_all)

    def _profile_limits(self, sources: List[Source]) -> List[Source]:
        """Preview profile caps every source at the profile's batch and quota."""
        if not self.settings.is_preview():
            return sources
        processing = self.settings.processing
        return [
            s.model_copy(update={
                "batch_size": min(s.batch_size, processing.default_batch_size),
                "daily_quota": min(s.daily_quota, processing.default_daily_quota),
            })
            for s in sources
        ]

    def seed_defaults(self, overwrite: bool = False) -> Dict[str, int]:
        """Insert built-in sources and categories.

        Args:
            overwrite: Replace configuration of existing rows

        Returns:
            Counts of rows written per table
        """
        verb = "INSERT OR REPLACE" if overwrite else "INSERT OR IGNORE"

        with self.db.transaction() as conn:
            source_rows = self._insert_default_sources(conn, verb)

            category_rows = 0
            for data in DEFAULT_CATEGORIES:
                cursor = conn.execute(
                    f"""
                    {verb} INTO categories (id, name, keywords, sort_order, is_catch_all, enabled)
                    VALUES (?, ?, ?, ?, ?, 1)
                    """,
                    (data["id"], data["name"], json.dumps(data["keywords"]), data["sort_order"],
                     bool(data.get("is_catch_all", False))),
                )
                category_rows += cursor.rowcount

        self.logger.info(f"Seeded {source_rows} sources and {category_rows} categories")
        return {"sources": source_rows, "categories": category_rows}

    def _insert_default_sources(self, conn, verb: str = "INSERT OR IGNORE") -> int:
        processing = self.settings.processing
        rows = 0
        for data in DEFAULT_SOURCES:
            cursor = conn.execute(
                f"""
                {verb} INTO sources (id, name, url, category, enabled, priority, batch_size, daily_quota)
                VALUES (?, ?, ?, ?, 1, ?, ?, ?)
                """,
                (data["id"], data["name"], data["url"], data["category"], data["priority"],
                 processing.default_batch_size, processing.default_daily_quota),
            )
            rows += cursor.rowcount
        return rows
