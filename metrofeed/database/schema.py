"""
MetroFeed Database Schema
=========================

SQLite schema for the ingestion pipeline:
- sources: feed configuration plus fetch status
- categories: keyword tables for classification
- articles: append-only article store, deduplicated by URL and dedup key
- daily_source_stats: per-source, per-UTC-day counters used for quotas
- refresh_locks: cross-process lock rows with TTL expiry
- refresh_state: key/value bookkeeping for the scheduled refresh
"""

import sqlite3
import logging
from contextlib import closing
from pathlib import Path

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {
    "sources",
    "categories",
    "articles",
    "daily_source_stats",
    "refresh_locks",
    "refresh_state",
}


class DatabaseSchema:
    """Database schema manager for the MetroFeed SQLite database."""

    def __init__(self, db_path: str = "data/metrofeed.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables. Safe to run repeatedly."""
        with closing(sqlite3.connect(self.db_path)) as conn:
            self._create_sources_table(conn)
            self._create_categories_table(conn)
            self._create_articles_table(conn)
            self._create_daily_source_stats_table(conn)
            self._create_refresh_locks_table(conn)
            self._create_refresh_state_table(conn)

            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_sources_table(self, conn: sqlite3.Connection) -> None:
        """Create sources table for feed configuration and status."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sources (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                url TEXT UNIQUE NOT NULL,
                category TEXT NOT NULL DEFAULT 'general',
                enabled BOOLEAN NOT NULL DEFAULT TRUE,
                priority INTEGER NOT NULL DEFAULT 1,
                batch_size INTEGER NOT NULL DEFAULT 20 CHECK (batch_size > 0),
                daily_quota INTEGER NOT NULL DEFAULT 100 CHECK (daily_quota >= 0),
                error_count INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                last_fetched_at TIMESTAMP,
                fetch_count INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_categories_table(self, conn: sqlite3.Connection) -> None:
        """Create categories table holding keyword lists."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                keywords TEXT NOT NULL DEFAULT '[]',  -- JSON array of keywords
                sort_order INTEGER NOT NULL DEFAULT 0,
                is_catch_all BOOLEAN NOT NULL DEFAULT FALSE,
                enabled BOOLEAN NOT NULL DEFAULT TRUE
            )
        """
        )

    def _create_articles_table(self, conn: sqlite3.Connection) -> None:
        """Create the append-only articles table."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS articles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                slug TEXT UNIQUE NOT NULL,
                description TEXT,
                author TEXT,
                source_id TEXT NOT NULL,
                source_name TEXT NOT NULL,
                source_url TEXT,
                category_id TEXT NOT NULL,
                published_at TIMESTAMP NOT NULL,
                image_url TEXT,
                original_url TEXT UNIQUE NOT NULL,
                dedup_key TEXT UNIQUE NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

    def _create_daily_source_stats_table(self, conn: sqlite3.Connection) -> None:
        """Create per-source daily counters."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS daily_source_stats (
                source_id TEXT NOT NULL,
                date_tracked TEXT NOT NULL,  -- UTC calendar day, YYYY-MM-DD
                articles_fetched INTEGER NOT NULL DEFAULT 0,
                articles_stored INTEGER NOT NULL DEFAULT 0,
                successful_fetches INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (source_id, date_tracked)
            )
        """
        )

    def _create_refresh_locks_table(self, conn: sqlite3.Connection) -> None:
        """Create lock table; times are epoch seconds."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS refresh_locks (
                name TEXT PRIMARY KEY,
                holder_token TEXT NOT NULL,
                acquired_at REAL NOT NULL,
                ttl_seconds INTEGER NOT NULL CHECK (ttl_seconds > 0),
                expires_at REAL NOT NULL
            )
        """
        )

    def _create_refresh_state_table(self, conn: sqlite3.Connection) -> None:
        """Create key/value refresh bookkeeping table."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS refresh_state (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create database indexes for the hot query paths."""
        indexes = [
            # Source indexes
            "CREATE INDEX IF NOT EXISTS idx_sources_enabled_priority ON sources(enabled, priority DESC)",
            # Category indexes
            "CREATE INDEX IF NOT EXISTS idx_categories_sort ON categories(sort_order)",
            # Article indexes
            "CREATE INDEX IF NOT EXISTS idx_articles_source ON articles(source_id)",
            "CREATE INDEX IF NOT EXISTS idx_articles_category ON articles(category_id)",
            "CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at)",
            "CREATE INDEX IF NOT EXISTS idx_articles_created ON articles(created_at)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def verify_schema(self) -> bool:
        """Verify all expected tables exist."""
        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}

                missing = EXPECTED_TABLES - tables
                if missing:
                    logger.error(f"Missing tables: {sorted(missing)}")
                    return False

                logger.info("Database schema verification passed")
                return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False
