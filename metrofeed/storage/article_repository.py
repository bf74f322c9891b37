"""
Article Repository
==================

Append-only article store with atomic check-then-insert. Every insert
and its daily counter increment happen in one ``BEGIN IMMEDIATE``
transaction, so concurrent writers can neither duplicate an article nor
push a source past its daily quota.
"""

import sqlite3
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ..database.models import Article, ArticleCandidate, StoreResult, utc_now, utc_day
from ..database.connection import DatabaseConnection
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, PersistenceError, ErrorCode


class ArticleRepository:
    """Repository for article storage and lookup."""

    def __init__(self, db_connection: DatabaseConnection, clock: Callable[[], datetime] = utc_now):
        """Initialize article repository.

        Args:
            db_connection: Database connection manager
            clock: Returns the current UTC datetime
        """
        self.db = db_connection
        self.clock = clock
        self.logger = get_logger_for_component("article_repository")

    def store_if_new(
        self,
        candidate: ArticleCandidate,
        valid_category_ids: Iterable[str],
        default_category_id: str,
        daily_quota: int,
    ) -> StoreResult:
        """Insert an article unless it already exists or the quota is spent.

        Args:
            candidate: Normalized, classified article
            valid_category_ids: Category ids of the current table
            default_category_id: Substitute for an unknown category
            daily_quota: Source's quota for today

        Returns:
            StoreResult with ``inserted`` and a reason

        Raises:
            PersistenceError: On a constraint violation (lost race)
            DatabaseError: On any other database failure
        """
        now = self.clock()
        day = utc_day(now)

        category_id = candidate.category_id
        if category_id not in set(valid_category_ids):
            self.logger.warning(
                f"Unknown category '{category_id}', using '{default_category_id}'",
                extra={"source_id": candidate.source_id, "dedup_key": candidate.dedup_key},
            )
            category_id = default_category_id

        try:
            with self.db.transaction() as conn:
                existing = conn.execute(
                    "SELECT id FROM articles WHERE original_url = ? OR dedup_key = ? LIMIT 1",
                    (candidate.original_url, candidate.dedup_key),
                ).fetchone()
                if existing:
                    return StoreResult(inserted=False, reason=StoreResult.DUPLICATE,
                                       category_id=category_id)

                stored_today = self._stored_on(conn, candidate.source_id, day)
                if stored_today >= daily_quota:
                    return StoreResult(inserted=False, reason=StoreResult.QUOTA_EXHAUSTED,
                                       category_id=category_id)

                conn.execute(
                    """
                    INSERT INTO articles (title, slug, description, author, source_id,
                                          source_name, source_url, category_id, published_at,
                                          image_url, original_url, dedup_key, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        candidate.title, candidate.slug, candidate.description, candidate.author,
                        candidate.source_id, candidate.source_name, candidate.source_url,
                        category_id, candidate.published_at.isoformat(), candidate.image_url,
                        candidate.original_url, candidate.dedup_key, now.isoformat(),
                    ),
                )
                conn.execute(
                    """
                    INSERT INTO daily_source_stats (source_id, date_tracked, articles_stored)
                    VALUES (?, ?, 1)
                    ON CONFLICT(source_id, date_tracked)
                    DO UPDATE SET articles_stored = articles_stored + 1
                    """,
                    (candidate.source_id, day),
                )

            self.logger.debug(
                f"Stored article: {candidate.slug}",
                extra={"source_id": candidate.source_id, "category_id": category_id},
            )
            return StoreResult(inserted=True, reason=StoreResult.INSERTED, category_id=category_id)

        except sqlite3.IntegrityError as e:
            raise PersistenceError(
                f"Constraint violation storing article: {e}",
                dedup_key=candidate.dedup_key,
                context={"source_id": candidate.source_id, "original_url": candidate.original_url},
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to store article: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

    def store_batch(
        self,
        candidates: List[ArticleCandidate],
        valid_category_ids: Iterable[str],
        default_category_id: str,
        daily_quota: int,
    ) -> int:
        """Store candidates one transaction each.

        Constraint violations are logged and skipped. Stops at the first
        quota rejection.

        Returns:
            Number of newly inserted articles
        """
        valid_ids = set(valid_category_ids)
        inserted = 0

        for candidate in candidates:
            try:
                result = self.store_if_new(candidate, valid_ids, default_category_id, daily_quota)
            except PersistenceError as e:
                self.logger.warning(
                    f"Article not stored: {e.message}",
                    extra={"source_id": candidate.source_id, "dedup_key": candidate.dedup_key},
                )
                continue

            if result.inserted:
                inserted += 1
            elif result.reason == StoreResult.QUOTA_EXHAUSTED:
                self.logger.info(
                    f"Daily quota of {daily_quota} reached",
                    extra={"source_id": candidate.source_id},
                )
                break

        return inserted

    def find_by_dedup_key_or_url(self, dedup_key: str, original_url: str) -> Optional[Article]:
        """Get an article by dedup key or original URL."""
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM articles WHERE original_url = ? OR dedup_key = ? LIMIT 1",
                (original_url, dedup_key),
            ).fetchone()
            return Article.from_row(row) if row else None

    def exists(self, dedup_key: str, original_url: str) -> bool:
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM articles WHERE original_url = ? OR dedup_key = ? LIMIT 1",
                (original_url, dedup_key),
            ).fetchone()
            return row is not None

    def count_stored_today(self, source_id: str, day: Optional[str] = None) -> int:
        """Articles stored for a source on a UTC day (default today).

        Args:
            source_id: Source identifier
            day: ``YYYY-MM-DD``; defaults to today per the clock

        Returns:
            Stored count, 0 when no row exists
        """
        with self.db.get_connection() as conn:
            return self._stored_on(conn, source_id, day or utc_day(self.clock()))

    @staticmethod
    def _stored_on(conn: sqlite3.Connection, source_id: str, day: str) -> int:
        row = conn.execute(
            "SELECT articles_stored FROM daily_source_stats WHERE source_id = ? AND date_tracked = ?",
            (source_id, day),
        ).fetchone()
        return row[0] if row else 0

    def get_article_count(self, source_id: Optional[str] = None) -> int:
        """Total stored articles, optionally for one source."""
        with self.db.get_connection() as conn:
            if source_id:
                row = conn.execute("SELECT COUNT(*) FROM articles WHERE source_id = ?", (source_id,)).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM articles").fetchone()
            return row[0]

    def get_recent_articles(self, limit: int = 20, category_id: Optional[str] = None) -> List[Article]:
        """Most recently published articles, newest first."""
        query = "SELECT * FROM articles"
        params: tuple = ()
        if category_id:
            query += " WHERE category_id = ?"
            params = (category_id,)
        query += " ORDER BY published_at DESC, id DESC LIMIT ?"

        with self.db.get_connection() as conn:
            rows = conn.execute(query, params + (limit,)).fetchall()
            return [Article.from_row(row) for row in rows]
