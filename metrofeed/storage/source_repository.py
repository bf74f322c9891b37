"""
Source Repository
=================

Source configuration rows, fetch status updates and per-day source
statistics.

The error counter is cumulative: failures increment it and nothing ever
resets it. A successful fetch clears ``last_error`` only.
"""

from datetime import datetime
from typing import Callable, List, Optional

from ..database.models import Source, DailySourceStat, utc_now, utc_day
from ..database.connection import DatabaseConnection
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode

MAX_ERROR_MESSAGE_LENGTH = 500


class SourceRepository:
    """Repository for sources and their daily statistics."""

    def __init__(self, db_connection: DatabaseConnection, clock: Callable[[], datetime] = utc_now):
        """Initialize source repository.

        Args:
            db_connection: Database connection manager
            clock: Returns the current UTC datetime
        """
        self.db = db_connection
        self.clock = clock
        self.logger = get_logger_for_component("source_repository")

    def get_enabled_sources(self) -> List[Source]:
        """Enabled sources, highest priority first."""
        with self.db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM sources WHERE enabled = 1 ORDER BY priority DESC, id ASC"
            ).fetchall()
            return [Source.from_row(row) for row in rows]

    def get_all_sources(self) -> List[Source]:
        with self.db.get_connection() as conn:
            rows = conn.execute("SELECT * FROM sources ORDER BY priority DESC, id ASC").fetchall()
            return [Source.from_row(row) for row in rows]

    def get_source(self, source_id: str) -> Optional[Source]:
        """Get a source by id, or None."""
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
            return Source.from_row(row) if row else None

    def upsert_source(self, source: Source) -> None:
        """Insert a source or update its configuration fields.

        Status fields (error_count, last_error, last_fetched_at,
        fetch_count) are left untouched on update.
        """
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO sources (id, name, url, category, enabled, priority,
                                         batch_size, daily_quota)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name = excluded.name,
                        url = excluded.url,
                        category = excluded.category,
                        enabled = excluded.enabled,
                        priority = excluded.priority,
                        batch_size = excluded.batch_size,
                        daily_quota = excluded.daily_quota
                    """,
                    (source.id, source.name, source.url, source.category, source.enabled,
                     source.priority, source.batch_size, source.daily_quota),
                )
        except Exception as e:
            raise DatabaseError(
                f"Failed to save source {source.id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def record_fetch_success(self, source_id: str, items_fetched: int = 0) -> bool:
        """Record a successful fetch.

        Sets last_fetched_at, increments fetch_count, clears last_error and
        bumps today's articles_fetched / successful_fetches.

        Returns:
            True if the source row exists
        """
        now = self.clock()
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE sources
                SET last_fetched_at = ?, fetch_count = fetch_count + 1, last_error = NULL
                WHERE id = ?
                """,
                (now.isoformat(), source_id),
            )
            conn.execute(
                """
                INSERT INTO daily_source_stats (source_id, date_tracked, articles_fetched, successful_fetches)
                VALUES (?, ?, ?, 1)
                ON CONFLICT(source_id, date_tracked) DO UPDATE SET
                    articles_fetched = articles_fetched + excluded.articles_fetched,
                    successful_fetches = successful_fetches + 1
                """,
                (source_id, utc_day(now), items_fetched),
            )
            updated = cursor.rowcount > 0

        if not updated:
            self.logger.warning(f"No source row for {source_id}; status not recorded",
                              extra={"source_id": source_id})
        return updated

    def record_fetch_failure(self, source_id: str, message: str) -> bool:
        """Record a failed fetch: error_count + 1 and last_error set.

        Returns:
            True if the source row exists
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE sources SET error_count = error_count + 1, last_error = ? WHERE id = ?",
                ((message or "unknown error")[:MAX_ERROR_MESSAGE_LENGTH], source_id),
            )
            updated = cursor.rowcount > 0

        if not updated:
            self.logger.warning(f"No source row for {source_id}; failure not recorded",
                              extra={"source_id": source_id})
        return updated

    def get_daily_stats(self, source_id: str, day: Optional[str] = None) -> DailySourceStat:
        """Counters for one source and UTC day (default today); zeros if absent."""
        day = day or utc_day(self.clock())
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM daily_source_stats WHERE source_id = ? AND date_tracked = ?",
                (source_id, day),
            ).fetchone()

        if row:
            return DailySourceStat(**dict(row))
        return DailySourceStat(source_id=source_id, date_tracked=day)
