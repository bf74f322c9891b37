"""
Refresh State Repository
========================

Key/value bookkeeping for the scheduled refresh: when the last cycle
completed and why the last failed cycle failed.
"""

from datetime import datetime
from typing import Callable, Optional

from ..database.models import utc_now
from ..database.connection import DatabaseConnection
from ..utils.logging import get_logger_for_component

LAST_SUCCESSFUL_RUN = "last_successful_run"
LAST_FAILURE_REASON = "last_failure_reason"
LAST_FAILURE_AT = "last_failure_at"


class RefreshStateRepository:
    """Reads and writes refresh_state rows."""

    def __init__(self, db_connection: DatabaseConnection, clock: Callable[[], datetime] = utc_now):
        self.db = db_connection
        self.clock = clock
        self.logger = get_logger_for_component("refresh_state")

    def _get(self, key: str) -> Optional[str]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT value FROM refresh_state WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

    def _set(self, conn, key: str, value: Optional[str]) -> None:
        conn.execute(
            """
            INSERT INTO refresh_state (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, self.clock().isoformat()),
        )

    def get_last_successful_run(self) -> Optional[datetime]:
        value = self._get(LAST_SUCCESSFUL_RUN)
        return datetime.fromisoformat(value) if value else None

    def set_last_successful_run(self, moment: datetime) -> None:
        with self.db.transaction() as conn:
            self._set(conn, LAST_SUCCESSFUL_RUN, moment.isoformat())

    def record_failure(self, reason: str, moment: Optional[datetime] = None) -> None:
        """Record a failed cycle. last_successful_run is not touched."""
        moment = moment or self.clock()
        with self.db.transaction() as conn:
            self._set(conn, LAST_FAILURE_REASON, reason)
            self._set(conn, LAST_FAILURE_AT, moment.isoformat())

    def get_last_failure(self) -> Optional[dict]:
        reason = self._get(LAST_FAILURE_REASON)
        if reason is None:
            return None
        failed_at = self._get(LAST_FAILURE_AT)
        return {
            "reason": reason,
            "failed_at": datetime.fromisoformat(failed_at) if failed_at else None,
        }

    def is_due(self, interval_seconds: int, now: Optional[datetime] = None) -> bool:
        """Due when never run or ``now - last_successful_run >= interval``."""
        last_run = self.get_last_successful_run()
        if last_run is None:
            return True
        now = now or self.clock()
        return (now - last_run).total_seconds() >= interval_seconds
