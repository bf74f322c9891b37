"""
Refresh Lock
============

Cross-process mutual exclusion for refresh cycles, stored in the shared
SQLite database.

Acquisition is a single conditional upsert: the row is inserted when
absent and overwritten only when the existing holder's lease has expired.
A holder that dies without releasing blocks others for at most one TTL.

Usage:
    store = RefreshLockStore(db)
    token = store.try_acquire(ttl_seconds=300)
    if token is None:
        return  # another cycle is running
    try:
        ...
    finally:
        store.release(token)
"""

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from ..database.connection import DatabaseConnection
from ..database.models import RefreshLock, utc_now
from ..utils.exceptions import LockError, ErrorCode
from ..utils.logging import get_logger_for_component

DEFAULT_LOCK_NAME = "scheduled_refresh"


def _epoch(moment: datetime) -> float:
    return moment.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class RefreshLockStore:
    """TTL lease over a single refresh_locks row."""

    def __init__(self, db_connection: DatabaseConnection, name: str = DEFAULT_LOCK_NAME,
                 clock: Callable[[], datetime] = utc_now):
        """Initialize lock store.

        Args:
            db_connection: Database connection manager
            name: Lock row name
            clock: Returns the current UTC datetime
        """
        self.db = db_connection
        self.name = name
        self.clock = clock
        self.logger = get_logger_for_component("refresh_lock")

    def try_acquire(self, ttl_seconds: int) -> Optional[str]:
        """Take the lock if it is free or expired.

        Args:
            ttl_seconds: Lease length

        Returns:
            Holder token, or None if another unexpired holder exists

        Raises:
            LockError: If the lock store itself fails
        """
        if ttl_seconds <= 0:
            raise LockError("ttl_seconds must be positive", lock_name=self.name,
                            error_code=ErrorCode.VALIDATION_OUT_OF_RANGE, recoverable=False)

        token = uuid.uuid4().hex
        now = _epoch(self.clock())
        expires_at = now + ttl_seconds

        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO refresh_locks (name, holder_token, acquired_at, ttl_seconds, expires_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        holder_token = excluded.holder_token,
                        acquired_at = excluded.acquired_at,
                        ttl_seconds = excluded.ttl_seconds,
                        expires_at = excluded.expires_at
                    WHERE refresh_locks.expires_at <= ?
                    """,
                    (self.name, token, now, ttl_seconds, expires_at, now),
                )
                row = conn.execute(
                    "SELECT holder_token, expires_at FROM refresh_locks WHERE name = ?",
                    (self.name,),
                ).fetchone()
        except sqlite3.Error as e:
            raise LockError(f"Lock acquisition failed: {e}", lock_name=self.name) from e

        if row is not None and row["holder_token"] == token:
            self.logger.info(
                f"Acquired lock '{self.name}' for {ttl_seconds}s",
                extra={"lock_name": self.name},
            )
            return token

        held_until = _from_epoch(row["expires_at"]) if row is not None else None
        self.logger.info(
            f"Lock '{self.name}' is held until {held_until.isoformat() if held_until else 'unknown'}",
            extra={"lock_name": self.name},
        )
        return None

    def release(self, token: str) -> bool:
        """Release the lock if ``token`` still holds it.

        Returns:
            True if a row was deleted; False if the lease had already been
            taken over or released

        Raises:
            LockError: If the lock store itself fails
        """
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM refresh_locks WHERE name = ? AND holder_token = ?",
                    (self.name, token),
                )
                released = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise LockError(f"Lock release failed: {e}", lock_name=self.name) from e

        if released:
            self.logger.info(f"Released lock '{self.name}'", extra={"lock_name": self.name})
        else:
            self.logger.warning(
                f"Lock '{self.name}' was not held by this token at release",
                extra={"lock_name": self.name},
            )
        return released

    def current(self) -> Optional[RefreshLock]:
        """The lock row, expired or not, or None."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM refresh_locks WHERE name = ?", (self.name,)
                ).fetchone()
        except sqlite3.Error as e:
            raise LockError(f"Lock lookup failed: {e}", lock_name=self.name) from e

        if row is None:
            return None
        return RefreshLock(
            name=row["name"],
            holder_token=row["holder_token"],
            acquired_at=_from_epoch(row["acquired_at"]),
            ttl_seconds=row["ttl_seconds"],
            expires_at=_from_epoch(row["expires_at"]),
        )

    def is_expired(self) -> bool:
        """True when no lock exists or the existing one has expired."""
        lock = self.current()
        return lock is None or lock.is_expired(self.clock())
