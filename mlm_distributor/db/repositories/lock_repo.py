"""
Repository for lease-based cycle locks.

A lock is a row in ``cycle_locks`` keyed by name. Acquisition is a single
``BEGIN IMMEDIATE`` transaction that first clears an expired lease and then
inserts the caller's row if the name is free, so at most one holder exists
at a time across processes sharing the database file. A running holder
renews its lease before each write it guards.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from mlm_distributor.db.repositories.base import BaseRepository
from mlm_distributor.utils.time_utils import format_ts, utcnow

logger = logging.getLogger(__name__)


class CycleLockRepository(BaseRepository):
    """Read/write access to ``cycle_locks``."""

    def try_acquire(
        self,
        name: str,
        holder: str,
        lease_seconds: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Attempt to take lock ``name`` for ``holder``.

        Returns:
            ``True`` if ``holder`` now owns the lock.
        """
        now = now or utcnow()
        with self.atomic(immediate=True):
            expired = self.execute(
                "DELETE FROM cycle_locks WHERE name = ? AND expires_at <= ?;",
                (name, format_ts(now)),
            )
            if expired.rowcount:
                logger.warning("Cycle lock '%s': took over an expired lease", name)
            self.execute(
                """
                INSERT OR IGNORE INTO cycle_locks (name, holder, acquired_at, expires_at)
                VALUES (?, ?, ?, ?);
                """,
                (
                    name,
                    holder,
                    format_ts(now),
                    format_ts(now + timedelta(seconds=lease_seconds)),
                ),
            )
            row = self.fetchone("SELECT holder FROM cycle_locks WHERE name = ?;", (name,))
        return row is not None and row["holder"] == holder

    def renew(
        self,
        name: str,
        holder: str,
        lease_seconds: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Push the expiry of ``holder``'s lease to ``now + lease_seconds``.

        A lease that ran past its expiry is still renewed while nobody has
        taken it over, since takeover deletes the row.

        Returns:
            ``False`` if ``holder`` no longer owns lock ``name``.
        """
        now = now or utcnow()
        with self.atomic(immediate=True):
            cur = self.execute(
                "UPDATE cycle_locks SET expires_at = ? WHERE name = ? AND holder = ?;",
                (format_ts(now + timedelta(seconds=lease_seconds)), name, holder),
            )
        return cur.rowcount > 0

    def release(self, name: str, holder: str) -> bool:
        """Drop lock ``name`` if ``holder`` still owns it. Returns whether a row was removed."""
        with self.atomic():
            cur = self.execute(
                "DELETE FROM cycle_locks WHERE name = ? AND holder = ?;",
                (name, holder),
            )
        return cur.rowcount > 0

    def current_holder(self, name: str) -> Optional[str]:
        row = self.fetchone("SELECT holder FROM cycle_locks WHERE name = ?;", (name,))
        return row["holder"] if row else None
