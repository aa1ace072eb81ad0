"""
SQLite connection management.

``get_connection()`` is a context manager that:
  - Enables foreign key enforcement (OFF by default in SQLite).
  - Enables WAL journal mode so report reads do not block the cycle lock.
  - Sets a busy timeout so overlapping cycles wait instead of failing.
  - Uses ``sqlite3.Row`` factory so rows behave like dicts.
  - Commits on clean exit, rolls back on exception.

``begin_immediate()`` starts a write transaction up front; the cycle lock
uses it so two processes cannot both read a free lease and then race to
write it.

Usage::

    from mlm_distributor.db.connection import get_connection

    with get_connection("data/db/mlm.db") as conn:
        ReportRepository(conn).get_pending_report()
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    The database file (and any parent directories) are created if they do
    not already exist.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.
        wal_mode: If ``True``, enable WAL journal mode.
        busy_timeout_ms: Milliseconds to wait on a locked database before
            raising ``OperationalError``.

    Yields:
        An open, configured ``sqlite3.Connection``.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")

        if wal_mode:
            conn.execute("PRAGMA journal_mode = WAL;")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()


def begin_immediate(conn: sqlite3.Connection) -> None:
    """Open a write transaction now rather than at the first write.

    Any transaction already open on ``conn`` is committed first. Another
    writer holding the database makes this wait up to the busy timeout and
    then raise ``sqlite3.OperationalError``.
    """
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE;")
