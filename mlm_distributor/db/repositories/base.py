"""
Base repository providing shared SQLite execution helpers.

Repositories receive a ``sqlite3.Connection`` at construction time; the
connection is opened and owned by the caller (typically ``get_connection()``).

Design:
  - No ORM — all SQL is explicit and lives in repository methods.
  - Repositories speak Pydantic models, not raw dicts.
  - Multi-statement writes that must land together go through
    ``atomic()``, which commits once or rolls everything back.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Generator, Optional

from mlm_distributor.db.connection import begin_immediate

logger = logging.getLogger(__name__)


class BaseRepository:
    """Shared SQL execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> sqlite3.Cursor:
        """Execute a single SQL statement with ``?`` or ``:name`` placeholders."""
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def executemany(
        self,
        sql: str,
        params_list: list[tuple[Any, ...] | dict[str, Any]],
    ) -> sqlite3.Cursor:
        """Execute a SQL statement for each element in ``params_list``."""
        logger.debug("SQL (many): %s | count: %d", sql.strip(), len(params_list))
        return self.conn.executemany(sql, params_list)

    def fetchone(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> Optional[sqlite3.Row]:
        """Execute a query and return the first row, or ``None``."""
        return self.execute(sql, params).fetchone()

    def fetchall(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> list[sqlite3.Row]:
        """Execute a query and return all rows."""
        return self.execute(sql, params).fetchall()

    def last_insert_rowid(self) -> int:
        """Return the rowid of the last successful INSERT."""
        row = self.fetchone("SELECT last_insert_rowid() AS rowid;")
        assert row is not None
        return int(row["rowid"])

    @contextmanager
    def atomic(self, immediate: bool = False) -> Generator[None, None, None]:
        """Commit the enclosed statements together, or roll all of them back.

        Any transaction already open on the connection is committed first so
        the enclosed block starts clean. With ``immediate=True`` the write
        lock is taken before the first statement runs.
        """
        if immediate:
            begin_immediate(self.conn)
        elif self.conn.in_transaction:
            self.conn.commit()
        try:
            yield
        except BaseException:
            self.conn.rollback()
            raise
        self.conn.commit()
