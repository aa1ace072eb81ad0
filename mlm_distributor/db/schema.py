"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. reports             (no FKs)
  2. report_recommends   (→ reports)
  3. report_distributes  (→ reports)
  4. report_conflicts    (→ reports)
  5. cycle_locks         (no FKs)

``reports.submitted_at`` is added by migration ``0002``.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_REPORTS = """
CREATE TABLE IF NOT EXISTS reports (
    report_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    xdr         TEXT    NOT NULL,
    hash        TEXT,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_reports_created
    ON reports(created_at DESC);

CREATE INDEX IF NOT EXISTS idx_reports_pending
    ON reports(report_id)
    WHERE hash IS NULL;
"""

_DDL_REPORT_RECOMMENDS = """
CREATE TABLE IF NOT EXISTS report_recommends (
    report_id          INTEGER NOT NULL REFERENCES reports(report_id) ON DELETE CASCADE,
    recommender        TEXT    NOT NULL,
    recommended        TEXT    NOT NULL,
    recommended_mtlap  INTEGER NOT NULL,
    PRIMARY KEY (report_id, recommender, recommended)
);
"""

_DDL_REPORT_DISTRIBUTES = """
CREATE TABLE IF NOT EXISTS report_distributes (
    report_id    INTEGER NOT NULL REFERENCES reports(report_id) ON DELETE CASCADE,
    recommender  TEXT    NOT NULL,
    asset        TEXT    NOT NULL,
    amount       TEXT    NOT NULL,
    PRIMARY KEY (report_id, recommender, asset)
);
"""

_DDL_REPORT_CONFLICTS = """
CREATE TABLE IF NOT EXISTS report_conflicts (
    report_id    INTEGER NOT NULL REFERENCES reports(report_id) ON DELETE CASCADE,
    recommender  TEXT    NOT NULL,
    recommended  TEXT    NOT NULL,
    PRIMARY KEY (report_id, recommender, recommended)
);
"""

_DDL_CYCLE_LOCKS = """
CREATE TABLE IF NOT EXISTS cycle_locks (
    name         TEXT    NOT NULL PRIMARY KEY,
    holder       TEXT    NOT NULL,
    acquired_at  TEXT    NOT NULL,
    expires_at   TEXT    NOT NULL
);
"""

_ALL_DDL = [
    _DDL_REPORTS,
    _DDL_REPORT_RECOMMENDS,
    _DDL_REPORT_DISTRIBUTES,
    _DDL_REPORT_CONFLICTS,
    _DDL_CYCLE_LOCKS,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "reports",
    "report_recommends",
    "report_distributes",
    "report_conflicts",
    "cycle_locks",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent — safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
