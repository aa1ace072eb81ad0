"""Tests for schema creation and migrations."""

from __future__ import annotations

import sqlite3

from mlm_distributor.db.migrations import MIGRATIONS, initialize_database, run_migrations
from mlm_distributor.db.schema import ALL_TABLE_NAMES, apply_schema, get_existing_tables


def _fresh() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def test_all_tables_created(in_memory_db):
    existing = set(get_existing_tables(in_memory_db))
    assert set(ALL_TABLE_NAMES) <= existing
    assert "schema_versions" in existing


def test_apply_schema_idempotent(in_memory_db):
    apply_schema(in_memory_db)
    apply_schema(in_memory_db)
    assert set(ALL_TABLE_NAMES) <= set(get_existing_tables(in_memory_db))


def test_initialize_applies_each_migration_once():
    conn = _fresh()
    assert initialize_database(conn) == len(MIGRATIONS)
    assert run_migrations(conn) == 0
    conn.close()


def test_submitted_at_column_added():
    conn = _fresh()
    initialize_database(conn)
    columns = {row[1] for row in conn.execute("PRAGMA table_info(reports);").fetchall()}
    assert {"report_id", "xdr", "hash", "created_at", "submitted_at"} <= columns
    conn.close()
