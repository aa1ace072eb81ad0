"""
Tests for ReportRepository using in-memory SQLite.

What we test
------------
1. create_report writes header and all row sets; reads return them in order.
2. Amounts survive as exact 7-decimal values.
3. get_reports orders newest first; get_pending_report finds hash-less reports.
4. A failing row rolls the whole report back.
5. set_report_hash stamps hash + submitted_at; unknown IDs raise.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from mlm_distributor.db.repositories.report_repo import ReportRepository
from mlm_distributor.errors import PersistenceError
from mlm_distributor.models.report import ReportConflict, ReportDistribute, ReportRecommend

_TS = datetime(2026, 10, 19, 6, 0, 0, tzinfo=timezone.utc)


# ── Helpers ────────────────────────────────────────────────────────────────────

def _rows():
    recommends = [
        ReportRecommend(recommender="GREC1", recommended="GUSER2", recommended_mtlap=20),
        ReportRecommend(recommender="GREC1", recommended="GUSER1", recommended_mtlap=10),
    ]
    distributes = [
        ReportDistribute(recommender="GREC1", asset="LABR", amount=Decimal("33.3333333")),
        ReportDistribute(recommender="GREC2", asset="LABR", amount=Decimal("0.0000001")),
    ]
    conflicts = [
        ReportConflict(recommender="GREC1", recommended="GUSER9"),
        ReportConflict(recommender="GREC2", recommended="GUSER9"),
    ]
    return recommends, distributes, conflicts


def _create(repo: ReportRepository, xdr: str = "AAAA") -> int:
    recommends, distributes, conflicts = _rows()
    return repo.create_report(xdr, recommends, distributes, conflicts, created_at=_TS)


def _count(conn, table: str) -> int:
    return conn.execute(f"SELECT COUNT(*) FROM {table};").fetchone()[0]


# ── Tests ──────────────────────────────────────────────────────────────────────

class TestReportRepository:
    def test_create_and_read_back(self, in_memory_db):
        repo = ReportRepository(in_memory_db)
        report_id = _create(repo)
        recommends, distributes, conflicts = _rows()

        report = repo.get_report(report_id)
        assert report is not None
        assert report.xdr == "AAAA"
        assert report.hash is None
        assert report.is_pending
        assert report.created_at == _TS
        assert report.submitted_at is None

        assert repo.get_report_recommends(report_id) == recommends
        assert repo.get_report_distributes(report_id) == distributes
        assert repo.get_report_conflicts(report_id) == conflicts

    def test_amount_stored_as_fixed_text(self, in_memory_db):
        repo = ReportRepository(in_memory_db)
        report_id = _create(repo)

        raw = in_memory_db.execute(
            "SELECT amount FROM report_distributes WHERE report_id = ? ORDER BY rowid;",
            (report_id,),
        ).fetchall()
        assert [r["amount"] for r in raw] == ["33.3333333", "0.0000001"]

    def test_get_reports_newest_first(self, in_memory_db):
        repo = ReportRepository(in_memory_db)
        first = _create(repo, xdr="FIRST")
        second = _create(repo, xdr="SECOND")

        assert [r.report_id for r in repo.get_reports(limit=5)] == [second, first]
        assert [r.xdr for r in repo.get_reports()] == ["SECOND"]

    def test_pending_report(self, in_memory_db):
        repo = ReportRepository(in_memory_db)
        assert repo.get_pending_report() is None

        report_id = _create(repo)
        assert repo.get_pending_report().report_id == report_id

        repo.set_report_hash(report_id, "d" * 64, submitted_at=_TS)
        assert repo.get_pending_report() is None

    def test_set_report_hash(self, in_memory_db):
        repo = ReportRepository(in_memory_db)
        report_id = _create(repo)

        repo.set_report_hash(report_id, "d" * 64, submitted_at=_TS)

        report = repo.get_report(report_id)
        assert report.hash == "d" * 64
        assert report.submitted_at == _TS
        assert not report.is_pending

    def test_set_hash_unknown_report(self, in_memory_db):
        with pytest.raises(PersistenceError):
            ReportRepository(in_memory_db).set_report_hash(999, "d" * 64)

    def test_failing_row_rolls_back_everything(self, in_memory_db):
        repo = ReportRepository(in_memory_db)
        recommends, distributes, conflicts = _rows()
        duplicated = distributes + [distributes[0]]

        with pytest.raises(PersistenceError):
            repo.create_report("AAAA", recommends, duplicated, conflicts, created_at=_TS)

        for table in ("reports", "report_recommends", "report_distributes", "report_conflicts"):
            assert _count(in_memory_db, table) == 0

    def test_rollback_keeps_earlier_reports(self, in_memory_db):
        repo = ReportRepository(in_memory_db)
        kept = _create(repo)
        recommends, distributes, conflicts = _rows()

        with pytest.raises(PersistenceError):
            repo.create_report("BBBB", recommends, distributes, conflicts + [conflicts[0]])

        assert [r.report_id for r in repo.get_reports(limit=10)] == [kept]
        assert _count(in_memory_db, "report_distributes") == 2
