"""
Repository for distribution reports and their row sets.

A report and its recommend / distribute / conflict rows are only ever
written together by ``create_report()``; the one permitted update afterwards
is ``set_report_hash()``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Optional

from mlm_distributor.db.repositories.base import BaseRepository
from mlm_distributor.errors import PersistenceError
from mlm_distributor.models.report import (
    Report,
    ReportConflict,
    ReportDistribute,
    ReportRecommend,
)
from mlm_distributor.utils.time_utils import format_ts, parse_ts, utcnow

logger = logging.getLogger(__name__)


class ReportRepository(BaseRepository):
    """Read/write access to ``reports`` and the ``report_*`` row tables."""

    # ── Reads ──────────────────────────────────────────────────────────────────

    def get_reports(self, limit: int = 1) -> list[Report]:
        """Fetch the ``limit`` most recent reports, newest first."""
        rows = self.fetchall(
            "SELECT * FROM reports ORDER BY report_id DESC LIMIT ?;",
            (limit,),
        )
        return [_row_to_report(r) for r in rows]

    def get_report(self, report_id: int) -> Optional[Report]:
        row = self.fetchone("SELECT * FROM reports WHERE report_id = ?;", (report_id,))
        return _row_to_report(row) if row else None

    def get_pending_report(self) -> Optional[Report]:
        """Return the most recent report without a submission hash, if any."""
        row = self.fetchone(
            """
            SELECT * FROM reports
            WHERE hash IS NULL
            ORDER BY report_id DESC LIMIT 1;
            """
        )
        return _row_to_report(row) if row else None

    def get_report_recommends(self, report_id: int) -> list[ReportRecommend]:
        rows = self.fetchall(
            """
            SELECT recommender, recommended, recommended_mtlap
            FROM report_recommends WHERE report_id = ?
            ORDER BY rowid;
            """,
            (report_id,),
        )
        return [
            ReportRecommend(
                recommender=r["recommender"],
                recommended=r["recommended"],
                recommended_mtlap=r["recommended_mtlap"],
            )
            for r in rows
        ]

    def get_report_distributes(self, report_id: int) -> list[ReportDistribute]:
        rows = self.fetchall(
            """
            SELECT recommender, asset, amount
            FROM report_distributes WHERE report_id = ?
            ORDER BY rowid;
            """,
            (report_id,),
        )
        return [
            ReportDistribute(
                recommender=r["recommender"],
                asset=r["asset"],
                amount=Decimal(r["amount"]),
            )
            for r in rows
        ]

    def get_report_conflicts(self, report_id: int) -> list[ReportConflict]:
        rows = self.fetchall(
            """
            SELECT recommender, recommended
            FROM report_conflicts WHERE report_id = ?
            ORDER BY rowid;
            """,
            (report_id,),
        )
        return [
            ReportConflict(recommender=r["recommender"], recommended=r["recommended"])
            for r in rows
        ]

    # ── Writes ─────────────────────────────────────────────────────────────────

    def create_report(
        self,
        xdr: str,
        recommends: Sequence[ReportRecommend],
        distributes: Sequence[ReportDistribute],
        conflicts: Sequence[ReportConflict],
        created_at: Optional[datetime] = None,
    ) -> int:
        """Persist a report header and all of its rows in one transaction.

        Returns:
            The new ``report_id``.

        Raises:
            PersistenceError: If any statement fails. Nothing is left behind.
        """
        try:
            with self.atomic():
                self.execute(
                    "INSERT INTO reports (xdr, created_at) VALUES (?, ?);",
                    (xdr, format_ts(created_at or utcnow())),
                )
                report_id = self.last_insert_rowid()

                self.executemany(
                    """
                    INSERT INTO report_recommends (
                        report_id, recommender, recommended, recommended_mtlap
                    ) VALUES (?, ?, ?, ?);
                    """,
                    [
                        (report_id, r.recommender, r.recommended, r.recommended_mtlap)
                        for r in recommends
                    ],
                )
                self.executemany(
                    """
                    INSERT INTO report_distributes (
                        report_id, recommender, asset, amount
                    ) VALUES (?, ?, ?, ?);
                    """,
                    [
                        (report_id, d.recommender, d.asset, f"{d.amount:.7f}")
                        for d in distributes
                    ],
                )
                self.executemany(
                    """
                    INSERT INTO report_conflicts (
                        report_id, recommender, recommended
                    ) VALUES (?, ?, ?);
                    """,
                    [(report_id, c.recommender, c.recommended) for c in conflicts],
                )
        except sqlite3.Error as exc:
            logger.error("Report transaction rolled back: %s", exc)
            raise PersistenceError(f"create report: {exc}") from exc

        logger.info(
            "Report %d created | recommends=%d distributes=%d conflicts=%d",
            report_id, len(recommends), len(distributes), len(conflicts),
        )
        return report_id

    def set_report_hash(
        self,
        report_id: int,
        tx_hash: str,
        submitted_at: Optional[datetime] = None,
    ) -> None:
        """Record the submission hash of a report.

        Raises:
            PersistenceError: If the report does not exist or the write fails.
        """
        try:
            with self.atomic():
                cur = self.execute(
                    "UPDATE reports SET hash = ?, submitted_at = ? WHERE report_id = ?;",
                    (tx_hash, format_ts(submitted_at or utcnow()), report_id),
                )
                if cur.rowcount == 0:
                    raise PersistenceError(f"report {report_id} not found")
        except sqlite3.Error as exc:
            raise PersistenceError(f"set report hash: {exc}") from exc


# ── Private helpers ────────────────────────────────────────────────────────────

def _row_to_report(row: sqlite3.Row) -> Report:
    keys = row.keys()
    submitted_at = row["submitted_at"] if "submitted_at" in keys else None
    return Report(
        report_id=row["report_id"],
        xdr=row["xdr"],
        hash=row["hash"],
        created_at=parse_ts(row["created_at"]),
        submitted_at=parse_ts(submitted_at) if submitted_at else None,
    )
