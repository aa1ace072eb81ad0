"""
Distribution cycle orchestration.

The ``DistributionWorkflow`` runs one reward cycle as a resumable sequence,
holding the exclusive cycle lock for the whole of it:

  Step 1 — Lock:        Acquire the ``cycle_guard`` lease (released on every exit).
  Step 2 — Resume:      If the latest report was never submitted, reuse its
                        envelope and rows instead of recomputing (persisting
                        runs only; dry runs always compute fresh).
  Step 3 — Baseline:    Load recommend rows of the latest report.
  Step 4 — Pool:        Reward balance of the operating account / pool divisor.
  Step 5 — Graph:       Enumerate MTLAP holders and build the graph.
  Step 6 — Calculate:   Pure payout calculation.
  Step 7 — Trustlines:  Warn about payout recipients without a LABR trustline.
  Step 8 — Persist:     Build the unsigned envelope, renew the lease and
                        write the report header + rows in one transaction.
  Step 9 — Submit:      Optionally renew the lease, sign, submit and record
                        the hash.

Failure handling
----------------
- Zero pool:               ``NoBalanceError``; nothing is written.
- Empty payout list:       ``NoDistributesError`` when persisting; a dry run
                           returns the empty plan.
- Trustline lookup error:  ``TrustlineCheckError`` naming the recipient.
- Report write error:      ``PersistenceError``; the transaction is rolled back.
- Lease taken over:        ``CycleLockLost`` before the report write or the
                           submission; nothing further is written.
- Rejected submission:     ``SubmissionError``; the report stays pending and
                           the next run resumes it.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from mlm_distributor.config import AppConfig, require_ledger_credentials
from mlm_distributor.db.locking import CycleLease, cycle_guard
from mlm_distributor.db.repositories.report_repo import ReportRepository
from mlm_distributor.distribution.calculator import calculate_distribution
from mlm_distributor.distribution.graph import RecommendationGraphBuilder
from mlm_distributor.errors import LedgerError, NoBalanceError, NoDistributesError, TrustlineCheckError
from mlm_distributor.ledger.assets import LABR, MTLAP, truncate_amount
from mlm_distributor.ledger.horizon import HorizonClient
from mlm_distributor.ledger.transactions import build_payment_envelope, sign_envelope
from mlm_distributor.models.distribution import CycleOptions, DistributeResult, MissingTrustline
from mlm_distributor.models.graph import Baseline, RecommendationGraph
from mlm_distributor.models.report import Report
from mlm_distributor.utils.time_utils import date_stamp, utcnow

logger = logging.getLogger(__name__)


class DistributionWorkflow:
    """Runs distribution cycles against one ledger and one report database.

    Args:
        config: Loaded application config.
        ledger: Horizon client (any object with the same methods in tests).
        conn:   Open connection to the report database.
        clock:  Source of "now" for report timestamps and memos.
    """

    def __init__(
        self,
        config: AppConfig,
        ledger: HorizonClient,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config  = config
        self.ledger  = ledger
        self.conn    = conn
        self.clock   = clock
        self.reports = ReportRepository(conn)
        self.builder = RecommendationGraphBuilder.from_config(config.distribution)

    def run(self, options: CycleOptions = CycleOptions()) -> DistributeResult:
        """Execute one cycle under the exclusive cycle lock.

        Returns:
            The payout plan; ``report_id`` is set when a report was written or
            resumed, ``tx_hash`` when it was submitted.
        """
        require_ledger_credentials(self.config, need_seed=options.submit)
        lock = self.config.lock

        with cycle_guard(
            self.conn,
            lock.name,
            lease_seconds=lock.lease_seconds,
            wait_timeout_s=lock.wait_timeout_s,
            poll_interval_s=lock.poll_interval_s,
        ) as lease:
            pending = self.reports.get_pending_report() if options.persist_report else None
            if pending is not None:
                logger.info("Resuming pending report %d", pending.report_id)
                result = self._resume(pending)
                if self._should_check_trustlines(options):
                    self._check_trustlines(result)
            else:
                result = self._compute(options, lease)

            if options.submit:
                lease.renew()
                self._submit(result)

        logger.info(
            "Cycle done | report=%s resumed=%s distributes=%d total=%s hash=%s",
            result.report_id, result.resumed, len(result.distributes),
            result.total_distributed, result.tx_hash,
        )
        return result

    # ── Fresh cycle ────────────────────────────────────────────────────────────

    def _compute(self, options: CycleOptions, lease: CycleLease) -> DistributeResult:
        baseline = self._load_baseline()
        pool = self._pool_amount()
        graph = self._fetch_graph()

        result = calculate_distribution(
            baseline, pool, graph, asset=LABR.code, created_at=self.clock()
        )
        result.source_address = self.config.stellar.address
        logger.info(
            "Calculated | pool=%s per_unit=%s new=%d level_up=%d distributes=%d conflicts=%d",
            pool, result.amount_per_unit, result.recommended_new_count,
            result.recommended_level_up_count, len(result.distributes), len(result.conflicts),
        )

        if self._should_check_trustlines(options):
            self._check_trustlines(result)

        if not options.persist_report:
            return result

        if not result.distributes:
            raise NoDistributesError()

        result.xdr = self._build_envelope(result)
        lease.renew()
        result.report_id = self.reports.create_report(
            xdr=result.xdr,
            recommends=result.recommends,
            distributes=result.distributes,
            conflicts=result.conflicts,
            created_at=result.created_at,
        )
        return result

    def _load_baseline(self) -> Baseline:
        latest = self.reports.get_reports(limit=1)
        if not latest:
            logger.info("No previous report; every edge counts as new")
            return {}

        baseline: Baseline = {}
        for row in self.reports.get_report_recommends(latest[0].report_id):
            baseline.setdefault(row.recommender, {})[row.recommended] = row.recommended_mtlap
        logger.debug("Baseline loaded from report %d", latest[0].report_id)
        return baseline

    def _pool_amount(self) -> Decimal:
        raw = self.ledger.balance(self.config.stellar.address, LABR)
        pool = truncate_amount(Decimal(raw) / self.config.distribution.pool_divisor)
        if pool <= 0:
            raise NoBalanceError()
        return pool

    def _fetch_graph(self) -> RecommendationGraph:
        return self.builder.build(self.ledger.accounts_for_asset(MTLAP))

    def _build_envelope(self, result: DistributeResult) -> str:
        stellar = self.config.stellar
        source = self.ledger.account_detail(stellar.address)
        return build_payment_envelope(
            source=source,
            distributes=result.distributes,
            issuer=LABR.issuer,
            memo=f"{self.config.distribution.memo_prefix} {date_stamp(result.created_at)}",
            network_passphrase=stellar.network_passphrase,
            base_fee=stellar.base_fee,
        )

    # ── Pending report ─────────────────────────────────────────────────────────

    def _resume(self, report: Report) -> DistributeResult:
        result = DistributeResult(
            created_at=report.created_at,
            recommends=self.reports.get_report_recommends(report.report_id),
            distributes=self.reports.get_report_distributes(report.report_id),
            conflicts=self.reports.get_report_conflicts(report.report_id),
            xdr=report.xdr,
            report_id=report.report_id,
            source_address=self.config.stellar.address,
            resumed=True,
        )
        result.amount = result.total_distributed
        return result

    # ── Trustlines and submission ─────────────────────────────────────────────

    def _should_check_trustlines(self, options: CycleOptions) -> bool:
        return options.check_trustlines and self.config.distribution.check_trustlines

    def _check_trustlines(self, result: DistributeResult) -> None:
        for row in result.distributes:
            try:
                trusted = self.ledger.has_trustline(row.recommender, LABR)
            except LedgerError as exc:
                raise TrustlineCheckError(row.recommender, exc) from exc
            if not trusted:
                logger.warning("No %s trustline on %s", LABR.code, row.recommender)
                result.missing_trustlines.append(
                    MissingTrustline(account_id=row.recommender, asset=LABR.code)
                )

    def _submit(self, result: DistributeResult) -> None:
        stellar = self.config.stellar
        signed = sign_envelope(result.xdr, stellar.seed, stellar.network_passphrase)
        tx_hash = self.ledger.submit_transaction(signed)
        self.reports.set_report_hash(result.report_id, tx_hash, submitted_at=self.clock())
        result.tx_hash = tx_hash
