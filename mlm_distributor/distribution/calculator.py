"""
Incremental payout calculation — pure function, no I/O.

Pass 1 counts units over every non-conflicted edge: the full score when the
edge has no baseline entry, otherwise the positive part of
``score - baseline``. ``amount_per_unit = pool / units`` (0 without units).

Pass 2 gives each recommender the units of its own edges and pays
``floor(units * pool / total_units)`` at 7-decimal precision. The floor is
taken in integer stroops, so every payout is an exact multiple of 1e-7 and
the payouts never sum to more than the pool.

Conflicted edges contribute no units in either pass and are not counted as
new or levelled up. They are returned as ``ReportConflict`` rows (one per
claimant) for operator review and still get a recommend row, so the next
cycle treats their current score as the baseline.
"""

from __future__ import annotations

import decimal
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Optional

from mlm_distributor.ledger.assets import LABR, STROOPS_PER_UNIT
from mlm_distributor.models.distribution import DistributeResult, RecommendDelta
from mlm_distributor.models.graph import Baseline, RecommendationGraph, RecommendedAccount
from mlm_distributor.models.report import ReportConflict, ReportDistribute, ReportRecommend
from mlm_distributor.utils.time_utils import utcnow

_PRECISION = 50


def calculate_distribution(
    baseline: Baseline,
    pool_amount: Decimal,
    graph: RecommendationGraph,
    asset: str = LABR.code,
    created_at: Optional[datetime] = None,
) -> DistributeResult:
    """Compute the payout plan for one cycle.

    Args:
        baseline: recommender → recommended → score from the previous report
            (empty when there is none).
        pool_amount: Reward amount available this cycle.
        graph: Current recommendation graph.
        asset: Reward asset code written on every payout row.
        created_at: Timestamp for the plan (defaults to now).

    Returns:
        ``DistributeResult`` with payouts, counters, deltas, recommend rows
        and conflict rows filled in.
    """
    with decimal.localcontext() as ctx:
        ctx.prec = _PRECISION

        total_units = sum(
            unit_contribution(baseline, rec.account_id, ra)
            for rec in graph.recommenders
            for ra in rec.recommended
            if not graph.is_conflicted(ra.account_id)
        )
        amount_per_unit = (
            pool_amount / Decimal(total_units) if total_units > 0 else Decimal(0)
        )

        result = DistributeResult(
            created_at=created_at or utcnow(),
            amount=pool_amount,
            amount_per_unit=amount_per_unit,
            conflicts=[
                ReportConflict(recommender=claimant, recommended=recommended)
                for recommended, claimants in graph.conflicts.items()
                for claimant in claimants
            ],
        )

        for rec in graph.recommenders:
            units = 0

            for ra in rec.recommended:
                row = ReportRecommend(
                    recommender=rec.account_id,
                    recommended=ra.account_id,
                    recommended_mtlap=ra.score,
                )
                if graph.is_conflicted(ra.account_id):
                    result.recommends.append(row)
                    continue

                prior = baseline.get(rec.account_id, {}).get(ra.account_id)
                if prior is None:
                    result.recommended_new_count += 1

                delta = ra.score - (prior or 0)
                if delta > 0:
                    units += delta
                    result.recommended_level_up_count += 1
                    result.recommend_deltas.append(
                        RecommendDelta(
                            recommender=rec.account_id,
                            recommended=ra.account_id,
                            delta=delta,
                        )
                    )

                result.recommends.append(row)

            payout = _truncated_share(units, total_units, pool_amount)
            if payout > 0:
                result.distributes.append(
                    ReportDistribute(recommender=rec.account_id, asset=asset, amount=payout)
                )

    return result


def unit_contribution(baseline: Baseline, recommender: str, recommended: RecommendedAccount) -> int:
    """Units one edge adds this cycle."""
    prior = baseline.get(recommender, {}).get(recommended.account_id)
    if prior is None:
        return recommended.score
    return max(0, recommended.score - prior)


def _truncated_share(units: int, total_units: int, pool_amount: Decimal) -> Decimal:
    if units <= 0 or total_units <= 0:
        return Decimal(0)
    scaled = (Decimal(units) * pool_amount * STROOPS_PER_UNIT).to_integral_value(
        rounding=ROUND_FLOOR
    )
    stroops = int(scaled) // total_units
    return Decimal(stroops).scaleb(-7)
