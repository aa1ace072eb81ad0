"""
Recommendation graph builder.

Turns the full set of MTLAP holders into recommenders, their endorsed
accounts and the conflict map:

  1. Index accounts by ID.
  2. Keep accounts that carry at least one ``RecommendToMTLA*`` data entry.
  3. Drop recommenders holding less than the minimum MTLAP balance (their
     claims are ignored entirely, not recorded as conflicts).
  4. Decode each entry's base64 value into a target account ID; targets that
     are not MTLAP holders are skipped.
  5. First claim wins the edge; every later claim on the same target records
     a conflict listing all claimants, and the target is excluded from
     payouts for the cycle.
  6. Each target's score is its MTLAP balance truncated to whole units.

Processing order is canonical (accounts by ID, entries by data key), so the
conflict map does not depend on the order Horizon pages were returned in.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from mlm_distributor.ledger.assets import MTLAP, AssetRef
from mlm_distributor.ledger.horizon import AccountRecord
from mlm_distributor.models.graph import RecommendationGraph, RecommendedAccount, Recommender

if TYPE_CHECKING:
    from mlm_distributor.config import DistributionConfig

logger = logging.getLogger(__name__)


class RecommendationGraphBuilder:
    """Builds a ``RecommendationGraph`` from enumerated ledger accounts.

    Args:
        recommend_tag: Data-entry key prefix marking one recommendation.
        min_recommender_balance: Minimum aggregation-token balance a
            recommender needs for its claims to count.
        aggregation_asset: Token whose balance is the recommendation score.
    """

    def __init__(
        self,
        recommend_tag: str = "RecommendToMTLA",
        min_recommender_balance: int = 4,
        aggregation_asset: AssetRef = MTLAP,
    ) -> None:
        self.recommend_tag = recommend_tag
        self.min_recommender_balance = Decimal(min_recommender_balance)
        self.aggregation_asset = aggregation_asset

    @classmethod
    def from_config(cls, config: "DistributionConfig") -> "RecommendationGraphBuilder":
        return cls(
            recommend_tag=config.recommend_tag,
            min_recommender_balance=config.min_recommender_balance,
        )

    def build(self, accounts: Iterable[AccountRecord]) -> RecommendationGraph:
        ordered = sorted(accounts, key=lambda a: a.account_id)
        by_id = {acc.account_id: acc for acc in ordered}

        recommenders: list[Recommender] = []
        conflicts: dict[str, list[str]] = {}
        first_claimant: dict[str, str] = {}
        total_score = 0
        skipped_ineligible = 0

        for account in ordered:
            claims = [
                account.data[key]
                for key in sorted(account.data)
                if key.startswith(self.recommend_tag)
            ]
            if not claims:
                continue

            if self._balance(account) < self.min_recommender_balance:
                skipped_ineligible += 1
                continue

            recommended: list[RecommendedAccount] = []
            claimed_here: set[str] = set()
            for raw_value in claims:
                target = by_id.get(decode_reference(raw_value))
                if target is None or target.account_id in claimed_here:
                    continue
                claimed_here.add(target.account_id)

                if target.account_id in first_claimant:
                    conflicts.setdefault(
                        target.account_id, [first_claimant[target.account_id]]
                    ).append(account.account_id)
                else:
                    first_claimant[target.account_id] = account.account_id

                score = int(self._balance(target))
                total_score += score
                recommended.append(
                    RecommendedAccount(account_id=target.account_id, score=score)
                )

            recommenders.append(
                Recommender(account_id=account.account_id, recommended=recommended)
            )

        logger.info(
            "Graph built | recommenders=%d conflicts=%d ineligible=%d",
            len(recommenders), len(conflicts), skipped_ineligible,
        )
        return RecommendationGraph(
            recommenders=recommenders,
            conflicts=conflicts,
            total_recommended_score=total_score,
        )

    def _balance(self, account: AccountRecord) -> Decimal:
        try:
            return Decimal(account.credit_balance(self.aggregation_asset))
        except InvalidOperation:
            return Decimal(0)


def decode_reference(value: str) -> str:
    """Decode a base64 data-entry value into an account ID ("" when malformed)."""
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return ""
