"""
Recommendation graph models.

A ``Recommender`` is an account that passed the eligibility gate and carries
one or more ``RecommendToMTLA*`` data entries. Each resolved entry becomes a
``RecommendedAccount`` whose ``score`` is its MTLAP balance truncated to whole
units.

``RecommendationGraph.conflicts`` maps a recommended account to every
recommender that claimed it, in processing order. A conflicted account is
excluded from payout math for the whole cycle but stays listed under each
claimant for audit.

All models are frozen.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


class RecommendedAccount(BaseModel):
    """A single endorsed account and its current score.

    Attributes:
        account_id: Ledger account ID of the endorsed account.
        score: MTLAP balance truncated to an integer (>= 0).
    """

    model_config = ConfigDict(frozen=True)

    account_id: str
    score: int

    @field_validator("score")
    @classmethod
    def validate_score(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"score must be non-negative, got {v}.")
        return v


class Recommender(BaseModel):
    """An eligible recommender and the accounts it endorses."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    recommended: list[RecommendedAccount] = []


class RecommendationGraph(BaseModel):
    """Output of the graph builder for one cycle.

    Attributes:
        recommenders: Eligible recommenders in processing order.
        conflicts: recommended account ID → all claimants, in claim order.
        total_recommended_score: Sum of every resolved edge's score,
            conflicted edges included (informational).
    """

    model_config = ConfigDict(frozen=True)

    recommenders: list[Recommender] = []
    conflicts: dict[str, list[str]] = {}
    total_recommended_score: int = 0

    def is_conflicted(self, account_id: str) -> bool:
        return account_id in self.conflicts


# recommender → recommended → score committed by the previous report
Baseline = dict[str, dict[str, int]]
