"""
Distribution cycle models: options in, payout plan out.

``CycleOptions`` is passed once per ``DistributionWorkflow.run()`` call.
``DistributeResult`` is the mutable payout plan: the calculator fills the
payout fields, the workflow adds the envelope, report ID, trustline warnings
and submission hash as the cycle progresses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator

from mlm_distributor.models.report import ReportConflict, ReportDistribute, ReportRecommend


class RecommendDelta(BaseModel):
    """Positive score increase on one edge since the previous report."""

    model_config = ConfigDict(frozen=True)

    recommender: str
    recommended: str
    delta: int


class MissingTrustline(BaseModel):
    """A payout recipient without a trustline to the reward asset."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    asset: str


class CycleOptions(BaseModel):
    """Per-call workflow options.

    Attributes:
        persist_report: Build the envelope and write the report (or resume a
            pending one). ``False`` is a dry run: nothing is written.
        check_trustlines: Look up every payout recipient's trustline and
            report missing ones as warnings.
        submit: Sign and submit the envelope, then record its hash.
            Requires ``persist_report``.
    """

    model_config = ConfigDict(frozen=True)

    persist_report: bool = True
    check_trustlines: bool = True
    submit: bool = False

    @model_validator(mode="after")
    def validate_submit_requires_report(self) -> "CycleOptions":
        if self.submit and not self.persist_report:
            raise ValueError("submit=True requires persist_report=True.")
        return self


@dataclass
class DistributeResult:
    """Payout plan for one cycle.

    Attributes:
        created_at:                 UTC datetime the plan was built.
        amount:                     Pool amount for this cycle.
        amount_per_unit:            ``amount / total units`` (0 when no units).
        recommended_new_count:      Edges without a baseline entry.
        recommended_level_up_count: Edges with a positive delta.
        conflicts:                  One row per claimant of each conflicted account.
        recommends:                 Current score of every counted edge.
        distributes:                Non-zero payouts, one per recommender.
        recommend_deltas:           Edges with delta > 0.
        missing_trustlines:         Recipients lacking the reward trustline.
        xdr:                        Unsigned transfer envelope ("" on dry runs).
        report_id:                  Persisted report ID, ``None`` on dry runs.
        source_address:             Operating account paying out.
        tx_hash:                    Ledger hash once submitted.
        resumed:                    True when rebuilt from a pending report.
    """

    created_at:                 datetime
    amount:                     Decimal = Decimal(0)
    amount_per_unit:            Decimal = Decimal(0)
    recommended_new_count:      int = 0
    recommended_level_up_count: int = 0
    conflicts:                  list[ReportConflict] = field(default_factory=list)
    recommends:                 list[ReportRecommend] = field(default_factory=list)
    distributes:                list[ReportDistribute] = field(default_factory=list)
    recommend_deltas:           list[RecommendDelta] = field(default_factory=list)
    missing_trustlines:         list[MissingTrustline] = field(default_factory=list)
    xdr:                        str = ""
    report_id:                  Optional[int] = None
    source_address:             str = ""
    tx_hash:                    Optional[str] = None
    resumed:                    bool = False

    @property
    def total_distributed(self) -> Decimal:
        return sum((d.amount for d in self.distributes), Decimal(0))
