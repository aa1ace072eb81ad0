"""
Persisted report models.

A ``Report`` stores the unsigned transfer envelope (base64 XDR) built for one
cycle. Its rows (``ReportRecommend``, ``ReportDistribute`` and
``ReportConflict``) are written in the same transaction as the header.

``hash`` is the only late-bound field: it is set once the envelope has been
signed and accepted by the ledger. A report with ``hash = None`` is
*pending* and must be resubmitted rather than recomputed.

Amounts are ``Decimal`` with at most 7 fractional digits (the ledger's
precision) and are stored as text.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Report(BaseModel):
    """Report header.

    Attributes:
        report_id: Auto-assigned DB PK; ``None`` before insertion.
        xdr: Unsigned transaction envelope (base64 XDR).
        hash: Ledger transaction hash once submitted, else ``None``.
        created_at: UTC datetime the report was built.
        submitted_at: UTC datetime the hash was recorded.
    """

    model_config = ConfigDict(frozen=True)

    report_id: Optional[int] = None
    xdr: str
    hash: Optional[str] = None
    created_at: datetime
    submitted_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.hash is None


class ReportRecommend(BaseModel):
    """Score of one recommender → recommended edge at report time."""

    model_config = ConfigDict(frozen=True)

    recommender: str
    recommended: str
    recommended_mtlap: int


class ReportDistribute(BaseModel):
    """Payout to one recommender."""

    model_config = ConfigDict(frozen=True)

    recommender: str
    asset: str
    amount: Decimal

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"amount must be non-negative, got {v}.")
        if v != v.quantize(Decimal("0.0000001")):
            raise ValueError(f"amount has more than 7 decimal places: {v}.")
        return v


class ReportConflict(BaseModel):
    """One claimant of a conflicted recommended account."""

    model_config = ConfigDict(frozen=True)

    recommender: str
    recommended: str
