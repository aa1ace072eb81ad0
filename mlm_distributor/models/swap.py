"""
Swap engine result types.

One ``SwapSummary`` per engine run. Each configured token ends up in exactly
one of ``swaps``, ``price_exceeded`` or ``errors`` (or in none of them when
its balance is zero).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class TokenBalance:
    """Positive balance of a swappable token on the operating account."""

    code:    str
    issuer:  str
    balance: Decimal


@dataclass(frozen=True)
class SwapResult:
    """A conversion that was submitted and accepted.

    ``price`` is the effective price of one reward token in source units.
    """

    from_asset:  str
    from_amount: Decimal
    to_asset:    str
    to_amount:   Decimal
    min_amount:  Decimal
    tx_hash:     str
    price:       Decimal


@dataclass(frozen=True)
class PriceExceededAlert:
    """A token skipped because its effective price is above the threshold."""

    from_asset:  str
    from_amount: Decimal
    price:       Decimal
    threshold:   Decimal


@dataclass(frozen=True)
class SwapError:
    """A failure scoped to one token.

    ``stage`` is ``"get_price"`` or ``"swap"``.
    """

    asset: str
    stage: str
    error: str


@dataclass
class SwapSummary:
    """Outcome of one swap engine run; totals cover successful swaps only."""

    swaps:          list[SwapResult]         = field(default_factory=list)
    price_exceeded: list[PriceExceededAlert] = field(default_factory=list)
    errors:         list[SwapError]          = field(default_factory=list)
    total_from:     Decimal                  = Decimal(0)
    total_to:       Decimal                  = Decimal(0)
