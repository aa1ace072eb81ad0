"""
Ledger asset constants and amount formatting.

MTLAP is the aggregation token (recommendation points), LABR the reward
token paid out each cycle, EURMTL the default auxiliary token swapped into
LABR.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

AMOUNT_QUANTUM = Decimal("0.0000001")   # 7 decimal places, one stroop
STROOPS_PER_UNIT = 10_000_000


@dataclass(frozen=True)
class AssetRef:
    """Credit asset identified by code + issuer."""

    code: str
    issuer: str

    @property
    def canonical(self) -> str:
        """``CODE:ISSUER`` as used by Horizon query parameters."""
        return f"{self.code}:{self.issuer}"

    @property
    def asset_type(self) -> str:
        return "credit_alphanum4" if len(self.code) <= 4 else "credit_alphanum12"


MTLAP = AssetRef("MTLAP", "GCNVDZIHGX473FEI7IXCUAEXUJ4BGCKEMHF36VYP5EMS7PX2QBLAMTLA")
LABR = AssetRef("LABR", "GA7I6SGUHQ26ARNCD376WXV5WSE7VJRX6OEFNFCEGRLFGZWQIV73LABR")
EURMTL = AssetRef("EURMTL", "GACKTN5DAZGWXRWB2WLM6OPBDHAMT6SJNGLJZPQMEZBUR4JUGBX2UK7V")


def truncate_amount(value: Decimal) -> Decimal:
    """Truncate ``value`` toward zero to ledger precision."""
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)


def format_amount(value: Decimal) -> str:
    """Render an amount the way the ledger expects it (``%.7f``)."""
    return f"{truncate_amount(value):.7f}"
