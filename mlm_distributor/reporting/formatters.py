"""
Plain-text formatters for CLI output.

All formatters accept result objects from the distribution workflow or the
swap engine and return multi-line strings suitable for ``typer.echo()``.

No third-party dependencies (no ``rich``, no ``colorama``).

Account IDs are abbreviated to ``GABCD...WXYZ1`` (first five, last five
characters) everywhere except the report list, which shows hashes instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from mlm_distributor.models.distribution import DistributeResult
from mlm_distributor.models.report import Report
from mlm_distributor.models.swap import PriceExceededAlert, SwapSummary
from mlm_distributor.utils.time_utils import date_stamp


def account_abbr(account_id: str) -> str:
    """``GABCD...VWXYZ`` for IDs longer than ten characters."""
    if len(account_id) <= 10:
        return account_id
    return f"{account_id[:5]}...{account_id[-5:]}"


def _fmt(amount: Decimal, places: int = 7) -> str:
    return f"{amount:.{places}f}"


# ── Distribution ──────────────────────────────────────────────────────────────


def format_distribution_summary(result: DistributeResult) -> str:
    """Format a payout plan.

    The header says whether the plan is a preview (no report written) or a
    stored report, and notes when it was resumed or submitted::

        === Distribution Report #12 ===
          Date:            2026-10-19
          Amount:          1250.0000000 LABR
          Recommenders:    3
          ...

    Args:
        result: Plan returned by ``DistributionWorkflow.run()``.

    Returns:
        Multi-line string.
    """
    lines: list[str] = [""]
    if result.report_id is None:
        lines.append("=== Distribution Preview (not persisted) ===")
    else:
        lines.append(f"=== Distribution Report #{result.report_id} ===")

    lines.append(f"  Date:            {date_stamp(result.created_at)}")
    lines.append(f"  Amount:          {_fmt(result.amount)} LABR")
    lines.append(f"  Recommenders:    {len(result.distributes)}")
    lines.append(f"  Recommends:      {len(result.recommends)}")
    if not result.resumed:
        lines.append(f"  New:             {result.recommended_new_count}")
        lines.append(f"  Level-ups:       {result.recommended_level_up_count}")
        lines.append(f"  Per unit:        {_fmt(result.amount_per_unit)} LABR")
    else:
        lines.append("  Resumed:         yes (pending report reused)")
    if result.tx_hash:
        lines.append(f"  Tx hash:         {result.tx_hash}")

    if result.conflicts:
        lines.append("")
        lines.append(f"  [CONFLICTS] {len(result.conflicts)} claim(s) excluded")
        for c in result.conflicts:
            lines.append(f"    {account_abbr(c.recommender)} -> {account_abbr(c.recommended)}")

    if result.missing_trustlines:
        lines.append("")
        lines.append(f"  [WARN] No trustline to {result.missing_trustlines[0].asset}")
        for mt in result.missing_trustlines:
            lines.append(f"    {account_abbr(mt.account_id)}")

    lines.append("")
    lines.append("  Distribution:")
    if not result.distributes:
        lines.append("    (nobody earned a reward this cycle)")
    else:
        for d in result.distributes:
            lines.append(f"    {account_abbr(d.recommender):<15} {_fmt(d.amount, 2):>14} {d.asset}")
        lines.append(f"    {'Total':<15} {_fmt(result.total_distributed, 2):>14}")

    return "\n".join(lines)


# ── Swaps ─────────────────────────────────────────────────────────────────────


def format_swap_report(summary: SwapSummary) -> str:
    """Format successful swaps and per-token errors ("" when there is nothing to show)."""
    if not summary.swaps and not summary.errors:
        return ""

    lines: list[str] = ["", "=== Token Swap Report ==="]
    for s in summary.swaps:
        lines.append(
            f"  {_fmt(s.from_amount, 2)} {s.from_asset} -> {_fmt(s.to_amount, 2)} {s.to_asset}"
            f"  (min {_fmt(s.min_amount, 2)})"
        )
        lines.append(f"    Price: 1 {s.to_asset} = {_fmt(s.price, 2)} {s.from_asset}")
        lines.append(f"    TX:    {account_abbr(s.tx_hash)}")

    if summary.swaps:
        lines.append(
            f"  Total: {_fmt(summary.total_from, 2)} -> {_fmt(summary.total_to, 2)}"
        )

    for e in summary.errors:
        lines.append(f"  [ERROR] {e.asset} at {e.stage}: {e.error}")

    return "\n".join(lines)


def format_price_alert(alerts: Sequence[PriceExceededAlert], reward_code: str = "LABR") -> str:
    """Format price-threshold alerts ("" when there are none)."""
    if not alerts:
        return ""

    lines: list[str] = ["", "=== Price Alert ==="]
    for a in alerts:
        lines.append(f"  Cannot swap {_fmt(a.from_amount, 2)} {a.from_asset}")
        lines.append(f"    Current price: 1 {reward_code} = {_fmt(a.price, 2)} {a.from_asset}")
        lines.append(f"    Threshold:     {_fmt(a.threshold, 2)} {a.from_asset}")
    return "\n".join(lines)


# ── Report list ───────────────────────────────────────────────────────────────


def format_report_list(reports: Sequence[Report]) -> str:
    """One row per report, newest first, with its submission state."""
    lines: list[str] = ["", "=== Reports ==="]
    if not reports:
        lines.append("  (no reports yet, run 'report create' first)")
        return "\n".join(lines)

    lines.append(f"  {'ID':>5}  {'Created':<20}  {'State':<9}  Hash")
    lines.append("  " + "-" * 60)
    for r in reports:
        state = "pending" if r.is_pending else "submitted"
        lines.append(
            f"  {r.report_id:>5}  {r.created_at.strftime('%Y-%m-%d %H:%M:%S'):<20}  "
            f"{state:<9}  {r.hash or '-'}"
        )
    return "\n".join(lines)
