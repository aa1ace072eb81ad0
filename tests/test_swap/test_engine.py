"""
Tests for mlm_distributor/swap/engine.py.

What we test
------------
1. Price below threshold: one swap with minimum output = 99% of expected.
2. Price above threshold: one alert, no swap, no error.
3. Quote and swap failures are recorded per token; other tokens still swap.
4. Tokens with zero balance are skipped.
5. Failing to read balances aborts the run.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from conftest import OPERATOR, OPERATOR_SEED

from mlm_distributor.config import AppConfig, StellarConfig, SwapConfig, SwapTokenConfig
from mlm_distributor.errors import ConfigError, LedgerError, SubmissionError
from mlm_distributor.ledger.assets import EURMTL, LABR
from mlm_distributor.ledger.horizon import AccountRecord, BalanceLine, PathAsset, PathRecord
from mlm_distributor.swap.engine import SwapEngine

_ENGINE = "mlm_distributor.swap.engine"
_USDM = SwapTokenConfig(code="USDM", issuer="GUSDMISSUER")


# ── Helpers ───────────────────────────────────────────────────────────────────

def _config(tokens=None, threshold: float = 25.0) -> AppConfig:
    swap_kwargs = {"price_threshold": threshold}
    if tokens is not None:
        swap_kwargs["tokens"] = tokens
    return AppConfig(
        stellar=StellarConfig(address=OPERATOR, seed=OPERATOR_SEED),
        swap=SwapConfig(**swap_kwargs),
    )


def _account(**balances: str) -> AccountRecord:
    issuers = {EURMTL.code: EURMTL.issuer, _USDM.code: _USDM.issuer}
    return AccountRecord(
        account_id=OPERATOR,
        sequence=7,
        balances=tuple(
            BalanceLine(
                asset_type="credit_alphanum12" if len(code) > 4 else "credit_alphanum4",
                balance=amount,
                asset_code=code,
                asset_issuer=issuers[code],
            )
            for code, amount in balances.items()
        ),
    )


def _ledger(account: AccountRecord, rates: dict[str, str]) -> MagicMock:
    """Ledger whose path quotes return ``amount * rate`` LABR per source token."""
    ledger = MagicMock()
    ledger.account_detail.return_value = account

    def paths(source, amount, destination):
        assert destination == LABR
        rate = Decimal(rates[source.code])
        return [
            PathRecord(
                source_amount=amount,
                destination_amount=amount * rate,
                path=(PathAsset(asset_type="native"),),
            )
        ]

    ledger.strict_send_paths.side_effect = paths
    ledger.submit_transaction.return_value = "b" * 64
    return ledger


@pytest.fixture
def tx():
    with patch(f"{_ENGINE}.build_path_payment_envelope", return_value="SWAP_XDR") as build, \
         patch(f"{_ENGINE}.sign_envelope", return_value="SIGNED_SWAP") as sign, \
         patch(f"{_ENGINE}.address_from_seed", return_value=OPERATOR):
        yield build, sign


# ── Tests ─────────────────────────────────────────────────────────────────────

class TestPriceGate:
    def test_below_threshold_swaps_with_slippage(self, tx):
        build, sign = tx
        ledger = _ledger(_account(EURMTL="100.0000000"), {"EURMTL": "0.05"})

        summary = SwapEngine(_config(), ledger).execute()

        assert len(summary.swaps) == 1
        swap = summary.swaps[0]
        assert swap.from_asset == "EURMTL"
        assert swap.from_amount == Decimal("100")
        assert swap.to_asset == "LABR"
        assert swap.to_amount == Decimal("5")
        assert swap.min_amount == Decimal("4.95")
        assert swap.price == Decimal("20")
        assert swap.tx_hash == "b" * 64
        assert summary.price_exceeded == []
        assert summary.errors == []
        assert summary.total_from == Decimal("100")
        assert summary.total_to == Decimal("5")

        kwargs = build.call_args.kwargs
        assert kwargs["send_amount"] == Decimal("100")
        assert kwargs["dest_min"] == Decimal("4.95")
        assert kwargs["dest_asset"] == LABR
        assert kwargs["memo"].startswith("swap EURMTL->LABR ")
        assert kwargs["timeout_s"] == 300
        sign.assert_called_once()
        ledger.submit_transaction.assert_called_once_with("SIGNED_SWAP")

    def test_above_threshold_raises_alert_only(self, tx):
        build, _ = tx
        ledger = _ledger(_account(EURMTL="100"), {"EURMTL": "0.02"})

        summary = SwapEngine(_config(), ledger).execute()

        assert summary.swaps == []
        assert summary.errors == []
        assert len(summary.price_exceeded) == 1
        alert = summary.price_exceeded[0]
        assert alert.from_asset == "EURMTL"
        assert alert.from_amount == Decimal("100")
        assert alert.price == Decimal("50")
        assert alert.threshold == Decimal("25.0")
        build.assert_not_called()
        ledger.submit_transaction.assert_not_called()

    def test_price_at_threshold_swaps(self, tx):
        ledger = _ledger(_account(EURMTL="10"), {"EURMTL": "0.04"})

        summary = SwapEngine(_config(), ledger).execute()

        assert len(summary.swaps) == 1

    def test_rate_quoted_for_one_unit(self):
        ledger = _ledger(_account(), {"EURMTL": "0.05"})
        engine = SwapEngine(_config(), ledger)

        assert engine.quote_rate(EURMTL) == Decimal("0.05")
        source, amount, _ = ledger.strict_send_paths.call_args.args
        assert source == EURMTL
        assert amount == Decimal(1)

    def test_recorded_price_is_gate_price(self, tx):
        ledger = _ledger(_account(EURMTL="100"), {"EURMTL": "0.05"})

        def paths(source, amount, destination):
            received = Decimal("0.05") if amount == 1 else Decimal("4.8")
            return [PathRecord(source_amount=amount, destination_amount=received, path=())]

        ledger.strict_send_paths.side_effect = paths

        swap = SwapEngine(_config(), ledger).execute().swaps[0]

        assert swap.price == Decimal("20")
        assert swap.to_amount == Decimal("4.8")
        assert swap.min_amount == Decimal("4.95")


class TestFailureIsolation:
    def test_quote_failure_does_not_stop_other_tokens(self, tx):
        ledger = _ledger(
            _account(EURMTL="100", USDM="50"),
            {"USDM": "0.1"},
        )
        original = ledger.strict_send_paths.side_effect

        def paths(source, amount, destination):
            if source.code == "EURMTL":
                raise LedgerError("GET /paths/strict-send: HTTP 503 Service Unavailable")
            return original(source, amount, destination)

        ledger.strict_send_paths.side_effect = paths
        engine = SwapEngine(_config(tokens=[SwapTokenConfig(code=EURMTL.code, issuer=EURMTL.issuer), _USDM]), ledger)

        summary = engine.execute()

        assert [(e.asset, e.stage) for e in summary.errors] == [("EURMTL", "get_price")]
        assert [s.from_asset for s in summary.swaps] == ["USDM"]
        assert summary.total_from == Decimal("50")

    def test_no_path_is_price_error(self, tx):
        ledger = _ledger(_account(EURMTL="100"), {})
        ledger.strict_send_paths.side_effect = None
        ledger.strict_send_paths.return_value = []

        summary = SwapEngine(_config(), ledger).execute()

        assert summary.errors[0].stage == "get_price"
        assert "no path" in summary.errors[0].error

    def test_zero_quote_is_price_error(self, tx):
        ledger = _ledger(_account(EURMTL="100"), {"EURMTL": "0"})

        summary = SwapEngine(_config(), ledger).execute()

        assert summary.errors[0].stage == "get_price"
        assert summary.swaps == []

    def test_submission_failure_is_swap_error(self, tx):
        ledger = _ledger(_account(EURMTL="100"), {"EURMTL": "0.05"})
        ledger.submit_transaction.side_effect = SubmissionError("op_under_dest_min")

        summary = SwapEngine(_config(), ledger).execute()

        assert [(e.asset, e.stage, e.error) for e in summary.errors] == [
            ("EURMTL", "swap", "op_under_dest_min")
        ]
        assert summary.swaps == []
        assert summary.total_to == Decimal(0)


class TestBalances:
    def test_zero_balance_token_skipped(self, tx):
        ledger = _ledger(_account(EURMTL="0.0000000"), {"EURMTL": "0.05"})

        summary = SwapEngine(_config(), ledger).execute()

        assert summary.swaps == summary.price_exceeded == summary.errors == []
        ledger.strict_send_paths.assert_not_called()

    def test_missing_trustline_counts_as_zero(self, tx):
        ledger = _ledger(_account(), {})

        engine = SwapEngine(_config(), ledger)

        assert engine.swappable_balances(OPERATOR) == []

    def test_balance_failure_aborts(self, tx):
        ledger = MagicMock()
        ledger.account_detail.side_effect = LedgerError("GET /accounts/G...: HTTP 500")

        with pytest.raises(LedgerError):
            SwapEngine(_config(), ledger).execute()

    def test_seed_required(self):
        config = AppConfig(stellar=StellarConfig(address=OPERATOR))

        with pytest.raises(ConfigError):
            SwapEngine(config, MagicMock()).execute()
