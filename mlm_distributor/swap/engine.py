"""
Swap engine — converts auxiliary token balances into LABR.

For each configured token with a positive balance on the operating account,
sequentially:

  1. Quote 1 unit of the token into LABR over Horizon strict-send paths
     (first record returned is taken as the best path).
  2. effective price = 1 / quoted LABR per unit, i.e. source units per LABR.
  3. Price above ``swap.price_threshold`` → ``PriceExceededAlert``; the token
     is skipped. This is a normal outcome, not an error.
  4. Otherwise expected = balance × quote, minimum = expected × (1 − slippage),
     and the whole balance is sent as a strict-send path payment to self.

A failure while quoting or swapping one token is recorded as a ``SwapError``
for that token only; the run continues with the next token. Only failing to
read the balances aborts the run.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from mlm_distributor.config import AppConfig, require_ledger_credentials
from mlm_distributor.errors import LedgerError
from mlm_distributor.ledger.assets import LABR, AssetRef, truncate_amount
from mlm_distributor.ledger.horizon import HorizonClient, PathRecord
from mlm_distributor.ledger.transactions import (
    address_from_seed,
    build_path_payment_envelope,
    sign_envelope,
)
from mlm_distributor.models.swap import (
    PriceExceededAlert,
    SwapError,
    SwapResult,
    SwapSummary,
    TokenBalance,
)
from mlm_distributor.utils.time_utils import date_stamp, utcnow

logger = logging.getLogger(__name__)

STAGE_GET_PRICE = "get_price"
STAGE_SWAP = "swap"


class SwapEngine:
    """Runs the swap pass for the operating account.

    Args:
        config: Loaded application config (``stellar`` and ``swap`` sections).
        ledger: Horizon client.
        reward_asset: Token every balance is converted into.
    """

    def __init__(
        self,
        config: AppConfig,
        ledger: HorizonClient,
        reward_asset: AssetRef = LABR,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.reward_asset = reward_asset

    def execute(self) -> SwapSummary:
        """Quote and swap every configured token with a positive balance.

        Raises:
            ConfigError: If the operating address or seed is missing.
            LedgerError: If the operating account's balances cannot be read.
        """
        require_ledger_credentials(self.config, need_seed=True)
        threshold = Decimal(str(self.config.swap.price_threshold))
        summary = SwapSummary()

        for bal in self.swappable_balances(self.config.stellar.address):
            asset = AssetRef(bal.code, bal.issuer)

            try:
                rate = self.quote_rate(asset)
            except Exception as exc:
                logger.error("Price quote failed for %s: %s", bal.code, exc)
                summary.errors.append(SwapError(bal.code, STAGE_GET_PRICE, str(exc)))
                continue

            price = Decimal(1) / rate
            if price > threshold:
                logger.warning(
                    "Price for %s above threshold | price=%s threshold=%s",
                    bal.code, price, threshold,
                )
                summary.price_exceeded.append(
                    PriceExceededAlert(
                        from_asset=bal.code,
                        from_amount=bal.balance,
                        price=price,
                        threshold=threshold,
                    )
                )
                continue

            expected = bal.balance * rate
            min_amount = truncate_amount(
                expected * (Decimal(1) - Decimal(str(self.config.swap.slippage)))
            )

            try:
                result = self.swap_to_reward(bal, min_amount, price)
            except Exception as exc:
                logger.error("Swap failed for %s: %s", bal.code, exc)
                summary.errors.append(SwapError(bal.code, STAGE_SWAP, str(exc)))
                continue

            summary.swaps.append(result)
            summary.total_from += result.from_amount
            summary.total_to += result.to_amount

        logger.info(
            "Swap run done | swaps=%d price_exceeded=%d errors=%d",
            len(summary.swaps), len(summary.price_exceeded), len(summary.errors),
        )
        return summary

    def swappable_balances(self, account_id: str) -> list[TokenBalance]:
        """Positive balances of the configured tokens on ``account_id``."""
        account = self.ledger.account_detail(account_id)
        balances: list[TokenBalance] = []
        for token in self.config.swap.tokens:
            amount = Decimal(account.credit_balance(AssetRef(token.code, token.issuer)))
            if amount > 0:
                balances.append(TokenBalance(token.code, token.issuer, amount))
        return balances

    def quote_rate(self, asset: AssetRef) -> Decimal:
        """Reward tokens received for one unit of ``asset``.

        Raises:
            LedgerError: If no path exists or the quote is zero.
        """
        best = self._best_path(asset, Decimal(1))
        if best.destination_amount <= 0:
            raise LedgerError(f"zero quote for {asset.code} -> {self.reward_asset.code}")
        return best.destination_amount

    def swap_to_reward(
        self,
        balance: TokenBalance,
        min_amount: Decimal,
        price: Decimal,
    ) -> SwapResult:
        """Send the whole ``balance`` to self through the best path.

        The path is re-quoted for the full amount; the quoted destination
        amount is reported as ``to_amount``. ``price`` is the unit-quote price
        the gate accepted and is recorded as is.
        """
        stellar = self.config.stellar
        asset = AssetRef(balance.code, balance.issuer)
        best = self._best_path(asset, balance.balance)

        source = self.ledger.account_detail(address_from_seed(stellar.seed))
        xdr = build_path_payment_envelope(
            source=source,
            send_asset=asset,
            send_amount=balance.balance,
            dest_asset=self.reward_asset,
            dest_min=min_amount,
            path=best.path,
            memo=f"swap {balance.code}->{self.reward_asset.code} {date_stamp(utcnow())}",
            network_passphrase=stellar.network_passphrase,
            base_fee=stellar.base_fee,
            timeout_s=stellar.swap_timeout_s,
        )
        tx_hash = self.ledger.submit_transaction(
            sign_envelope(xdr, stellar.seed, stellar.network_passphrase)
        )

        logger.info(
            "Swapped %s %s -> ~%s %s | min=%s hash=%s",
            balance.balance, balance.code, best.destination_amount,
            self.reward_asset.code, min_amount, tx_hash,
        )
        return SwapResult(
            from_asset=balance.code,
            from_amount=balance.balance,
            to_asset=self.reward_asset.code,
            to_amount=best.destination_amount,
            min_amount=min_amount,
            tx_hash=tx_hash,
            price=price,
        )

    def _best_path(self, asset: AssetRef, amount: Decimal) -> PathRecord:
        paths = self.ledger.strict_send_paths(asset, amount, self.reward_asset)
        if not paths:
            raise LedgerError(f"no path found for {asset.code} -> {self.reward_asset.code}")
        return paths[0]
