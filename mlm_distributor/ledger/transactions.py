"""
Transaction envelope construction and signing (stellar-sdk).

The distributor never implements XDR encoding or ed25519 signing itself:
envelopes are assembled with ``stellar_sdk.TransactionBuilder`` from an
``AccountRecord`` fetched over Horizon, and signed with a ``Keypair``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from decimal import Decimal

from stellar_sdk import Account, Asset, Keypair, TransactionBuilder

from mlm_distributor.ledger.assets import AssetRef, format_amount
from mlm_distributor.ledger.horizon import AccountRecord, PathAsset
from mlm_distributor.models.report import ReportDistribute

logger = logging.getLogger(__name__)

MAX_MEMO_BYTES = 28


def build_payment_envelope(
    source: AccountRecord,
    distributes: Sequence[ReportDistribute],
    issuer: str,
    memo: str,
    network_passphrase: str,
    base_fee: int,
) -> str:
    """Build the unsigned payout envelope.

    One payment per row, amounts as ``%.7f`` strings, a single text memo and
    no expiry (time bounds ``0..0``).

    Args:
        source: Operating account; its current sequence is incremented.
        distributes: Non-zero payouts.
        issuer: Issuer of every row's ``asset`` code.
        memo: Text memo (truncated to 28 bytes).
        network_passphrase: Network the envelope is valid on.
        base_fee: Fee per operation in stroops.

    Returns:
        Base64 XDR of the unsigned ``TransactionEnvelope``.
    """
    builder = TransactionBuilder(
        source_account=Account(source.account_id, source.sequence),
        network_passphrase=network_passphrase,
        base_fee=base_fee,
    )
    for row in distributes:
        builder.append_payment_op(
            destination=row.recommender,
            asset=Asset(row.asset, issuer),
            amount=format_amount(row.amount),
        )
    builder.add_text_memo(_clip_memo(memo))
    builder.add_time_bounds(0, 0)

    envelope = builder.build()
    logger.debug("Built payout envelope with %d payment(s)", len(distributes))
    return envelope.to_xdr()


def build_path_payment_envelope(
    source: AccountRecord,
    send_asset: AssetRef,
    send_amount: Decimal,
    dest_asset: AssetRef,
    dest_min: Decimal,
    path: Sequence[PathAsset],
    memo: str,
    network_passphrase: str,
    base_fee: int,
    timeout_s: int,
) -> str:
    """Build an unsigned strict-send path payment from ``source`` to itself."""
    builder = TransactionBuilder(
        source_account=Account(source.account_id, source.sequence),
        network_passphrase=network_passphrase,
        base_fee=base_fee,
    )
    builder.append_path_payment_strict_send_op(
        destination=source.account_id,
        send_asset=Asset(send_asset.code, send_asset.issuer),
        send_amount=format_amount(send_amount),
        dest_asset=Asset(dest_asset.code, dest_asset.issuer),
        dest_min=format_amount(dest_min),
        path=[_to_sdk_asset(hop) for hop in path],
    )
    builder.add_text_memo(_clip_memo(memo))
    builder.set_timeout(timeout_s)
    return builder.build().to_xdr()


def sign_envelope(xdr: str, seed: str, network_passphrase: str) -> str:
    """Sign a base64 envelope with the secret ``seed`` and return the signed XDR."""
    envelope = TransactionBuilder.from_xdr(xdr, network_passphrase)
    envelope.sign(Keypair.from_secret(seed))
    return envelope.to_xdr()


def address_from_seed(seed: str) -> str:
    return Keypair.from_secret(seed).public_key


def _to_sdk_asset(hop: PathAsset) -> Asset:
    if hop.asset_type == "native" or hop.code is None:
        return Asset.native()
    return Asset(hop.code, hop.issuer)


def _clip_memo(memo: str) -> str:
    encoded = memo.encode("utf-8")
    if len(encoded) <= MAX_MEMO_BYTES:
        return memo
    return encoded[:MAX_MEMO_BYTES].decode("utf-8", errors="ignore")
