"""
Horizon REST client — the ledger data provider.

API:   https://horizon.stellar.org
Docs:  https://developers.stellar.org/docs/data/apis/horizon

Endpoints used:
  GET  /accounts?asset=CODE:ISSUER     — holders of an asset (paged, ``_links.next``)
  GET  /accounts/{account_id}          — balances, data entries, sequence
  GET  /paths/strict-send              — conversion path quoting
  POST /transactions  (form: tx=XDR)   — signed envelope submission

All calls are synchronous and go through one ``httpx.Client``. Transport and
HTTP failures surface as ``LedgerError``; a rejected submission surfaces as
``SubmissionError`` carrying Horizon's ``result_codes`` verbatim.

Usage::

    with HorizonClient("https://horizon.stellar.org") as horizon:
        holders = horizon.accounts_for_asset(MTLAP)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx

from mlm_distributor.errors import LedgerError, SubmissionError
from mlm_distributor.ledger.assets import AssetRef, format_amount

logger = logging.getLogger(__name__)


# ── Response types ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BalanceLine:
    """One entry of an account's ``balances`` array."""

    asset_type: str
    balance: str
    asset_code: Optional[str] = None
    asset_issuer: Optional[str] = None


@dataclass(frozen=True)
class AccountRecord:
    """The parts of a Horizon account resource this package reads.

    ``data`` holds the account's data entries with values still base64
    encoded, exactly as Horizon returns them.
    """

    account_id: str
    sequence: int
    balances: tuple[BalanceLine, ...] = ()
    data: dict[str, str] = field(default_factory=dict)

    def credit_balance(self, asset: AssetRef) -> str:
        """Balance of ``asset`` as a decimal string, ``"0"`` without a trustline."""
        line = self.trustline(asset)
        return line.balance if line is not None else "0"

    def trustline(self, asset: AssetRef) -> Optional[BalanceLine]:
        for line in self.balances:
            if line.asset_code == asset.code and line.asset_issuer == asset.issuer:
                return line
        return None


@dataclass(frozen=True)
class PathAsset:
    """Intermediate hop of a conversion path (``code is None`` for native XLM)."""

    asset_type: str
    code: Optional[str] = None
    issuer: Optional[str] = None


@dataclass(frozen=True)
class PathRecord:
    """One strict-send path quote."""

    source_amount: Decimal
    destination_amount: Decimal
    path: tuple[PathAsset, ...] = ()


# ── Client ─────────────────────────────────────────────────────────────────────

class HorizonClient:
    """Synchronous Horizon client.

    Args:
        base_url: Horizon root URL.
        timeout:  Per-request timeout in seconds.
        page_limit: Page size for ``/accounts`` enumeration (max 200).
        client:   Pre-built ``httpx.Client`` (tests pass one with a
            ``MockTransport``). When given, ``base_url`` and ``timeout`` are
            ignored and the caller owns its lifecycle.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        page_limit: int = 200,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.page_limit = page_limit
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HorizonClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── Accounts ───────────────────────────────────────────────────────────────

    def accounts_for_asset(self, asset: AssetRef) -> list[AccountRecord]:
        """Enumerate every account holding a trustline to ``asset``.

        Follows ``_links.next`` until a short or empty page. Accounts seen on
        more than one page are kept once (first occurrence).

        Raises:
            LedgerError: If any page request fails.
        """
        seen: dict[str, AccountRecord] = {}
        payload = self._get_json(
            "/accounts",
            params={"asset": asset.canonical, "limit": self.page_limit, "order": "asc"},
        )
        pages = 0
        while True:
            pages += 1
            records = payload.get("_embedded", {}).get("records", [])
            for raw in records:
                record = _parse_account(raw)
                seen.setdefault(record.account_id, record)

            next_href = payload.get("_links", {}).get("next", {}).get("href")
            if len(records) < self.page_limit or not next_href:
                break
            payload = self._get_json(next_href)

        logger.info(
            "Enumerated %d %s holders over %d page(s)", len(seen), asset.code, pages
        )
        return list(seen.values())

    def account_detail(self, account_id: str) -> AccountRecord:
        """Fetch a single account.

        Raises:
            LedgerError: On failure; ``status_code == 404`` if the account
                does not exist.
        """
        return _parse_account(self._get_json(f"/accounts/{account_id}"))

    def balance(self, account_id: str, asset: AssetRef) -> str:
        """Credit balance of ``asset`` on ``account_id`` as a decimal string."""
        return self.account_detail(account_id).credit_balance(asset)

    def has_trustline(self, account_id: str, asset: AssetRef) -> bool:
        """Whether ``account_id`` can receive ``asset``.

        A missing account cannot hold a trustline, so a 404 is ``False``
        rather than an error.
        """
        try:
            account = self.account_detail(account_id)
        except LedgerError as exc:
            if exc.status_code == 404:
                return False
            raise
        return account.trustline(asset) is not None

    # ── Paths ──────────────────────────────────────────────────────────────────

    def strict_send_paths(
        self,
        source: AssetRef,
        source_amount: Decimal,
        destination: AssetRef,
    ) -> list[PathRecord]:
        """Quote conversions of ``source_amount`` of ``source`` into ``destination``.

        Records are returned in Horizon's order; callers treat the first one
        as the best path.
        """
        payload = self._get_json(
            "/paths/strict-send",
            params={
                "source_asset_type": source.asset_type,
                "source_asset_code": source.code,
                "source_asset_issuer": source.issuer,
                "source_amount": format_amount(source_amount),
                "destination_assets": destination.canonical,
            },
        )
        return [
            _parse_path(raw) for raw in payload.get("_embedded", {}).get("records", [])
        ]

    # ── Submission ─────────────────────────────────────────────────────────────

    def submit_transaction(self, signed_xdr: str) -> str:
        """Submit a signed envelope and return its transaction hash.

        Raises:
            SubmissionError: If Horizon rejects the transaction or the
                request fails; ``result_codes`` is copied from the response.
        """
        try:
            resp = self._client.post("/transactions", data={"tx": signed_xdr})
        except httpx.HTTPError as exc:
            raise SubmissionError(f"submit transaction: {exc}") from exc

        body = _json_or_empty(resp)
        if resp.is_error:
            result_codes = body.get("extras", {}).get("result_codes", {})
            title = body.get("title", resp.reason_phrase)
            raise SubmissionError(
                f"{title} (HTTP {resp.status_code}): {result_codes or body}",
                result_codes=result_codes,
            )

        tx_hash = body["hash"]
        logger.info("Transaction accepted | hash=%s", tx_hash)
        return tx_hash

    # ── Internals ──────────────────────────────────────────────────────────────

    def _get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        try:
            resp = self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise LedgerError(f"GET {url}: {exc}") from exc

        if resp.is_error:
            body = _json_or_empty(resp)
            detail = body.get("detail") or body.get("title") or resp.reason_phrase
            raise LedgerError(
                f"GET {url}: HTTP {resp.status_code} {detail}",
                status_code=resp.status_code,
                payload=body,
            )
        return resp.json()


# ── Private helpers ────────────────────────────────────────────────────────────

def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _parse_account(raw: dict[str, Any]) -> AccountRecord:
    return AccountRecord(
        account_id=raw.get("account_id") or raw["id"],
        sequence=int(raw.get("sequence", 0)),
        balances=tuple(
            BalanceLine(
                asset_type=b.get("asset_type", ""),
                balance=b.get("balance", "0"),
                asset_code=b.get("asset_code"),
                asset_issuer=b.get("asset_issuer"),
            )
            for b in raw.get("balances", [])
        ),
        data=dict(raw.get("data", {})),
    )


def _parse_path(raw: dict[str, Any]) -> PathRecord:
    return PathRecord(
        source_amount=Decimal(raw.get("source_amount", "0")),
        destination_amount=Decimal(raw.get("destination_amount", "0")),
        path=tuple(
            PathAsset(
                asset_type=p.get("asset_type", "native"),
                code=p.get("asset_code"),
                issuer=p.get("asset_issuer"),
            )
            for p in raw.get("path", [])
        ),
    )
