"""
Shared pytest fixtures for the MLM distributor test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema and migrations applied. Created anew for each test that requests it.
  - ``make_account`` / ``mtlap_line`` helpers building Horizon account records
    with MTLAP balances and base64-encoded recommendation entries.
  - ``base_config``: An ``AppConfig`` with an operating address set.
"""

from __future__ import annotations

import base64
import sqlite3
from typing import Generator, Optional

import pytest

from mlm_distributor.config import AppConfig, StellarConfig
from mlm_distributor.db.migrations import initialize_database
from mlm_distributor.ledger.assets import LABR, MTLAP
from mlm_distributor.ledger.horizon import AccountRecord, BalanceLine

OPERATOR = "GOPERATOR000000000000000000000000000000000000000000000000"
OPERATOR_SEED = "SOPERATORSEED0000000000000000000000000000000000000000000"


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    initialize_database(conn)
    yield conn
    conn.close()


# ── Ledger record helpers ─────────────────────────────────────────────────────

def encode_id(account_id: str) -> str:
    """Encode an account ID the way Horizon returns data-entry values."""
    return base64.b64encode(account_id.encode("utf-8")).decode("ascii")


def mtlap_line(balance: str) -> BalanceLine:
    return BalanceLine(
        asset_type="credit_alphanum12",
        balance=balance,
        asset_code=MTLAP.code,
        asset_issuer=MTLAP.issuer,
    )


def labr_line(balance: str) -> BalanceLine:
    return BalanceLine(
        asset_type="credit_alphanum4",
        balance=balance,
        asset_code=LABR.code,
        asset_issuer=LABR.issuer,
    )


def make_account(
    account_id: str,
    mtlap: str = "0.0000000",
    recommends: Optional[list[str]] = None,
    sequence: int = 100,
    extra_data: Optional[dict[str, str]] = None,
) -> AccountRecord:
    """Build an ``AccountRecord`` holding ``mtlap`` and recommending ``recommends``.

    Recommendation keys are ``RecommendToMTLA``, ``RecommendToMTLA1``, ... in
    list order.
    """
    data: dict[str, str] = {}
    for i, target in enumerate(recommends or []):
        key = "RecommendToMTLA" if i == 0 else f"RecommendToMTLA{i}"
        data[key] = encode_id(target)
    data.update(extra_data or {})
    return AccountRecord(
        account_id=account_id,
        sequence=sequence,
        balances=(mtlap_line(mtlap),),
        data=data,
    )


@pytest.fixture
def base_config() -> AppConfig:
    """Default config with the operating address (no seed) filled in."""
    return AppConfig(stellar=StellarConfig(address=OPERATOR))


@pytest.fixture
def signing_config() -> AppConfig:
    """Default config with both operating address and seed filled in."""
    return AppConfig(stellar=StellarConfig(address=OPERATOR, seed=OPERATOR_SEED))
