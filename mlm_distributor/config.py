"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — operator secrets (gitignored)
  4. Environment variables        — ``MLM_*`` prefix, plus the operator
                                    variables ``STELLAR_ADDRESS``,
                                    ``STELLAR_SEED`` and ``SWAP_PRICE_THRESHOLD``

Entry point: ``load_config(config_path=None) -> AppConfig``

The distribution workflow, the swap engine and every CLI command receive an
``AppConfig`` instance — never raw dicts or scattered env var lookups.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from mlm_distributor.errors import ConfigError

PUBLIC_HORIZON_URL = "https://horizon.stellar.org"
PUBLIC_NETWORK_PASSPHRASE = "Public Global Stellar Network ; September 2015"

DEFAULT_SWAP_PRICE_THRESHOLD = 25.0

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite report store settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/mlm.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class StellarConfig(BaseModel):
    """Ledger access and operating account settings.

    ``address`` and ``seed`` are normally supplied through ``.env``
    (``STELLAR_ADDRESS`` / ``STELLAR_SEED``), never committed to TOML.
    """

    model_config = ConfigDict(frozen=True)

    horizon_url: str = PUBLIC_HORIZON_URL
    network_passphrase: str = PUBLIC_NETWORK_PASSPHRASE
    address: str = ""
    seed: str = ""
    base_fee: int = 1000            # stroops per operation
    page_limit: int = 200           # Horizon max page size
    request_timeout_s: float = 30.0
    swap_timeout_s: int = 300       # time bounds for swap transactions

    @field_validator("page_limit")
    @classmethod
    def validate_page_limit(cls, v: int) -> int:
        if not 1 <= v <= 200:
            raise ValueError(f"page_limit must be in [1, 200], got {v}.")
        return v


class DistributionConfig(BaseModel):
    """Reward cycle parameters."""

    model_config = ConfigDict(frozen=True)

    pool_divisor: int = 3
    min_recommender_balance: int = 4
    recommend_tag: str = "RecommendToMTLA"
    memo_prefix: str = "mlta mlm"
    check_trustlines: bool = True

    @field_validator("pool_divisor")
    @classmethod
    def validate_pool_divisor(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"pool_divisor must be positive, got {v}.")
        return v


class SwapTokenConfig(BaseModel):
    """One auxiliary token the swap engine may convert into the reward token."""

    model_config = ConfigDict(frozen=True)

    code: str
    issuer: str


class SwapConfig(BaseModel):
    """Swap engine settings."""

    model_config = ConfigDict(frozen=True)

    price_threshold: float = DEFAULT_SWAP_PRICE_THRESHOLD
    slippage: float = 0.01
    tokens: list[SwapTokenConfig] = [
        SwapTokenConfig(
            code="EURMTL",
            issuer="GACKTN5DAZGWXRWB2WLM6OPBDHAMT6SJNGLJZPQMEZBUR4JUGBX2UK7V",
        ),
    ]

    @field_validator("slippage")
    @classmethod
    def validate_slippage(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError(f"slippage must be in [0.0, 1.0), got {v}.")
        return v


class LockConfig(BaseModel):
    """Cross-invocation cycle lock settings."""

    model_config = ConfigDict(frozen=True)

    name: str = "report"
    lease_seconds: int = 3600
    wait_timeout_s: float = 600.0
    poll_interval_s: float = 1.0


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/mlm.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    stellar: StellarConfig = StellarConfig()
    distribution: DistributionConfig = DistributionConfig()
    swap: SwapConfig = SwapConfig()
    lock: LockConfig = LockConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def require_ledger_credentials(config: AppConfig, need_seed: bool = False) -> None:
    """Fail early when the operating account is not configured.

    Args:
        config: Loaded application config.
        need_seed: Also require the signing seed (submission and swaps).

    Raises:
        ConfigError: Naming the first missing environment variable.
    """
    if not config.stellar.address:
        raise ConfigError("STELLAR_ADDRESS is required")
    if need_seed and not config.stellar.seed:
        raise ConfigError("STELLAR_SEED is required")


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variables to the raw config dict.

    Supported overrides:
      MLM_DB_PATH           → raw["database"]["db_path"]
      MLM_LOG_LEVEL         → raw["logging"]["level"]
      MLM_HORIZON_URL       → raw["stellar"]["horizon_url"]
      MLM_DEBUG             → raw["debug"]
      STELLAR_ADDRESS       → raw["stellar"]["address"]
      STELLAR_SEED          → raw["stellar"]["seed"]
      SWAP_PRICE_THRESHOLD  → raw["swap"]["price_threshold"] (0 / junk → default)
    """
    if db_path := os.environ.get("MLM_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("MLM_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if horizon_url := os.environ.get("MLM_HORIZON_URL"):
        raw.setdefault("stellar", {})["horizon_url"] = horizon_url

    if debug := os.environ.get("MLM_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    if address := os.environ.get("STELLAR_ADDRESS"):
        raw.setdefault("stellar", {})["address"] = address

    if seed := os.environ.get("STELLAR_SEED"):
        raw.setdefault("stellar", {})["seed"] = seed

    if threshold := os.environ.get("SWAP_PRICE_THRESHOLD"):
        raw.setdefault("swap", {})["price_threshold"] = _parse_threshold(threshold)

    return raw


def _parse_threshold(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        return DEFAULT_SWAP_PRICE_THRESHOLD
    return parsed if parsed != 0 else DEFAULT_SWAP_PRICE_THRESHOLD


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    swap_raw = dict(raw.get("swap", {}))
    if "tokens" in swap_raw:
        swap_raw["tokens"] = [SwapTokenConfig(**t) for t in swap_raw["tokens"]]

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        stellar=StellarConfig(**raw.get("stellar", {})),
        distribution=DistributionConfig(**raw.get("distribution", {})),
        swap=SwapConfig(**swap_raw),
        lock=LockConfig(**raw.get("lock", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
