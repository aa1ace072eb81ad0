"""
Exception taxonomy for the distributor.

Cycle-level failures (``NoBalanceError``, ``NoDistributesError``,
``TrustlineCheckError``, ``PersistenceError``, ``SubmissionError``) propagate
out of the workflow to the CLI. Swap failures are never raised past the swap
engine; they are recorded per token as ``SwapError`` records instead
(see ``mlm_distributor.models.swap``).
"""

from __future__ import annotations

from typing import Any, Optional


class DistributorError(RuntimeError):
    """Base class for every error raised by this package."""


class ConfigError(DistributorError):
    """Raised when required configuration is missing or unusable."""


class LedgerError(DistributorError):
    """Raised when a Horizon request fails at the transport or HTTP level.

    Attributes:
        status_code: HTTP status, or ``None`` for transport failures.
        payload:     Decoded JSON problem document, if Horizon returned one.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)


class NoBalanceError(DistributorError):
    """Raised when the reward pool for this cycle is zero."""

    def __init__(self) -> None:
        super().__init__("no balance")


class NoDistributesError(DistributorError):
    """Raised when the payout plan is empty."""

    def __init__(self) -> None:
        super().__init__("no distributes: nothing to distribute")


class TrustlineCheckError(DistributorError):
    """Raised when a trustline lookup fails for a payout recipient.

    Attributes:
        account_id: Recipient whose trustline could not be checked.
    """

    def __init__(self, account_id: str, cause: Exception) -> None:
        self.account_id = account_id
        super().__init__(f"check trustline for {account_id}: {cause}")


class PersistenceError(DistributorError):
    """Raised when a report could not be written; the transaction was rolled back."""


class SubmissionError(DistributorError):
    """Raised when the ledger rejects a submitted transaction.

    Attributes:
        result_codes: Horizon ``extras.result_codes`` as returned, if any.
    """

    def __init__(self, message: str, result_codes: Optional[dict[str, Any]] = None) -> None:
        self.result_codes = result_codes or {}
        super().__init__(message)


class CycleLockTimeout(DistributorError):
    """Raised when the cycle lock could not be acquired in time.

    Attributes:
        name:     Lock name.
        waited_s: Seconds spent waiting before giving up.
    """

    def __init__(self, name: str, waited_s: float) -> None:
        self.name = name
        self.waited_s = waited_s
        super().__init__(
            f"Cycle lock '{name}' is held by another run; gave up after {waited_s:.0f}s."
        )


class CycleLockLost(DistributorError):
    """Raised when a running cycle finds its lease was taken over by another run.

    Attributes:
        name:   Lock name.
        holder: Holder ID that no longer owns the lock.
    """

    def __init__(self, name: str, holder: str) -> None:
        self.name = name
        self.holder = holder
        super().__init__(
            f"Cycle lock '{name}' is no longer held by {holder}; "
            "raise lock.lease_seconds above the longest cycle."
        )
