"""
Exclusive cycle guard.

``cycle_guard()`` serializes distribution cycles across processes that share
one report database. It blocks (polling) until the named lease is free,
yields while the cycle runs and releases the lease on every exit path:
normal return, early return or exception.

A crashed holder cannot release its lease; the lease simply expires after
``lease_seconds`` and the next waiter takes it over. A live holder that
runs longer than that can lose its lease the same way, so it calls
``CycleLease.renew()`` before each write; ``CycleLockLost`` stops it there.

Usage::

    with cycle_guard(conn, "report") as lease:
        ...  # compute
        lease.renew()
        ...  # persist
"""

from __future__ import annotations

import logging
import os
import socket
import sqlite3
import time
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional
from uuid import uuid4

from mlm_distributor.db.repositories.lock_repo import CycleLockRepository
from mlm_distributor.errors import CycleLockLost, CycleLockTimeout

logger = logging.getLogger(__name__)


def make_holder_id() -> str:
    """``host:pid:random``, unique per guard acquisition."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


@dataclass
class CycleLease:
    """A lease held inside ``cycle_guard()``."""

    repo:          CycleLockRepository
    name:          str
    holder:        str
    lease_seconds: int

    def renew(self) -> None:
        """Extend the lease by ``lease_seconds`` from now.

        Raises:
            CycleLockLost: If another run took the lease over.
        """
        if not self.repo.renew(self.name, self.holder, self.lease_seconds):
            raise CycleLockLost(self.name, self.holder)
        logger.debug("Cycle lock '%s' renewed by %s", self.name, self.holder)


@contextmanager
def cycle_guard(
    conn: sqlite3.Connection,
    name: str,
    lease_seconds: int = 3600,
    wait_timeout_s: float = 600.0,
    poll_interval_s: float = 1.0,
    holder: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
) -> Generator[CycleLease, None, None]:
    """Hold lock ``name`` for the duration of the ``with`` block.

    Args:
        conn: Connection to the report database.
        name: Lock name; cycles sharing a name are mutually exclusive.
        lease_seconds: Lease length; bounds how long a crashed holder blocks others.
        wait_timeout_s: Give up after waiting this long.
        poll_interval_s: Delay between acquisition attempts.
        holder: Holder ID (defaults to ``make_holder_id()``).

    Yields:
        The ``CycleLease`` owned by this block.

    Raises:
        CycleLockTimeout: If the lock stays taken for ``wait_timeout_s``.
    """
    holder = holder or make_holder_id()
    repo = CycleLockRepository(conn)
    started = monotonic()

    while not repo.try_acquire(name, holder, lease_seconds):
        waited = monotonic() - started
        if waited >= wait_timeout_s:
            raise CycleLockTimeout(name, waited)
        logger.info(
            "Cycle lock '%s' held by %s; waiting", name, repo.current_holder(name)
        )
        sleep(poll_interval_s)

    logger.debug("Cycle lock '%s' acquired by %s", name, holder)
    try:
        yield CycleLease(repo, name, holder, lease_seconds)
    finally:
        try:
            if not repo.release(name, holder):
                logger.warning("Cycle lock '%s' was no longer held by %s", name, holder)
            else:
                logger.debug("Cycle lock '%s' released by %s", name, holder)
        except sqlite3.Error as exc:
            logger.error(
                "Failed to release cycle lock '%s' (lease expires on its own): %s",
                name, exc,
            )
