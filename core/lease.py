"""
Per-project run leases.

At most one pipeline run per project may be in flight: the webhook trigger
and the periodic cycle both go through here. Leases live in process memory,
so the service runs as a single instance hosting both triggers.

A lease is held until its holder releases it, however long the run takes.
A crash clears process memory and every lease with it. Runs still holding
a lease past the TTL are reported as overdue, never taken over.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from core.constitution import DEFAULTS
from core.errors import ProjectBusy

logger = logging.getLogger("flywheel.lease")


@dataclass
class Lease:
    key: str
    owner: str
    acquired_at: float
    overdue_at: float

    def overdue(self, now: float) -> bool:
        return now >= self.overdue_at


class LeaseManager:

    def __init__(self, ttl_seconds: float = DEFAULTS.LEASE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._leases: dict[str, Lease] = {}

    def try_acquire(self, key: str) -> Optional[Lease]:
        """Take the lease for `key`, or None while another holder has it."""
        now = self._clock()
        current = self._leases.get(key)
        if current is not None:
            if current.overdue(now):
                logger.warning(
                    f"Run for {key[:8]}... still holds its lease after "
                    f"{now - current.acquired_at:.0f}s (owner {current.owner[:8]})"
                )
            return None

        lease = Lease(key=key, owner=uuid.uuid4().hex, acquired_at=now, overdue_at=now + self.ttl_seconds)
        self._leases[key] = lease
        return lease

    def release(self, lease: Lease) -> bool:
        current = self._leases.get(lease.key)
        if current is None or current.owner != lease.owner:
            return False
        del self._leases[lease.key]
        return True

    def is_held(self, key: str) -> bool:
        return key in self._leases

    @asynccontextmanager
    async def hold(self, key: str):
        """async with leases.hold(mint): ...  (raises ProjectBusy if held)"""
        lease = self.try_acquire(key)
        if lease is None:
            raise ProjectBusy(f"run already in progress for {key}")
        try:
            yield lease
        finally:
            self.release(lease)

    def get_status(self) -> dict:
        now = self._clock()
        return {
            "ttl_seconds": self.ttl_seconds,
            "held": list(self._leases),
            "overdue": [k for k, lease in self._leases.items() if lease.overdue(now)],
        }
