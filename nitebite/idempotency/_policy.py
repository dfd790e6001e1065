"""
Idempotency policy — how long results replay and how duplicates wait.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum, auto


class OnPending(Enum):
    """
    A duplicate arrives while the first attempt is still running.

    WAIT: poll until the first attempt settles and share its result
          (double-tapped "Place order", retry after a dropped connection).
    FAIL: report CONFLICT at once.
    """

    WAIT = auto()
    FAIL = auto()


WAIT = OnPending.WAIT
FAIL = OnPending.FAIL


@dataclass(frozen=True, slots=True)
class Policy:
    """
    Example:
        policy = Policy().with_ttl(minutes=10).with_wait_timeout(seconds=15)

    result_ttl None keeps completed results forever.
    """

    result_ttl: timedelta | None = timedelta(minutes=10)
    conflict_strategy: OnPending = OnPending.WAIT
    pending_wait_timeout: timedelta = timedelta(seconds=30)
    poll_interval: timedelta = timedelta(milliseconds=100)

    def with_ttl(self, *, seconds: float = 0, minutes: float = 0) -> Policy:
        """Replay window for completed results. Zero disables expiry."""
        ttl = timedelta(seconds=seconds, minutes=minutes)
        return replace(self, result_ttl=ttl if ttl > timedelta(0) else None)

    def with_on_pending(self, strategy: OnPending) -> Policy:
        return replace(self, conflict_strategy=strategy)

    def with_wait_timeout(self, *, seconds: float) -> Policy:
        """Upper bound for WAIT before answering TIMEOUT."""
        return replace(self, pending_wait_timeout=timedelta(seconds=seconds))

    def with_poll_interval(self, *, seconds: float) -> Policy:
        return replace(self, poll_interval=timedelta(seconds=seconds))


__all__ = (
    "OnPending",
    "WAIT",
    "FAIL",
    "Policy",
)
