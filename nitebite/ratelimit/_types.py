"""Rate-limit records and results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from nitebite.ratelimit._policy import Category


@dataclass(frozen=True, slots=True)
class RateLimitWindow:
    identifier: str
    category: Category
    window_start: datetime
    window_end: datetime
    request_count: int
    blocked_until: datetime | None = None


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """
    Answer of one check.

    authoritative=False means the shared backend was unreachable and a
    per-process counter answered instead.
    """

    allowed: bool
    current_count: int
    reset_time: datetime
    blocked_until: datetime | None = None
    message: str | None = None
    authoritative: bool = True

    def retry_after(self, now: datetime) -> timedelta | None:
        if self.allowed:
            return None
        until = self.blocked_until or self.reset_time
        return max(until - now, timedelta(0))


__all__ = ("RateLimitWindow", "RateLimitResult")
