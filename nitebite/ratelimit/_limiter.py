"""
Rate limiter — fixed windows, sticky blocks, local fallback.

Algorithm for check(identifier, category):

    1. blocked_until (any window) in the future  → deny, count untouched
    2. no row for the current window             → open it with count 1
    3. otherwise conditional increment           → count > max: block, deny

Backend unreachable: the same algorithm runs on a per-process counter and
the result is marked authoritative=False.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from kungfu import Result, Ok, Error

from nitebite import cas
from nitebite._types import Clock, StoreError, utc_now
from nitebite.lift import guarded
from nitebite.ratelimit._policy import Category, RateLimitPolicy, DEFAULT_POLICIES
from nitebite.ratelimit._types import RateLimitWindow, RateLimitResult
from nitebite.ratelimit._store import WindowStore

logger = logging.getLogger("nitebite.ratelimit")
security_log = logging.getLogger("nitebite.security")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def window_start(now: datetime, window: timedelta) -> datetime:
    """Start of the fixed window containing now, aligned to the epoch."""
    size = int(window.total_seconds())
    elapsed = int((now - EPOCH).total_seconds())
    return EPOCH + timedelta(seconds=elapsed - elapsed % size)


def _denied_message(policy: RateLimitPolicy, until: datetime) -> str:
    return f"Too many {policy.noun}. Please wait until {until:%H:%M}"


# ═══════════════════════════════════════════════════════════════════════════════
# Local Fallback — per-process, best effort
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class LocalCounter:
    """
    In-process counters used only while the shared store is unreachable.

    Note: A restart resets them. Never the source of truth.
    """

    # (identifier, category) → (window_start, window_end, count)
    counts: dict[tuple[str, Category], tuple[datetime, datetime, int]] = field(
        default_factory=dict
    )
    blocks: dict[tuple[str, Category], datetime] = field(default_factory=dict)

    def check(
        self,
        identifier: str,
        category: Category,
        policy: RateLimitPolicy,
        now: datetime,
    ) -> RateLimitResult:
        start = window_start(now, policy.window)
        reset = start + policy.window
        key = (identifier, category)
        self._prune(now)

        _, _, count = self.counts.get(key, (start, reset, 0))

        blocked = self.blocks.get(key)
        if blocked is not None:
            return RateLimitResult(
                allowed=False,
                current_count=count,
                reset_time=reset,
                blocked_until=blocked,
                message=_denied_message(policy, blocked),
                authoritative=False,
            )

        count += 1
        self.counts[key] = (start, reset, count)
        if count > policy.max_requests:
            until = now + policy.block
            self.blocks[key] = until
            return RateLimitResult(
                allowed=False,
                current_count=count,
                reset_time=reset,
                blocked_until=until,
                message=_denied_message(policy, until),
                authoritative=False,
            )
        return RateLimitResult(
            allowed=True, current_count=count, reset_time=reset, authoritative=False
        )

    def _prune(self, now: datetime) -> None:
        for key in [k for k, (_, end, _) in self.counts.items() if end <= now]:
            del self.counts[key]
        for key in [k for k, until in self.blocks.items() if until <= now]:
            del self.blocks[key]


# ═══════════════════════════════════════════════════════════════════════════════
# RateLimiter
# ═══════════════════════════════════════════════════════════════════════════════


class RateLimiter:
    """
    Explicitly constructed limiter. No module state; one instance per app.

    Example:
        limiter = RateLimiter(MemoryWindowStore(), clock=utc_now)

        result = await limiter.check_order(principal_id)
        if not result.allowed:
            print(result.message)
    """

    def __init__(
        self,
        store: WindowStore,
        *,
        clock: Clock = utc_now,
        policies: dict[Category, RateLimitPolicy] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._policies = dict(DEFAULT_POLICIES if policies is None else policies)
        self._local = LocalCounter()

    def policy_for(self, category: Category) -> RateLimitPolicy:
        return self._policies.get(category, DEFAULT_POLICIES[Category.GENERAL_API])

    async def check(
        self,
        identifier: str,
        category: Category,
        policy: RateLimitPolicy | None = None,
    ) -> RateLimitResult:
        policy = policy or self.policy_for(category)
        now = self._clock()

        outcome = await guarded(
            lambda: self._check_store(identifier, category, policy, now),
            on_error=lambda e: StoreError(f"rate limit store raised: {e}", e),
        )

        match outcome:
            case Ok(result):
                pass
            case Error(err):
                logger.warning(
                    "rate limit store unavailable, using local counter: %s", err.message
                )
                security_log.warning(
                    "non-authoritative rate limiting",
                    extra={"identifier": identifier, "category": category.value},
                )
                result = self._local.check(identifier, category, policy, now)

        if not result.allowed and result.current_count > policy.max_requests:
            security_log.warning(
                "rate limit exceeded",
                extra={
                    "identifier": identifier,
                    "category": category.value,
                    "count": result.current_count,
                    "blocked_until": result.blocked_until.isoformat()
                    if result.blocked_until else None,
                },
            )
        return result

    async def check_order(self, principal_id: str) -> RateLimitResult:
        return await self.check(principal_id, Category.ORDER_CREATION)

    async def check_login(self, identifier: str) -> RateLimitResult:
        return await self.check(identifier, Category.LOGIN)

    async def check_coupon(self, principal_id: str) -> RateLimitResult:
        return await self.check(principal_id, Category.COUPON_VALIDATION)

    async def cleanup(self) -> Result[int, StoreError]:
        """Drop windows that can no longer affect a decision."""
        return await self._store.prune(self._clock())

    # ───────────────────────────────────────────────────────────────────────────
    # Authoritative path
    # ───────────────────────────────────────────────────────────────────────────

    async def _check_store(
        self,
        identifier: str,
        category: Category,
        policy: RateLimitPolicy,
        now: datetime,
    ) -> Result[RateLimitResult, StoreError]:
        start = window_start(now, policy.window)
        reset = start + policy.window

        match await self._store.blocked_until(identifier, category):
            case Error(err):
                return Error(err)
            case Ok(blocked) if blocked is not None and blocked > now:
                match await self._store.get_window(identifier, category, start):
                    case Error(err):
                        return Error(err)
                    case Ok(window):
                        count = window.request_count if window is not None else 0
                return Ok(RateLimitResult(
                    allowed=False,
                    current_count=count,
                    reset_time=reset,
                    blocked_until=blocked,
                    message=_denied_message(policy, blocked),
                ))
            case Ok(_):
                pass

        opened = await self._store.open_window(RateLimitWindow(
            identifier=identifier,
            category=category,
            window_start=start,
            window_end=reset,
            request_count=1,
        ))
        match opened:
            case Error(err):
                return Error(err)
            case Ok(True):
                return Ok(RateLimitResult(allowed=True, current_count=1, reset_time=reset))
            case Ok(_):
                pass

        cell = self._store.count_cell(identifier, category, start)
        match await cas.conditional_increment(cell, 1):
            case Ok(updated):
                count = updated.current
            case Error(e) if e.kind is cas.CasErrorKind.CONTENDED:
                # Count this request on top of the last value read; unread means full.
                count = (e.observed if e.observed is not None else policy.max_requests) + 1
            case Error(e):
                return Error(e.cause or StoreError(e.message))

        if count <= policy.max_requests:
            return Ok(RateLimitResult(allowed=True, current_count=count, reset_time=reset))

        until = now + policy.block
        match await self._store.block(identifier, category, start, until):
            case Error(err):
                return Error(err)
            case Ok(_):
                pass
        return Ok(RateLimitResult(
            allowed=False,
            current_count=count,
            reset_time=reset,
            blocked_until=until,
            message=_denied_message(policy, until),
        ))


__all__ = ("EPOCH", "window_start", "LocalCounter", "RateLimiter")
