"""
Rate limiting — per-identifier counters in fixed windows.

    from nitebite import ratelimit as R

    limiter = R.RateLimiter(R.MemoryWindowStore())
    result = await limiter.check("user-1", R.Category.ORDER_CREATION)
"""

from __future__ import annotations

from nitebite.ratelimit._policy import (
    Category,
    RateLimitPolicy,
    ORDER_CREATION,
    LOGIN,
    COUPON_VALIDATION,
    GENERAL_API,
    SEARCH,
    DEFAULT_POLICIES,
)
from nitebite.ratelimit._types import RateLimitWindow, RateLimitResult
from nitebite.ratelimit._store import WindowStore, MemoryWindowStore
from nitebite.ratelimit._limiter import window_start, LocalCounter, RateLimiter

__all__ = (
    "Category",
    "RateLimitPolicy",
    "ORDER_CREATION",
    "LOGIN",
    "COUPON_VALIDATION",
    "GENERAL_API",
    "SEARCH",
    "DEFAULT_POLICIES",
    "RateLimitWindow",
    "RateLimitResult",
    "WindowStore",
    "MemoryWindowStore",
    "window_start",
    "LocalCounter",
    "RateLimiter",
)
