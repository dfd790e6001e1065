"""
Rate-limit policies — ceilings per endpoint category.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum


class Category(Enum):
    """Endpoint category. Each has its own counters."""

    ORDER_CREATION = "order_creation"
    LOGIN = "login"
    COUPON_VALIDATION = "coupon_validation"
    GENERAL_API = "general_api"
    SEARCH = "search"


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """
    max_requests per fixed window, then blocked for block.

    Example:
        policy = RateLimitPolicy().with_max_requests(5).with_window(minutes=60).with_block(minutes=30)
    """

    max_requests: int = 100
    window: timedelta = timedelta(minutes=60)
    block: timedelta = timedelta(minutes=15)
    noun: str = "requests"  # "Too many {noun}. Please wait until HH:MM"

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window <= timedelta(0):
            raise ValueError("window must be positive")

    def with_max_requests(self, n: int) -> RateLimitPolicy:
        return replace(self, max_requests=n)

    def with_window(self, *, minutes: float) -> RateLimitPolicy:
        return replace(self, window=timedelta(minutes=minutes))

    def with_block(self, *, minutes: float) -> RateLimitPolicy:
        return replace(self, block=timedelta(minutes=minutes))

    def with_noun(self, noun: str) -> RateLimitPolicy:
        return replace(self, noun=noun)


ORDER_CREATION = RateLimitPolicy(5, timedelta(minutes=60), timedelta(minutes=30), "orders")
LOGIN = RateLimitPolicy(10, timedelta(minutes=15), timedelta(minutes=60), "login attempts")
COUPON_VALIDATION = RateLimitPolicy(20, timedelta(minutes=60), timedelta(minutes=15), "coupon attempts")
GENERAL_API = RateLimitPolicy(100, timedelta(minutes=60), timedelta(minutes=15), "requests")
SEARCH = RateLimitPolicy(50, timedelta(minutes=60), timedelta(minutes=5), "searches")

DEFAULT_POLICIES: dict[Category, RateLimitPolicy] = {
    Category.ORDER_CREATION: ORDER_CREATION,
    Category.LOGIN: LOGIN,
    Category.COUPON_VALIDATION: COUPON_VALIDATION,
    Category.GENERAL_API: GENERAL_API,
    Category.SEARCH: SEARCH,
}


__all__ = (
    "Category",
    "RateLimitPolicy",
    "ORDER_CREATION",
    "LOGIN",
    "COUPON_VALIDATION",
    "GENERAL_API",
    "SEARCH",
    "DEFAULT_POLICIES",
)
