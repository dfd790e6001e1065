"""
Checkout policy — tolerances and limits.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from nitebite._types import Money, money
from nitebite.idempotency import Policy as IdempotencyPolicy


@dataclass(frozen=True, slots=True)
class CheckoutPolicy:
    """
    Example:
        policy = CheckoutPolicy().with_price_tolerance(money("0.50")).with_max_item_quantity(20)
    """

    price_tolerance: Money = money(1)
    max_item_quantity: int = 50
    max_order_amount: Money = money(10000)
    require_valid_coupon: bool = False
    idempotency: IdempotencyPolicy = field(
        default_factory=lambda: IdempotencyPolicy().with_ttl(minutes=10).with_wait_timeout(seconds=15)
    )

    def with_price_tolerance(self, tolerance: Money) -> CheckoutPolicy:
        return replace(self, price_tolerance=money(tolerance))

    def with_max_item_quantity(self, n: int) -> CheckoutPolicy:
        return replace(self, max_item_quantity=n)

    def with_max_order_amount(self, amount: Money) -> CheckoutPolicy:
        return replace(self, max_order_amount=money(amount))

    def with_require_valid_coupon(self, required: bool = True) -> CheckoutPolicy:
        return replace(self, require_valid_coupon=required)

    def with_idempotency(self, policy: IdempotencyPolicy) -> CheckoutPolicy:
        return replace(self, idempotency=policy)


__all__ = ("CheckoutPolicy",)
