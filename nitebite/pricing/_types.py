"""
Pricing types — policy, priced lines, validation result.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto

from nitebite._types import Money, ZERO, money
from nitebite.cart import CartLine, VirtualBundle

# ═══════════════════════════════════════════════════════════════════════════════
# Policy
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    """
    Fee schedule.

    Example:
        policy = PricingPolicy().with_free_delivery_threshold(199)
    """

    free_delivery_threshold: Money = money(149)
    delivery_fee: Money = money(10)
    convenience_fee: Money = money(6)

    def with_free_delivery_threshold(self, amount: Money | int) -> PricingPolicy:
        return replace(self, free_delivery_threshold=money(amount))

    def with_delivery_fee(self, amount: Money | int) -> PricingPolicy:
        return replace(self, delivery_fee=money(amount))

    def with_convenience_fee(self, amount: Money | int) -> PricingPolicy:
        return replace(self, convenience_fee=money(amount))

    def delivery_fee_for(self, subtotal: Money) -> Money:
        if subtotal >= self.free_delivery_threshold or subtotal <= ZERO:
            return money(0)
        return self.delivery_fee

    def convenience_fee_for(self, subtotal: Money) -> Money:
        return self.convenience_fee if subtotal > ZERO else money(0)


# ═══════════════════════════════════════════════════════════════════════════════
# Priced Line
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PricedLine:
    """A cart line with its authoritative name and unit price."""

    line: CartLine
    name: str
    unit_price: Money

    @property
    def quantity(self) -> int:
        return self.line.quantity

    @property
    def line_total(self) -> Money:
        return money(self.unit_price * self.line.quantity)

    @property
    def is_virtual(self) -> bool:
        return isinstance(self.line, VirtualBundle)


# ═══════════════════════════════════════════════════════════════════════════════
# Result
# ═══════════════════════════════════════════════════════════════════════════════


class PricingFailure(Enum):
    UNKNOWN_ITEM = auto()  # Caller's fault: an id not in the catalog
    INVALID_QUANTITY = auto()  # Not a positive count, or over max_quantity
    COUPON_REQUIRED = auto()  # require_coupon and the coupon was rejected
    BACKEND = auto()  # Catalog or ledger unavailable


FAILED_TO_VALIDATE = "Failed to validate prices. Please try again."


@dataclass(frozen=True, slots=True)
class PriceValidationResult:
    success: bool
    subtotal: Money = ZERO
    delivery_fee: Money = ZERO
    convenience_fee: Money = ZERO
    coupon_discount: Money = ZERO
    total: Money = ZERO
    message: str = ""
    coupon_message: str | None = None
    coupon_code: str | None = None  # normalized, set only when a discount applied
    free_delivery_threshold: Money = money(149)
    remaining_for_free_delivery: Money = ZERO
    lines: tuple[PricedLine, ...] = ()
    failure: PricingFailure | None = None

    @classmethod
    def failed(
        cls,
        failure: PricingFailure,
        message: str,
        policy: PricingPolicy,
    ) -> PriceValidationResult:
        return cls(
            success=False,
            message=message,
            failure=failure,
            free_delivery_threshold=policy.free_delivery_threshold,
        )


__all__ = (
    "PricingPolicy",
    "PricedLine",
    "PricingFailure",
    "FAILED_TO_VALIDATE",
    "PriceValidationResult",
)
