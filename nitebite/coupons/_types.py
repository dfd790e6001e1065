"""Coupon domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from nitebite._types import Money, ZERO, money


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True, slots=True)
class Coupon:
    code: str
    discount_type: DiscountType
    discount_value: Money
    min_order_amount: Money = ZERO
    max_uses: int = 100
    remaining_uses: int = 100
    is_active: bool = True
    starts_at: datetime | None = None
    expires_at: datetime | None = None

    def is_live(self, now: datetime) -> bool:
        """Active and inside its validity window."""
        if not self.is_active:
            return False
        if self.starts_at is not None and now < self.starts_at:
            return False
        return self.expires_at is None or now < self.expires_at

    def discount_for(self, amount: Money) -> Money:
        """Discount on amount. Never more than amount, never negative."""
        if self.discount_type is DiscountType.PERCENTAGE:
            raw = money(amount * self.discount_value / 100)
        else:
            raw = money(self.discount_value)
        return max(ZERO, min(raw, amount))


@dataclass(frozen=True, slots=True)
class CouponUsage:
    """One redemption. At most one per order."""

    coupon_code: str
    principal_id: str
    order_id: str
    used_at: datetime


@dataclass(frozen=True, slots=True)
class CouponCheck:
    """Outcome of a coupon lookup. valid=False is a normal answer, not an error."""

    valid: bool
    discount_amount: Money
    message: str
    coupon: Coupon | None = None

    @classmethod
    def rejected(cls, message: str, coupon: Coupon | None = None) -> CouponCheck:
        return cls(valid=False, discount_amount=ZERO, message=message, coupon=coupon)


__all__ = ("DiscountType", "Coupon", "CouponUsage", "CouponCheck")
