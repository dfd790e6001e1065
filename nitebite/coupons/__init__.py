"""
Coupons — ledger, usage trail and the lookup gate.

    from nitebite import coupons

    check = await coupons.validate_coupon(ledger, code, subtotal, now=clock())
"""

from __future__ import annotations

from nitebite.coupons._types import DiscountType, Coupon, CouponUsage, CouponCheck
from nitebite.coupons._store import CouponLedger, MemoryCouponLedger
from nitebite.coupons._validate import (
    INVALID_FORMAT,
    INVALID_AMOUNT,
    NOT_AVAILABLE,
    EXHAUSTED,
    ALREADY_USED,
    APPLIED,
    normalize_code,
    is_valid_format,
    validate_coupon,
)

__all__ = (
    "DiscountType",
    "Coupon",
    "CouponUsage",
    "CouponCheck",
    "CouponLedger",
    "MemoryCouponLedger",
    "INVALID_FORMAT",
    "INVALID_AMOUNT",
    "NOT_AVAILABLE",
    "EXHAUSTED",
    "ALREADY_USED",
    "APPLIED",
    "normalize_code",
    "is_valid_format",
    "validate_coupon",
)
