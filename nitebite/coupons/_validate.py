"""
Coupon lookup — format gate, then business validity.
"""

from __future__ import annotations

import re
from datetime import datetime

from kungfu import Result, Ok, Error

from nitebite._types import Money, ZERO, StoreError, money
from nitebite.coupons._types import CouponCheck
from nitebite.coupons._store import CouponLedger

CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,20}$")

INVALID_FORMAT = "Invalid coupon code format"
INVALID_AMOUNT = "Invalid order amount"
NOT_AVAILABLE = "Invalid or expired coupon"
EXHAUSTED = "This coupon has reached its usage limit"
ALREADY_USED = "You have already used this coupon"
APPLIED = "Coupon applied successfully"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def is_valid_format(code: str) -> bool:
    """3-20 chars of letters, digits, hyphen, underscore. Checked before any lookup."""
    return CODE_PATTERN.fullmatch(code.strip()) is not None


async def validate_coupon(
    ledger: CouponLedger,
    code: str,
    amount: Money,
    *,
    now: datetime,
    principal_id: str | None = None,
) -> Result[CouponCheck, StoreError]:
    """
    Check a coupon against an order amount.

    amount must be the server-computed subtotal. Rejections come back as
    Ok(CouponCheck(valid=False, ...)); Error only when the ledger failed.

    Example:
        match await validate_coupon(ledger, " late20 ", money(120), now=utc_now()):
            case Ok(check) if check.valid:
                print("discount", check.discount_amount)
            case Ok(check):
                print(check.message)
            case Error(e):
                print("ledger down:", e.message)
    """
    if not is_valid_format(code):
        return Ok(CouponCheck.rejected(INVALID_FORMAT))
    if amount < ZERO:
        return Ok(CouponCheck.rejected(INVALID_AMOUNT))

    normalized = normalize_code(code)

    match await ledger.get_coupon(normalized):
        case Error(err):
            return Error(err)
        case Ok(None):
            return Ok(CouponCheck.rejected(NOT_AVAILABLE))
        case Ok(coupon):
            pass

    if not coupon.is_live(now):
        return Ok(CouponCheck.rejected(NOT_AVAILABLE, coupon))
    if coupon.remaining_uses <= 0:
        return Ok(CouponCheck.rejected(EXHAUSTED, coupon))

    if principal_id is not None:
        match await ledger.has_used(normalized, principal_id):
            case Error(err):
                return Error(err)
            case Ok(True):
                return Ok(CouponCheck.rejected(ALREADY_USED, coupon))
            case Ok(_):
                pass

    if amount < coupon.min_order_amount:
        return Ok(CouponCheck.rejected(
            f"Order amount must be at least ₹{money(coupon.min_order_amount)}",
            coupon,
        ))

    return Ok(CouponCheck(
        valid=True,
        discount_amount=coupon.discount_for(amount),
        message=APPLIED,
        coupon=coupon,
    ))


__all__ = (
    "CODE_PATTERN",
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
