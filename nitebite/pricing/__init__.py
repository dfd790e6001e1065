"""
Pricing — authoritative subtotal, fees, discount and total.

    from nitebite.pricing import PriceValidator

    result = await PriceValidator(catalog, ledger).validate(lines, coupon_code)
"""

from __future__ import annotations

from nitebite.pricing._types import (
    PricingPolicy,
    PricedLine,
    PricingFailure,
    FAILED_TO_VALIDATE,
    PriceValidationResult,
)
from nitebite.pricing._validator import PriceValidator

__all__ = (
    "PricingPolicy",
    "PricedLine",
    "PricingFailure",
    "FAILED_TO_VALIDATE",
    "PriceValidationResult",
    "PriceValidator",
)
