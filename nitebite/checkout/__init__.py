"""
Checkout — the secure order-processing pipeline.

    from nitebite.checkout import OrderProcessor, OrderFields, PhysicalItem

    result = await processor.place_order(
        "user-1",
        OrderFields(
            customer_name="Asha Rao",
            email="asha@example.com",
            phone_number="9876543210",
            hostel_number="4",
            room_number="B-112",
            payment_method="qr",
            amount=money(116),
        ),
        [PhysicalItem("chips", 2)],
        request_id="3f1c...",
    )
"""

from __future__ import annotations

from nitebite.cart import CartLine, PhysicalItem, VirtualBundle, merge_lines
from nitebite.checkout._types import (
    OrderFields,
    OrderState,
    CheckoutErrorKind,
    FailedItem,
    FieldError,
    CheckoutError,
    CheckoutErrors,
    OrderResult,
)
from nitebite.checkout._policy import CheckoutPolicy
from nitebite.checkout._validate import validate_order_input
from nitebite.checkout._processor import (
    OrderProcessor,
    Reservation,
    CompensationFailed,
    UNCERTAIN,
    COUPON_RACE,
)

__all__ = (
    "CartLine",
    "PhysicalItem",
    "VirtualBundle",
    "merge_lines",
    "OrderFields",
    "OrderState",
    "CheckoutErrorKind",
    "FailedItem",
    "FieldError",
    "CheckoutError",
    "CheckoutErrors",
    "OrderResult",
    "CheckoutPolicy",
    "validate_order_input",
    "OrderProcessor",
    "Reservation",
    "CompensationFailed",
    "UNCERTAIN",
    "COUPON_RACE",
)
