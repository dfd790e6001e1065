"""
Input validation — itemized, before any side effect.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation

from nitebite._types import ZERO
from nitebite.cart import CartLine, merge_lines
from nitebite.checkout._policy import CheckoutPolicy
from nitebite.checkout._types import OrderFields, FieldError
from nitebite.orders import PaymentMethod

NAME = re.compile(r"^[A-Za-z\s'-]{2,50}$")
EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE = re.compile(r"^\+?[\d\s()-]{10,15}$")
HOSTEL = re.compile(r"^(?:[1-9]|1[0-2])$")
ROOM = re.compile(r"^[A-Za-z0-9-]{1,10}$")


def validate_order_input(
    fields: OrderFields,
    lines: Sequence[CartLine],
    policy: CheckoutPolicy,
) -> list[FieldError]:
    """Every problem with the submission. Empty list means valid."""
    errors: list[FieldError] = []

    if not NAME.match(fields.customer_name.strip()):
        errors.append(FieldError("customer_name", "Please enter your full name"))
    email = fields.email.strip()
    if len(email) > 100 or not EMAIL.match(email):
        errors.append(FieldError("email", "Please enter a valid email address"))
    if not PHONE.match(fields.phone_number.strip()):
        errors.append(FieldError("phone_number", "Please enter a valid phone number"))
    if not HOSTEL.match(fields.hostel_number.strip()):
        errors.append(FieldError("hostel_number", "Please select your hostel number (1-12)"))
    if not ROOM.match(fields.room_number.strip()):
        errors.append(FieldError("room_number", "Please enter your room number"))

    try:
        PaymentMethod(fields.payment_method)
    except ValueError:
        errors.append(FieldError("payment_method", "Please select a valid payment method"))

    try:
        amount = Decimal(fields.amount)
    except (InvalidOperation, TypeError, ValueError):
        amount = None
    if amount is None or not amount.is_finite() or amount <= ZERO:
        errors.append(FieldError("amount", "Invalid order amount"))
    elif amount > policy.max_order_amount:
        errors.append(FieldError(
            "amount", f"Order amount cannot exceed ₹{policy.max_order_amount}"
        ))

    if not lines:
        errors.append(FieldError("items", "Your cart is empty"))

    for i, line in enumerate(lines):
        if not line.item_id or not line.item_id.strip():
            errors.append(FieldError(f"items[{i}]", "Invalid item"))
        if (
            isinstance(line.quantity, bool)
            or not isinstance(line.quantity, int)
            or not 1 <= line.quantity <= policy.max_item_quantity
        ):
            errors.append(FieldError(
                f"items[{i}].quantity",
                f"Quantity must be between 1 and {policy.max_item_quantity}",
            ))

    if not any(e.field.startswith("items") for e in errors):
        # Repeated ids are reserved as one line.
        for line in merge_lines(lines):
            if line.quantity > policy.max_item_quantity:
                errors.append(FieldError(
                    "items",
                    f"Total quantity of {line.item_id} cannot exceed {policy.max_item_quantity}",
                ))

    return errors


__all__ = ("validate_order_input",)
