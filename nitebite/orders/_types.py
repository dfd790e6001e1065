"""Order domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from nitebite._types import Money, ZERO


class PaymentMethod(Enum):
    QR = "qr"  # UPI deep link, not verified server-side
    COD = "cod"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"


@dataclass(frozen=True, slots=True)
class OrderItemSnapshot:
    """Line as sold. Frozen at creation, unaffected by later catalog edits."""

    product_id: str
    name: str
    price: Money
    quantity: int

    def to_dict(self) -> dict[str, object]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
        }


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    principal_id: str
    items: tuple[OrderItemSnapshot, ...]
    amount: Money
    subtotal: Money
    delivery_fee: Money
    convenience_fee: Money
    customer_name: str
    email: str
    phone_number: str
    hostel_number: str
    room_number: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    created_at: datetime
    updated_at: datetime
    coupon_code: str | None = None
    coupon_discount: Money = ZERO
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class Profile:
    principal_id: str
    full_name: str
    email: str
    phone_number: str
    updated_at: datetime


__all__ = (
    "PaymentMethod",
    "PaymentStatus",
    "OrderItemSnapshot",
    "Order",
    "Profile",
)
