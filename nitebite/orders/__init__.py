"""
Orders — persisted checkouts and customer profiles.
"""

from __future__ import annotations

from nitebite.orders._types import (
    PaymentMethod,
    PaymentStatus,
    OrderItemSnapshot,
    Order,
    Profile,
)
from nitebite.orders._store import (
    OrderStore,
    ProfileStore,
    MemoryOrderStore,
    MemoryProfileStore,
)

__all__ = (
    "PaymentMethod",
    "PaymentStatus",
    "OrderItemSnapshot",
    "Order",
    "Profile",
    "OrderStore",
    "ProfileStore",
    "MemoryOrderStore",
    "MemoryProfileStore",
)
