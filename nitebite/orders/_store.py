"""
Order and profile stores.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from kungfu import Result, Ok, Error

from nitebite._types import StoreError
from nitebite.orders._types import Order, PaymentStatus, Profile

# ═══════════════════════════════════════════════════════════════════════════════
# Protocols
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStore(Protocol):
    """
    Orders are insert-only except the pending → paid transition.

    delete() exists for saga compensation of an order that never
    became visible as a completed checkout.
    """

    async def insert(self, order: Order) -> Result[None, StoreError]:
        ...

    async def delete(self, order_id: str) -> Result[bool, StoreError]:
        ...

    async def get(self, order_id: str) -> Result[Order | None, StoreError]:
        ...

    async def list_for(self, principal_id: str) -> Result[list[Order], StoreError]:
        """Orders of one principal, newest first."""
        ...

    async def mark_paid(self, order_id: str, at: datetime) -> Result[bool, StoreError]:
        """Ok(True) only if the order was pending."""
        ...


class ProfileStore(Protocol):
    async def get(self, principal_id: str) -> Result[Profile | None, StoreError]:
        ...

    async def upsert(self, profile: Profile) -> Result[None, StoreError]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Stores
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryOrderStore:
    """In-memory orders. Single process / tests."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def insert(self, order: Order) -> Result[None, StoreError]:
        async with self._lock:
            if order.id in self._orders:
                return Error(StoreError(f"Duplicate order id: {order.id}"))
            self._orders[order.id] = order
            return Ok(None)

    async def delete(self, order_id: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._orders.pop(order_id, None) is not None)

    async def get(self, order_id: str) -> Result[Order | None, StoreError]:
        async with self._lock:
            return Ok(self._orders.get(order_id))

    async def list_for(self, principal_id: str) -> Result[list[Order], StoreError]:
        async with self._lock:
            mine = [o for o in self._orders.values() if o.principal_id == principal_id]
        return Ok(sorted(mine, key=lambda o: o.created_at, reverse=True))

    async def mark_paid(self, order_id: str, at: datetime) -> Result[bool, StoreError]:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.payment_status is not PaymentStatus.PENDING:
                return Ok(False)
            self._orders[order_id] = replace(
                order, payment_status=PaymentStatus.PAID, updated_at=at
            )
            return Ok(True)

    def __len__(self) -> int:
        return len(self._orders)


class MemoryProfileStore:
    def __init__(self) -> None:
        self._profiles: dict[str, Profile] = {}

    async def get(self, principal_id: str) -> Result[Profile | None, StoreError]:
        return Ok(self._profiles.get(principal_id))

    async def upsert(self, profile: Profile) -> Result[None, StoreError]:
        self._profiles[profile.principal_id] = profile
        return Ok(None)


__all__ = (
    "OrderStore",
    "ProfileStore",
    "MemoryOrderStore",
    "MemoryProfileStore",
)
