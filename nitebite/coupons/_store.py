"""
Coupon ledger — validity, remaining uses and the usage trail.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol

from kungfu import Result, Ok

from nitebite._types import StoreError
from nitebite.cas import Cell, MemoryCell
from nitebite.coupons._types import Coupon, CouponUsage

# ═══════════════════════════════════════════════════════════════════════════════
# Ledger Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class CouponLedger(Protocol):
    """
    Coupon storage.

    Codes are stored upper-case. remaining_uses changes only through
    uses_cell(); record_usage() refuses a second row for the same order
    or the same (code, principal) pair by returning Ok(False).
    """

    async def get_coupon(self, code: str) -> Result[Coupon | None, StoreError]:
        ...

    def uses_cell(self, code: str) -> Cell:
        ...

    async def has_used(self, code: str, principal_id: str) -> Result[bool, StoreError]:
        ...

    async def record_usage(self, usage: CouponUsage) -> Result[bool, StoreError]:
        ...

    async def delete_usage(self, order_id: str) -> Result[bool, StoreError]:
        ...

    async def usages(self, code: str) -> Result[list[CouponUsage], StoreError]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryCouponLedger:
    """In-memory coupon ledger. Single process / tests."""

    def __init__(self, coupons: Iterable[Coupon] = ()) -> None:
        self._coupons: dict[str, Coupon] = {c.code.upper(): c for c in coupons}
        self._usages: dict[str, CouponUsage] = {}  # by order id
        self._lock = asyncio.Lock()

    async def get_coupon(self, code: str) -> Result[Coupon | None, StoreError]:
        async with self._lock:
            return Ok(self._coupons.get(code))

    def uses_cell(self, code: str) -> Cell:
        code = code.upper()

        def load() -> int | None:
            coupon = self._coupons.get(code)
            return coupon.remaining_uses if coupon is not None else None

        def save(value: int) -> None:
            self._coupons[code] = replace(self._coupons[code], remaining_uses=value)

        return MemoryCell(f"coupon:{code}", self._lock, load, save)

    async def has_used(self, code: str, principal_id: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(any(
                u.coupon_code == code and u.principal_id == principal_id
                for u in self._usages.values()
            ))

    async def record_usage(self, usage: CouponUsage) -> Result[bool, StoreError]:
        async with self._lock:
            if usage.order_id in self._usages:
                return Ok(False)
            if any(
                u.coupon_code == usage.coupon_code and u.principal_id == usage.principal_id
                for u in self._usages.values()
            ):
                return Ok(False)
            self._usages[usage.order_id] = usage
            return Ok(True)

    async def delete_usage(self, order_id: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._usages.pop(order_id, None) is not None)

    async def usages(self, code: str) -> Result[list[CouponUsage], StoreError]:
        async with self._lock:
            return Ok([u for u in self._usages.values() if u.coupon_code == code])


__all__ = ("CouponLedger", "MemoryCouponLedger")
