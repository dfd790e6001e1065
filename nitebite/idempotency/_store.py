"""
Idempotency store — where request records live between attempts.

Expired records behave as absent everywhere.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Generic, Protocol, TypeVar

from kungfu import Result, Ok, Error

from nitebite._types import Clock, StoreError, utc_now
from nitebite.idempotency._types import RecordState, IdempotencyRecord

T = TypeVar("T")


class Store(Protocol[T]):
    """
    Request records keyed by idempotency key.

    set_pending is the lock: exactly one caller gets Ok(True) for a key that
    has no live record. Backends make it a single atomic insert.
    """

    async def get(self, key: str) -> Result[IdempotencyRecord[T] | None, StoreError]:
        ...

    async def set_pending(
        self,
        key: str,
        ttl: timedelta | None,
        input_hash: str | None = None,
    ) -> Result[bool, StoreError]:
        ...

    async def set_completed(
        self,
        key: str,
        value: T,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        """Settle a pending record. The ttl restarts from now."""
        ...

    async def delete(self, key: str) -> Result[bool, StoreError]:
        ...


type StoreAny = Store[Any]


# ═══════════════════════════════════════════════════════════════════════════════
# MemoryStore
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStore(Generic[T]):
    """Records in a dict. One process only; a restart forgets every key."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._records: dict[str, IdempotencyRecord[T]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> IdempotencyRecord[T] | None:
        record = self._records.get(key)
        if record is None:
            return None
        if record.expires_at is not None and self._clock() >= record.expires_at:
            del self._records[key]
            return None
        return record

    async def get(self, key: str) -> Result[IdempotencyRecord[T] | None, StoreError]:
        async with self._lock:
            return Ok(self._live(key))

    async def set_pending(
        self,
        key: str,
        ttl: timedelta | None,
        input_hash: str | None = None,
    ) -> Result[bool, StoreError]:
        async with self._lock:
            if self._live(key) is not None:
                return Ok(False)
            now = self._clock()
            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.PENDING,
                value=None,
                created_at=now,
                expires_at=now + ttl if ttl else None,
                input_hash=input_hash,
            )
            return Ok(True)

    async def set_completed(
        self,
        key: str,
        value: T,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        async with self._lock:
            pending = self._records.get(key)
            if pending is None:
                return Error(StoreError(f"No pending record for key: {key}"))
            self._records[key] = IdempotencyRecord(
                key=key,
                state=RecordState.COMPLETED,
                value=value,
                created_at=pending.created_at,
                expires_at=self._clock() + ttl if ttl else None,
                input_hash=pending.input_hash,
            )
            return Ok(None)

    async def delete(self, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._records.pop(key, None) is not None)

    def __len__(self) -> int:
        return len(self._records)


__all__ = (
    "Store",
    "StoreAny",
    "MemoryStore",
)
