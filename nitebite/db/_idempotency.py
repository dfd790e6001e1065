"""
SQL idempotency store — one row per request key.

Values are stored as JSON text through an encode/decode pair, so the store
stays generic over the cached type:

    store = SqlIdempotencyStore.for_type(session_factory, OrderResult)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Generic, TypeVar

from pydantic import TypeAdapter
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from nitebite._types import Clock, StoreError, utc_now
from nitebite.idempotency import IdempotencyRecord, RecordState
from nitebite.db._tables import IdempotencyRow

T = TypeVar("T")


class SqlIdempotencyStore(Generic[T]):
    """
    Idempotency store over the idempotency_records table.

    Note: The primary key on `key` is the lock. set_pending is an INSERT;
    losing the race is an IntegrityError and answers Ok(False).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        encode: Callable[[T], str],
        decode: Callable[[str], T],
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._encode = encode
        self._decode = decode
        self._clock = clock

    @classmethod
    def for_type(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        value_type: type[T],
        *,
        clock: Clock = utc_now,
    ) -> SqlIdempotencyStore[T]:
        """JSON codec derived by pydantic from a dataclass (or any supported type)."""
        adapter: TypeAdapter[T] = TypeAdapter(value_type)
        return cls(
            session_factory,
            encode=lambda value: adapter.dump_json(value).decode(),
            decode=adapter.validate_json,
            clock=clock,
        )

    async def get(self, key: str) -> Result[IdempotencyRecord[T] | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(IdempotencyRow, key)
                if row is None:
                    return Ok(None)
                if row.expires_at is not None and self._clock() >= row.expires_at:
                    return Ok(None)
                return Ok(IdempotencyRecord(
                    key=row.key,
                    state=RecordState[row.state],
                    value=self._decode(row.value) if row.value is not None else None,
                    created_at=row.created_at,
                    expires_at=row.expires_at,
                    input_hash=row.input_hash,
                ))
        except Exception as e:
            return Error(StoreError(f"Failed to get: {e}", e))

    async def set_pending(
        self,
        key: str,
        ttl: timedelta | None,
        input_hash: str | None = None,
    ) -> Result[bool, StoreError]:
        now = self._clock()
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(IdempotencyRow).where(
                        IdempotencyRow.key == key,
                        IdempotencyRow.expires_at.is_not(None),
                        IdempotencyRow.expires_at <= now,
                    )
                )
                session.add(IdempotencyRow(
                    key=key,
                    state=RecordState.PENDING.name,
                    input_hash=input_hash,
                    created_at=now,
                    expires_at=now + ttl if ttl else None,
                ))
                await session.commit()
                return Ok(True)
        except IntegrityError:
            return Ok(False)
        except Exception as e:
            return Error(StoreError(f"Failed to set pending: {e}", e))

    async def set_completed(
        self,
        key: str,
        value: T,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(IdempotencyRow)
                    .where(IdempotencyRow.key == key)
                    .values(
                        state=RecordState.COMPLETED.name,
                        value=self._encode(value),
                        expires_at=self._clock() + ttl if ttl else None,
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                if result.rowcount == 0:  # type: ignore[attr-defined]
                    return Error(StoreError(f"No pending record for key: {key}"))
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to complete: {e}", e))

    async def delete(self, key: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(IdempotencyRow).where(IdempotencyRow.key == key))
                await session.commit()
                return Ok(result.rowcount > 0)  # type: ignore[attr-defined]
        except Exception as e:
            return Error(StoreError(f"Failed to delete: {e}", e))


__all__ = ("SqlIdempotencyStore",)
