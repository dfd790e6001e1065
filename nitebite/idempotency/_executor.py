"""
Idempotent execution — acquire, run, record.

Decision table for a key:

    no record            → set_pending, run, set_completed (delete on failure)
                           the attempt outlives a cancelled caller
    COMPLETED, same hash → replay cached value
    COMPLETED, new hash  → INPUT_MISMATCH
    PENDING              → WAIT: poll until it settles / FAIL: CONFLICT
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Awaitable
from dataclasses import dataclass, field
from typing import Any

from kungfu import Result, Ok, Error

from nitebite.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from nitebite.idempotency._store import StoreAny, MemoryStore
from nitebite.idempotency._policy import Policy, OnPending

logger = logging.getLogger("nitebite.idempotency")

type Operation[T, E] = Callable[[], Awaitable[Result[T, E]]]
type Outcome[T, E] = Result[IdempotencyResult[T], IdempotencyError[E]]


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _store_error(message: str, cause: object = None) -> Error[IdempotencyError[Any]]:
    return Error(IdempotencyError(
        kind=IdempotencyErrorKind.STORE_ERROR,
        message=message,
        original_error=cause,
    ))


def _from_record(
    record: IdempotencyRecord[Any],
    input_hash: str | None,
) -> Outcome[Any, Any] | None:
    """Settled record → outcome. None while still pending."""
    match record.state:
        case RecordState.COMPLETED:
            if (
                input_hash is not None
                and record.input_hash is not None
                and record.input_hash != input_hash
            ):
                return Error(IdempotencyError(
                    kind=IdempotencyErrorKind.INPUT_MISMATCH,
                    message="Request id was already used for a different request",
                ))
            return Ok(IdempotencyResult(value=record.value, from_cache=True, key=record.key))
        case RecordState.PENDING:
            return None


# ═══════════════════════════════════════════════════════════════════════════════
# IdempotentExecutor
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotentExecutor:
    """
    Runs operations at most once per key within the policy TTL.

    Example:
        guard = IdempotentExecutor(store=MemoryStore(), policy=Policy().with_ttl(minutes=10))

        match await guard.run(f"order:{user}:{request_id}", lambda: place(cart)):
            case Ok(r) if r.from_cache:
                print("replayed", r.value)
            case Ok(r):
                print("fresh", r.value)
            case Error(e):
                print(e.kind, e.message)
    """

    store: StoreAny = field(default_factory=MemoryStore)
    policy: Policy = field(default_factory=Policy)
    _inflight: set[asyncio.Future[Any]] = field(default_factory=set, init=False, repr=False)

    async def run[T, E](
        self,
        key: str,
        operation: Operation[T, E],
        *,
        input_hash: str | None = None,
    ) -> Outcome[T, E]:
        match await self.store.get(key):
            case Error(err):
                return _store_error(err.message, err.cause)
            case Ok(None):
                return await self._execute_new(key, operation, input_hash)
            case Ok(record):
                settled = _from_record(record, input_hash)
                if settled is not None:
                    return settled
                return await self._on_pending(key, input_hash)

    # ───────────────────────────────────────────────────────────────────────────
    # Pending
    # ───────────────────────────────────────────────────────────────────────────

    async def _on_pending(self, key: str, input_hash: str | None) -> Outcome[Any, Any]:
        if self.policy.conflict_strategy is OnPending.FAIL:
            return Error(IdempotencyError(
                kind=IdempotencyErrorKind.CONFLICT,
                message="Request is already being processed",
            ))

        timeout = self.policy.pending_wait_timeout.total_seconds()
        poll_interval = self.policy.poll_interval.total_seconds()
        elapsed = 0.0

        while elapsed < timeout:
            await asyncio.sleep(poll_interval)
            elapsed += poll_interval

            match await self.store.get(key):
                case Error(err):
                    return _store_error(err.message, err.cause)
                case Ok(None):
                    # In-flight attempt failed and was not cached.
                    return Error(IdempotencyError(
                        kind=IdempotencyErrorKind.CONFLICT,
                        message="Concurrent attempt with this request id did not complete",
                    ))
                case Ok(record):
                    settled = _from_record(record, input_hash)
                    if settled is not None:
                        return settled

        return Error(IdempotencyError(
            kind=IdempotencyErrorKind.TIMEOUT,
            message="Timeout waiting for pending operation",
        ))

    # ───────────────────────────────────────────────────────────────────────────
    # Execute
    # ───────────────────────────────────────────────────────────────────────────

    async def _execute_new[T, E](
        self,
        key: str,
        operation: Operation[T, E],
        input_hash: str | None,
    ) -> Outcome[T, E]:
        match await self.store.set_pending(key, self.policy.result_ttl, input_hash):
            case Error(err):
                return _store_error(err.message, err.cause)
            case Ok(False):
                # Lost the race for the slot
                return await self.run(key, operation, input_hash=input_hash)
            case Ok(_):
                pass

        # The caller may go away; the attempt still settles its record.
        attempt = asyncio.ensure_future(self._attempt(key, operation))
        self._inflight.add(attempt)
        attempt.add_done_callback(self._inflight.discard)
        return await asyncio.shield(attempt)

    async def _attempt[T, E](self, key: str, operation: Operation[T, E]) -> Outcome[T, E]:
        try:
            result = await operation()
        except asyncio.CancelledError:
            await asyncio.shield(self.store.delete(key))
            raise
        except Exception as e:
            await self.store.delete(key)
            logger.exception("idempotent operation %s raised", key)
            return Error(IdempotencyError(
                kind=IdempotencyErrorKind.EXECUTION,
                message=str(e),
                original_error=e,
            ))

        match result:
            case Ok(value):
                match await self.store.set_completed(key, value, self.policy.result_ttl):
                    case Error(err):
                        logger.error("could not record result for %s: %s", key, err.message)
                        return _store_error(err.message, err.cause)
                    case Ok(_):
                        return Ok(IdempotencyResult(value=value, from_cache=False, key=key))
            case Error(err):
                await self.store.delete(key)
                return Error(IdempotencyError(
                    kind=IdempotencyErrorKind.EXECUTION,
                    message="Operation returned Error",
                    original_error=err,
                ))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Operation",
    "Outcome",
    "IdempotentExecutor",
)
