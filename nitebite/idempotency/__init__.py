"""
Idempotency — run a request at most once per key.

    from nitebite import idempotency as I

    guard = I.IdempotentExecutor(
        store=I.MemoryStore(),
        policy=I.Policy().with_ttl(minutes=10).with_on_pending(I.WAIT),
    )
    result = await guard.run("order:u1:req-42", lambda: place(cart))
"""

from __future__ import annotations

from nitebite.idempotency._types import (
    RecordState,
    IdempotencyRecord,
    IdempotencyResult,
    IdempotencyError,
    IdempotencyErrorKind,
)
from nitebite.idempotency._policy import OnPending, WAIT, FAIL, Policy
from nitebite.idempotency._store import Store, StoreAny, MemoryStore
from nitebite.idempotency._executor import Operation, Outcome, IdempotentExecutor

__all__ = (
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
    "OnPending",
    "WAIT",
    "FAIL",
    "Policy",
    "Store",
    "StoreAny",
    "MemoryStore",
    "Operation",
    "Outcome",
    "IdempotentExecutor",
)
