"""
Idempotency types — request records and outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E")


# ═══════════════════════════════════════════════════════════════════════════════
# Request Record
# ═══════════════════════════════════════════════════════════════════════════════


class RecordState(Enum):
    """
    PENDING while the first attempt runs, COMPLETED once it succeeded.

    A failed attempt removes its record, so the client may retry.
    """

    PENDING = auto()
    COMPLETED = auto()


@dataclass(frozen=True, slots=True)
class IdempotencyRecord(Generic[T]):
    """
    What a store keeps per request key.

    input_hash fingerprints the submitted cart. A request id reused with a
    different cart is reported instead of replaying the wrong order.
    """

    key: str
    state: RecordState
    value: T | None
    created_at: datetime
    expires_at: datetime | None
    input_hash: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotencyResult(Generic[T]):
    """from_cache is True when value was replayed from an earlier attempt."""

    value: T
    from_cache: bool
    key: str


class IdempotencyErrorKind(Enum):
    CONFLICT = auto()  # Another attempt holds the key
    TIMEOUT = auto()  # Gave up waiting for that attempt
    STORE_ERROR = auto()
    EXECUTION = auto()  # The operation itself failed
    INPUT_MISMATCH = auto()  # Key reused with a different fingerprint


@dataclass(frozen=True, slots=True)
class IdempotencyError(Generic[E]):
    """original_error carries the operation's own error for EXECUTION."""

    kind: IdempotencyErrorKind
    message: str
    original_error: E | None = None


__all__ = (
    "RecordState",
    "IdempotencyRecord",
    "IdempotencyResult",
    "IdempotencyError",
    "IdempotencyErrorKind",
)
