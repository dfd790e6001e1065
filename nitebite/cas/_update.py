"""
Conditional update — the one optimistic-concurrency loop.

Stock, coupon uses and rate-limit counters all go through here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from kungfu import Result, Ok, Error

from nitebite.cas._types import Cell, Updated, CasError, CasErrorKind

logger = logging.getLogger("nitebite.cas")

DEFAULT_ATTEMPTS = 5

type Transform = Callable[[int], int | None]
"""Maps the observed value to the new one. None refuses the write."""


# ═══════════════════════════════════════════════════════════════════════════════
# conditional_update() — read, transform, compare-and-set, retry
# ═══════════════════════════════════════════════════════════════════════════════


async def conditional_update(
    cell: Cell,
    transform: Transform,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Result[Updated, CasError]:
    """
    Apply transform to a shared counter without locks.

    Each attempt reads the cell, computes the new value and writes it only
    if the cell still holds what was read. A lost race re-reads and tries
    again, up to `attempts` times.

    Example:
        result = await conditional_update(stock, lambda v: v - 2 if v >= 2 else None)

        match result:
            case Ok(updated):
                print(updated.previous, "->", updated.current)
            case Error(e) if e.kind is CasErrorKind.REFUSED:
                print("only", e.observed, "left")
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    observed: int | None = None

    for attempt in range(1, attempts + 1):
        read_result = await cell.read()
        match read_result:
            case Error(err):
                return Error(CasError(
                    kind=CasErrorKind.STORE,
                    cell=cell.name,
                    message=err.message,
                    cause=err,
                ))
            case Ok(value):
                observed = value

        if observed is None:
            return Error(CasError(
                kind=CasErrorKind.MISSING,
                cell=cell.name,
                message=f"{cell.name} does not exist",
            ))

        new = transform(observed)
        if new is None:
            return Error(CasError(
                kind=CasErrorKind.REFUSED,
                cell=cell.name,
                message=f"{cell.name} refused update at {observed}",
                observed=observed,
            ))

        write_result = await cell.compare_and_set(observed, new)
        match write_result:
            case Error(err):
                return Error(CasError(
                    kind=CasErrorKind.STORE,
                    cell=cell.name,
                    message=err.message,
                    observed=observed,
                    cause=err,
                ))
            case Ok(True):
                return Ok(Updated(
                    cell=cell.name,
                    previous=observed,
                    current=new,
                    attempts=attempt,
                ))
            case Ok(_):
                logger.debug("lost race on %s (attempt %d)", cell.name, attempt)

    return Error(CasError(
        kind=CasErrorKind.CONTENDED,
        cell=cell.name,
        message=f"{cell.name} changed concurrently {attempts} times",
        observed=observed,
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# Shorthands
# ═══════════════════════════════════════════════════════════════════════════════


async def conditional_decrement(
    cell: Cell,
    amount: int,
    *,
    floor: int = 0,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Result[Updated, CasError]:
    """Subtract amount unless the result would drop below floor."""
    if amount < 0:
        raise ValueError("amount must be >= 0")

    def take(current: int) -> int | None:
        return current - amount if current - amount >= floor else None

    return await conditional_update(cell, take, attempts=attempts)


async def conditional_increment(
    cell: Cell,
    amount: int = 1,
    *,
    ceiling: int | None = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Result[Updated, CasError]:
    """Add amount unless the result would exceed ceiling."""
    if amount < 0:
        raise ValueError("amount must be >= 0")

    def give(current: int) -> int | None:
        if ceiling is not None and current + amount > ceiling:
            return None
        return current + amount

    return await conditional_update(cell, give, attempts=attempts)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Transform",
    "DEFAULT_ATTEMPTS",
    "conditional_update",
    "conditional_decrement",
    "conditional_increment",
)
