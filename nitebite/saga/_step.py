"""
Saga constructors.

    reserve = S.step(
        guarded(lambda: reserve_stock(line), on_error=lambda e: CheckoutErrors.persistence()),
        compensate=release_stock,
        name="reserve:chips",
    )
    placed = reserve.then(lambda r: S.step(insert_order(draft), delete_order, name="persist"))
"""

from __future__ import annotations

from collections.abc import Callable
from kungfu import LazyCoroResult, Ok

from nitebite.lift import from_result
from nitebite.saga._types import SagaStep, Collect, CompensatorWithValue


def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: CompensatorWithValue[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    """A step whose action already reports failure as a Result. name shows up in rollback logs."""
    return SagaStep(action=action, compensate=compensate, name=name)


def pure[T](value: T) -> SagaStep[T, object]:
    # Skipped optional steps (no coupon) keep the chain shape.
    return SagaStep(action=from_result(Ok(value)), compensate=None, name="pure")


def collect[T, E, E2](
    *steps: SagaStep[T, E],
    on_errors: Callable[[list[E]], E2],
) -> Collect[T, E, E2]:
    """
    Attempt every step and report all failures together.

    Used for stock reservation: the customer sees each line that could not
    be reserved, and the lines that were reserved are released.
    """
    return Collect(steps=steps, on_errors=on_errors)


__all__ = ("step", "pure", "collect")
