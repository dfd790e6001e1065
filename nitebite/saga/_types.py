"""
Saga types — steps, composition, outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Callable, Awaitable
from kungfu import LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Compensator
# ═══════════════════════════════════════════════════════════════════════════════

type CompensatorWithValue[T] = Callable[[T], Awaitable[None]]
"""Undo for one step. Receives what the step produced, e.g. the Reservation."""

# ═══════════════════════════════════════════════════════════════════════════════
# Steps and Composition
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    """
    Forward action plus its undo.

    The undo is recorded only once the action returned Ok, so a step that
    failed is never compensated.
    """

    action: LazyCoroResult[T, E]
    compensate: CompensatorWithValue[T] | None
    name: str = "step"

    def then[U, E2](
        self,
        f: Callable[[T], SagaExpr[U, E2]],
    ) -> Then[T, U, E, E2]:
        return Then(self, f)


@dataclass(frozen=True, slots=True)
class Then[T, U, E, E2]:
    """Run inner, then build the next expression from its value."""

    inner: SagaExpr[T, E]
    f: Callable[[T], SagaExpr[U, E2]]

    def then[V, E3](
        self,
        g: Callable[[U], SagaExpr[V, E3]],
    ) -> Then[U, V, E | E2, E3]:
        return Then(self, g)


@dataclass(frozen=True, slots=True)
class Collect[T, E, E2]:
    """
    Run every step, even after one fails, then fold the failures.

    Note: Successful steps still record their compensators, so a folded
    failure rolls back everything that did succeed.
    """

    steps: tuple[SagaStep[T, E], ...]
    on_errors: Callable[[list[E]], E2]

    def then[U, E3](
        self,
        f: Callable[[tuple[T, ...]], SagaExpr[U, E3]],
    ) -> Then[tuple[T, ...], U, E2, E3]:
        return Then(self, f)


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    """Every step succeeded; value is what the last one produced."""

    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """
    A step failed (or raised) and the recorded undos ran in reverse.

    rollback_complete is False when any undo raised; the writes it was
    meant to revert may still be in place.
    """

    error: E
    step_failed: int
    compensators_run: int
    compensators_failed: int
    rollback_complete: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Expression
# ═══════════════════════════════════════════════════════════════════════════════

type SagaExpr[T, E] = (
    SagaStep[T, E] | Then[object, T, object, E] | Collect[object, object, E]
)

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CompensatorWithValue",
    "SagaStep",
    "Then",
    "Collect",
    "SagaExpr",
    "SagaResult",
    "SagaError",
)
