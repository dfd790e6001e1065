"""
Saga execution with automatic rollback.

One run() walks the whole expression and keeps a single compensator list,
so a failure anywhere undoes every step that succeeded before it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from kungfu import Result, Ok, Error

from nitebite.saga._types import (
    SagaStep,
    SagaExpr,
    SagaResult,
    SagaError,
    Then,
    Collect,
    CompensatorWithValue,
)

logger = logging.getLogger("nitebite.saga")

# ═══════════════════════════════════════════════════════════════════════════════
# Recorded Compensator
# ═══════════════════════════════════════════════════════════════════════════════

type RecordedCompensator[T] = tuple[str, T, CompensatorWithValue[T]]


@dataclass(slots=True)
class _RunState:
    compensators: list[RecordedCompensator[Any]] = field(default_factory=list)
    steps: int = 0


# ═══════════════════════════════════════════════════════════════════════════════
# run_step() — Execute single step
# ═══════════════════════════════════════════════════════════════════════════════

async def run_step[T, E](
    step: SagaStep[T, E],
    compensators: list[RecordedCompensator[Any]],
) -> Result[T, E]:
    """Execute single step, recording compensator on success."""
    result = await step.action
    match result:
        case Ok(value):
            if step.compensate is not None:
                compensators.append((step.name, value, step.compensate))
            return Ok(value)
        case Error(e):
            return Error(e)


# ═══════════════════════════════════════════════════════════════════════════════
# run_compensators() — Rollback
# ═══════════════════════════════════════════════════════════════════════════════

async def run_compensators(
    compensators: list[RecordedCompensator[Any]],
) -> tuple[int, int]:
    """Run compensators in reverse. Returns (run, failed)."""
    comp_run = 0
    comp_failed = 0

    for name, value, comp in reversed(compensators):
        try:
            await comp(value)
            comp_run += 1
        except Exception:
            comp_failed += 1
            logger.exception("compensator %s failed", name)

    return comp_run, comp_failed


# ═══════════════════════════════════════════════════════════════════════════════
# _evaluate() — Walk the expression
# ═══════════════════════════════════════════════════════════════════════════════

async def _evaluate(expr: SagaExpr[Any, Any], state: _RunState) -> Result[Any, Any]:
    match expr:
        case SagaStep():
            state.steps += 1
            return await run_step(expr, state.compensators)

        case Then(inner=inner, f=f):
            inner_result = await _evaluate(inner, state)
            match inner_result:
                case Ok(value):
                    return await _evaluate(f(value), state)
                case Error(e):
                    return Error(e)

        case Collect(steps=steps, on_errors=on_errors):
            values: list[Any] = []
            errors: list[Any] = []
            for s in steps:
                state.steps += 1
                match await run_step(s, state.compensators):
                    case Ok(value):
                        values.append(value)
                    case Error(e):
                        errors.append(e)
            if errors:
                return Error(on_errors(errors))
            return Ok(tuple(values))

    raise TypeError(f"not a saga expression: {expr!r}")


# ═══════════════════════════════════════════════════════════════════════════════
# run() — Execute Saga
# ═══════════════════════════════════════════════════════════════════════════════

async def run[T, E](
    saga: SagaExpr[T, E],
    *,
    on_exception: Callable[[Exception], E] | None = None,
) -> Result[SagaResult[T], SagaError[E]]:
    """
    Execute saga with automatic rollback on failure.

    On success: returns SagaResult with value and metadata.
    On failure: runs compensators in reverse, returns SagaError.

    An exception escaping a step (or a .then() continuation) also triggers
    rollback. With on_exception it becomes a SagaError; without, it is
    re-raised after compensation.

    Example:
        from nitebite import saga as S

        checkout = (
            S.collect(*reserve_steps, on_errors=stock_error)
            .then(lambda reserved: S.step(insert_order, delete_order))
            .then(lambda order: S.step(redeem_coupon, release_coupon))
        )

        result = await S.run(checkout)

        match result:
            case Ok(r):
                print(f"Success: {r.value}")
            case Error(e):
                print(f"Failed at step {e.step_failed}, clean={e.rollback_complete}")
    """
    state = _RunState()

    try:
        result = await _evaluate(saga, state)
    except Exception as exc:
        comp_run, comp_failed = await run_compensators(state.compensators)
        if on_exception is None:
            raise
        logger.exception("saga aborted at step %d", state.steps)
        return Error(SagaError(
            error=on_exception(exc),
            step_failed=state.steps,
            compensators_run=comp_run,
            compensators_failed=comp_failed,
            rollback_complete=comp_failed == 0,
        ))

    match result:
        case Ok(value):
            return Ok(SagaResult(
                value=value,
                steps_executed=state.steps,
                compensators_recorded=len(state.compensators),
            ))

        case Error(error):
            comp_run, comp_failed = await run_compensators(state.compensators)
            if comp_failed:
                logger.error(
                    "rollback incomplete: %d of %d compensators failed",
                    comp_failed,
                    comp_run + comp_failed,
                )

            return Error(SagaError(
                error=error,
                step_failed=state.steps,
                compensators_run=comp_run,
                compensators_failed=comp_failed,
                rollback_complete=comp_failed == 0,
            ))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("run", "run_step", "run_compensators")
