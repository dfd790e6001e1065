"""
Saga — multi-step writes with compensation.

    from nitebite import saga as S

    saga = S.step(action, compensate).then(lambda v: S.step(action2, compensate2))
    result = await S.run(saga)
"""

from __future__ import annotations

from nitebite.saga._types import (
    CompensatorWithValue,
    SagaStep,
    SagaExpr,
    SagaResult,
    SagaError,
    Then,
    Collect,
)
from nitebite.saga._step import step, pure, collect
from nitebite.saga._run import run, run_step, run_compensators

__all__ = (
    "CompensatorWithValue",
    "SagaStep",
    "SagaExpr",
    "SagaResult",
    "SagaError",
    "Then",
    "Collect",
    "step",
    "pure",
    "collect",
    "run",
    "run_step",
    "run_compensators",
)
