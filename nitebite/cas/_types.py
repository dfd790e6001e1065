"""
Conditional write types — cells, outcomes, errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Protocol

from kungfu import Result

from nitebite._types import StoreError

# ═══════════════════════════════════════════════════════════════════════════════
# Cell Protocol — a shared integer counter owned by some store
# ═══════════════════════════════════════════════════════════════════════════════


class Cell(Protocol):
    """
    A single shared counter: product stock, coupon uses, rate-limit count.

    Backends implement compare_and_set as one atomic statement:

        UPDATE products SET stock_quantity = :new
        WHERE id = :id AND stock_quantity = :expected

    Ok(False) means somebody else wrote first. Never overwrite silently.
    """

    @property
    def name(self) -> str:
        """Cell name for logs and errors."""
        ...

    async def read(self) -> Result[int | None, StoreError]:
        """Current value. Ok(None) if the row does not exist."""
        ...

    async def compare_and_set(
        self, expected: int, new: int
    ) -> Result[bool, StoreError]:
        """Write new only if the current value is still expected."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Updated:
    """Successful conditional write."""

    cell: str
    previous: int
    current: int
    attempts: int

    @property
    def delta(self) -> int:
        return self.current - self.previous


class CasErrorKind(Enum):
    """Why a conditional write did not happen."""

    MISSING = auto()  # No such row
    REFUSED = auto()  # Transform rejected the observed value
    CONTENDED = auto()  # Lost every compare-and-set race
    STORE = auto()  # Backend failed


@dataclass(frozen=True, slots=True)
class CasError:
    """
    Conditional write error.

    Note: observed is the last value read, so callers can report
    "only N available" without a second round-trip.
    """

    kind: CasErrorKind
    cell: str
    message: str
    observed: int | None = None
    cause: StoreError | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Cell",
    "Updated",
    "CasErrorKind",
    "CasError",
)
