"""
Core types for nitebite.

Re-exports from kungfu + shared aliases and value helpers.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult


# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════

type Money = Decimal
"""Rupee amount. Always Decimal, never float."""

PAISA = Decimal("0.01")
ZERO = Decimal("0")


def money(value: Decimal | int | str | float) -> Money:
    """
    Normalize a value to a rupee amount with paise precision.

    Floats go through str() so 0.1 stays 0.10, not 0.1000000000000000055.
    """
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(PAISA, rounding=ROUND_HALF_UP)


# ═══════════════════════════════════════════════════════════════════════════════
# Clock
# ═══════════════════════════════════════════════════════════════════════════════

type Clock = Callable[[], datetime]
"""Injectable time source. Returns timezone-aware UTC datetimes."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error — shared by every backend
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Aliases
    "Lazy",
    "Money",
    "Clock",
    # Helpers
    "PAISA",
    "ZERO",
    "money",
    "utc_now",
    "StoreError",
)
