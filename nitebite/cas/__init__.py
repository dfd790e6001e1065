"""
Conditional writes — optimistic concurrency for shared counters.

    from nitebite import cas

    match await cas.conditional_decrement(catalog.stock_cell("chips"), 2):
        case Ok(updated):
            ...
        case Error(e) if e.kind is cas.CasErrorKind.REFUSED:
            print(f"only {e.observed} left")
"""

from __future__ import annotations

from nitebite.cas._types import Cell, Updated, CasError, CasErrorKind
from nitebite.cas._update import (
    Transform,
    DEFAULT_ATTEMPTS,
    conditional_update,
    conditional_decrement,
    conditional_increment,
)
from nitebite.cas._memory import MemoryCell

__all__ = (
    "Cell",
    "Updated",
    "CasError",
    "CasErrorKind",
    "Transform",
    "DEFAULT_ATTEMPTS",
    "conditional_update",
    "conditional_decrement",
    "conditional_increment",
    "MemoryCell",
)
