"""
Window store — shared rate-limit counters.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from kungfu import Result, Ok, Error

from nitebite._types import StoreError
from nitebite.cas import Cell, MemoryCell
from nitebite.ratelimit._policy import Category
from nitebite.ratelimit._types import RateLimitWindow

type WindowKey = tuple[str, Category, datetime]

# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class WindowStore(Protocol):
    """
    One row per (identifier, category, window_start).

    blocked_until() looks across all windows of the pair, so a block
    outlives the window that triggered it.
    """

    async def get_window(
        self, identifier: str, category: Category, window_start: datetime
    ) -> Result[RateLimitWindow | None, StoreError]:
        ...

    async def blocked_until(
        self, identifier: str, category: Category
    ) -> Result[datetime | None, StoreError]:
        """Latest blocked_until of any window, or None."""
        ...

    async def open_window(
        self, window: RateLimitWindow
    ) -> Result[bool, StoreError]:
        """Insert unless present. Ok(False) if another request opened it first."""
        ...

    def count_cell(
        self, identifier: str, category: Category, window_start: datetime
    ) -> Cell:
        ...

    async def block(
        self,
        identifier: str,
        category: Category,
        window_start: datetime,
        until: datetime,
    ) -> Result[None, StoreError]:
        ...

    async def prune(self, before: datetime) -> Result[int, StoreError]:
        """Drop windows that ended and whose block elapsed before `before`."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryWindowStore:
    """In-memory windows. Single process / tests."""

    def __init__(self) -> None:
        self._windows: dict[WindowKey, RateLimitWindow] = {}
        self._lock = asyncio.Lock()

    async def get_window(
        self, identifier: str, category: Category, window_start: datetime
    ) -> Result[RateLimitWindow | None, StoreError]:
        async with self._lock:
            return Ok(self._windows.get((identifier, category, window_start)))

    async def blocked_until(
        self, identifier: str, category: Category
    ) -> Result[datetime | None, StoreError]:
        async with self._lock:
            blocks = [
                w.blocked_until
                for (ident, cat, _), w in self._windows.items()
                if ident == identifier and cat == category and w.blocked_until is not None
            ]
        return Ok(max(blocks) if blocks else None)

    async def open_window(self, window: RateLimitWindow) -> Result[bool, StoreError]:
        key = (window.identifier, window.category, window.window_start)
        async with self._lock:
            if key in self._windows:
                return Ok(False)
            self._windows[key] = window
            return Ok(True)

    def count_cell(
        self, identifier: str, category: Category, window_start: datetime
    ) -> Cell:
        key = (identifier, category, window_start)

        def load() -> int | None:
            window = self._windows.get(key)
            return window.request_count if window is not None else None

        def save(value: int) -> None:
            self._windows[key] = replace(self._windows[key], request_count=value)

        return MemoryCell(f"ratelimit:{identifier}:{category.value}", self._lock, load, save)

    async def block(
        self,
        identifier: str,
        category: Category,
        window_start: datetime,
        until: datetime,
    ) -> Result[None, StoreError]:
        key = (identifier, category, window_start)
        async with self._lock:
            window = self._windows.get(key)
            if window is None:
                return Error(StoreError(f"No window for {identifier}/{category.value}"))
            self._windows[key] = replace(window, blocked_until=until)
            return Ok(None)

    async def prune(self, before: datetime) -> Result[int, StoreError]:
        async with self._lock:
            stale = [
                key for key, w in self._windows.items()
                if w.window_end <= before
                and (w.blocked_until is None or w.blocked_until <= before)
            ]
            for key in stale:
                del self._windows[key]
        return Ok(len(stale))


__all__ = ("WindowStore", "MemoryWindowStore")
