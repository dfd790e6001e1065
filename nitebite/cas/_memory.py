"""
In-memory cell — compare-and-set over a value held by a memory store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from kungfu import Result, Ok

from nitebite._types import StoreError


class MemoryCell:
    """
    Cell over in-process state.

    Note: The store owns the data and the lock; the cell only knows how to
    load and save one value. Share the store's lock so the compare-and-set
    is atomic against every other writer of that store.

    Example:
        cell = MemoryCell(
            name=f"stock:{product_id}",
            lock=self._lock,
            load=lambda: self._stock.get(product_id),
            save=lambda v: self._stock.__setitem__(product_id, v),
        )
    """

    __slots__ = ("_name", "_lock", "_load", "_save")

    def __init__(
        self,
        name: str,
        lock: asyncio.Lock,
        load: Callable[[], int | None],
        save: Callable[[int], None],
    ) -> None:
        self._name = name
        self._lock = lock
        self._load = load
        self._save = save

    @property
    def name(self) -> str:
        return self._name

    async def read(self) -> Result[int | None, StoreError]:
        async with self._lock:
            return Ok(self._load())

    async def compare_and_set(
        self, expected: int, new: int
    ) -> Result[bool, StoreError]:
        async with self._lock:
            if self._load() != expected:
                return Ok(False)
            self._save(new)
            return Ok(True)


__all__ = ("MemoryCell",)
