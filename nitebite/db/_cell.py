"""
SQL cell — compare-and-set as one conditional UPDATE.

    UPDATE products SET stock_quantity = :new
    WHERE id = :id AND stock_quantity = :expected

rowcount 1 means the write happened; 0 means somebody else wrote first.
"""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql import ColumnElement

from kungfu import Result, Ok, Error

from nitebite._types import StoreError
from nitebite.db._tables import Base


class SqlCell:
    """
    Integer column of one row, addressed by criteria.

    Example:
        SqlCell(
            session_factory,
            name=f"stock:{product_id}",
            model=ProductRow,
            column=ProductRow.stock_quantity,
            criteria=(ProductRow.id == product_id,),
        )
    """

    __slots__ = ("_session_factory", "_name", "_model", "_column", "_criteria")

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        name: str,
        model: type[Base],
        column: InstrumentedAttribute[int],
        criteria: tuple[ColumnElement[bool], ...],
    ) -> None:
        self._session_factory = session_factory
        self._name = name
        self._model = model
        self._column = column
        self._criteria = criteria

    @property
    def name(self) -> str:
        return self._name

    async def read(self) -> Result[int | None, StoreError]:
        try:
            async with self._session_factory() as session:
                value = await session.scalar(select(self._column).where(*self._criteria))
                return Ok(value)
        except Exception as e:
            return Error(StoreError(f"Failed to read {self._name}: {e}", e))

    async def compare_and_set(self, expected: int, new: int) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                stmt = (
                    update(self._model)
                    .where(*self._criteria, self._column == expected)
                    .values({self._column: new})
                    .execution_options(synchronize_session=False)
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount == 1)
        except Exception as e:
            return Error(StoreError(f"Failed to write {self._name}: {e}", e))


__all__ = ("SqlCell",)
