"""Catalog domain models."""

from __future__ import annotations

from dataclasses import dataclass

from nitebite._types import Money


@dataclass(frozen=True, slots=True)
class Product:
    id: str
    name: str
    price: Money
    stock_quantity: int
    category: str | None = None


@dataclass(frozen=True, slots=True)
class Bundle:
    """
    Virtual snack box.

    Has a price but no stock row; contents are display names only.
    """

    id: str
    name: str
    price: Money
    contents: tuple[str, ...] = ()


__all__ = ("Product", "Bundle")
