"""
Catalog store — authoritative prices, stock and existence.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol

from kungfu import Result, Ok, Error

from nitebite._types import StoreError
from nitebite.cas import Cell, MemoryCell
from nitebite.catalog._types import Product, Bundle

# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class CatalogStore(Protocol):
    """
    Read side of the catalog plus the stock counter.

    Stock changes only through stock_cell() and the conditional write
    helpers; restock() is the administrative path used by seeding.
    """

    async def get_product(self, product_id: str) -> Result[Product | None, StoreError]:
        ...

    async def get_bundle(self, bundle_id: str) -> Result[Bundle | None, StoreError]:
        ...

    def stock_cell(self, product_id: str) -> Cell:
        ...

    async def restock(self, product_id: str, quantity: int) -> Result[None, StoreError]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryCatalog:
    """In-memory catalog. Single process / tests."""

    def __init__(
        self,
        products: Iterable[Product] = (),
        bundles: Iterable[Bundle] = (),
    ) -> None:
        self._products: dict[str, Product] = {p.id: p for p in products}
        self._bundles: dict[str, Bundle] = {b.id: b for b in bundles}
        self._lock = asyncio.Lock()

    async def get_product(self, product_id: str) -> Result[Product | None, StoreError]:
        async with self._lock:
            return Ok(self._products.get(product_id))

    async def get_bundle(self, bundle_id: str) -> Result[Bundle | None, StoreError]:
        return Ok(self._bundles.get(bundle_id))

    def stock_cell(self, product_id: str) -> Cell:
        def load() -> int | None:
            product = self._products.get(product_id)
            return product.stock_quantity if product is not None else None

        def save(value: int) -> None:
            self._products[product_id] = replace(
                self._products[product_id], stock_quantity=value
            )

        return MemoryCell(f"stock:{product_id}", self._lock, load, save)

    async def restock(self, product_id: str, quantity: int) -> Result[None, StoreError]:
        if quantity < 0:
            return Error(StoreError("restock quantity must be >= 0"))
        async with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return Error(StoreError(f"Unknown product: {product_id}"))
            self._products[product_id] = replace(
                product, stock_quantity=product.stock_quantity + quantity
            )
            return Ok(None)

    def add_product(self, product: Product) -> None:
        self._products[product.id] = product

    def add_bundle(self, bundle: Bundle) -> None:
        self._bundles[bundle.id] = bundle


__all__ = ("CatalogStore", "MemoryCatalog")
