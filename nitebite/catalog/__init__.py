"""
Catalog — products, virtual bundles and stock.

    from nitebite.catalog import MemoryCatalog, Product

    catalog = MemoryCatalog([Product("chips", "Lays Classic", money(20), stock_quantity=40)])
"""

from __future__ import annotations

from nitebite.catalog._types import Product, Bundle
from nitebite.catalog._store import CatalogStore, MemoryCatalog

__all__ = (
    "Product",
    "Bundle",
    "CatalogStore",
    "MemoryCatalog",
)
