"""
Cart lines — what the client may tell us about its cart.

Identity and quantity only. Client-side names and prices are a display
cache and never reach checkout.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PhysicalItem:
    """A catalog product with a stock row."""

    product_id: str
    quantity: int

    @property
    def item_id(self) -> str:
        return self.product_id


@dataclass(frozen=True, slots=True)
class VirtualBundle:
    """A curated snack box. Priced from the bundle table, no stock."""

    bundle_id: str
    quantity: int

    @property
    def item_id(self) -> str:
        return self.bundle_id


type CartLine = PhysicalItem | VirtualBundle


def merge_lines(lines: Iterable[CartLine]) -> list[CartLine]:
    """Sum quantities of repeated ids, keeping first-seen order."""
    merged: dict[tuple[type, str], CartLine] = {}
    for line in lines:
        key = (type(line), line.item_id)
        seen = merged.get(key)
        if seen is None:
            merged[key] = line
            continue
        match seen:
            case PhysicalItem(product_id=pid, quantity=q):
                merged[key] = PhysicalItem(pid, q + line.quantity)
            case VirtualBundle(bundle_id=bid, quantity=q):
                merged[key] = VirtualBundle(bid, q + line.quantity)
    return list(merged.values())


__all__ = ("PhysicalItem", "VirtualBundle", "CartLine", "merge_lines")
