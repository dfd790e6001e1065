"""
Demo data — a small late-night catalog, one snack box and a launch coupon.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from nitebite._types import Clock, StoreError, money, utc_now
from nitebite.catalog import Product, Bundle
from nitebite.coupons import Coupon, DiscountType
from nitebite.db._stores import SqlCatalog, SqlCouponLedger

DEMO_PRODUCTS = (
    Product("monster-energy", "Monster Energy", money(110), stock_quantity=40, category="drinks"),
    Product("monster-ultra", "Monster Ultra Energy Drink", money(115), stock_quantity=25, category="drinks"),
    Product("coca-cola", "Coca-Cola", money(19), stock_quantity=120, category="drinks"),
    Product("sting", "Sting", money(19), stock_quantity=80, category="drinks"),
    Product("sprite", "Sprite", money(19), stock_quantity=80, category="drinks"),
    Product("kurkure-green-chutney", "Kurkure Green Chutney", money(20), stock_quantity=60, category="chips"),
    Product("haldiram-bhujiya", "Haldiram Bhujiya", money(50), stock_quantity=30, category="chips"),
)

DEMO_BUNDLES = (
    Bundle(
        "exam-night-box",
        "Exam Night Survival Box",
        money(199),
        contents=("Monster Energy", "Kurkure Green Chutney", "Coca-Cola", "Haldiram Bhujiya"),
    ),
)


def demo_coupons(clock: Clock = utc_now) -> tuple[Coupon, ...]:
    return (
        Coupon(
            code="FIRSTBIT",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=money(10),
            max_uses=1,
            remaining_uses=1,
            expires_at=clock() + timedelta(days=30),
        ),
    )


async def seed_demo(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    clock: Clock = utc_now,
) -> Result[None, StoreError]:
    """Insert the demo catalog into an empty database."""
    catalog = SqlCatalog(session_factory)
    ledger = SqlCouponLedger(session_factory)

    for outcome in (
        await catalog.add_products(DEMO_PRODUCTS),
        await catalog.add_bundles(DEMO_BUNDLES),
        await ledger.add_coupons(demo_coupons(clock)),
    ):
        if isinstance(outcome, Error):
            return outcome

    return Ok(None)


__all__ = ("DEMO_PRODUCTS", "DEMO_BUNDLES", "demo_coupons", "seed_demo")
