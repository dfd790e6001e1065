"""
SQLAlchemy backend — every nitebite store over one async engine.

    from nitebite import db

    session_factory, engine = await db.create_database("sqlite+aiosqlite:///nitebite.db")
    await db.seed_demo(session_factory)

    catalog = db.SqlCatalog(session_factory)
"""

from __future__ import annotations

from nitebite.db._tables import (
    UtcDateTime,
    Base,
    ProductRow,
    BundleRow,
    CouponRow,
    CouponUsageRow,
    OrderRow,
    ProfileRow,
    RateLimitWindowRow,
    IdempotencyRow,
    create_database,
)
from nitebite.db._cell import SqlCell
from nitebite.db._stores import (
    SqlCatalog,
    SqlCouponLedger,
    SqlOrderStore,
    SqlProfileStore,
    SqlWindowStore,
)
from nitebite.db._idempotency import SqlIdempotencyStore
from nitebite.db._seed import DEMO_PRODUCTS, DEMO_BUNDLES, demo_coupons, seed_demo

__all__ = (
    "UtcDateTime",
    "Base",
    "ProductRow",
    "BundleRow",
    "CouponRow",
    "CouponUsageRow",
    "OrderRow",
    "ProfileRow",
    "RateLimitWindowRow",
    "IdempotencyRow",
    "create_database",
    "SqlCell",
    "SqlCatalog",
    "SqlCouponLedger",
    "SqlOrderStore",
    "SqlProfileStore",
    "SqlWindowStore",
    "SqlIdempotencyStore",
    "DEMO_PRODUCTS",
    "DEMO_BUNDLES",
    "demo_coupons",
    "seed_demo",
)
