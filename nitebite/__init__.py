"""
nitebite — secure checkout for a late-night snack delivery storefront.

Take a client cart, re-derive every rupee from the catalog and coupon
ledger, reserve stock without overselling, and record the order, or leave
nothing behind.

    from nitebite.checkout import OrderProcessor, OrderFields, PhysicalItem
    from nitebite.wiring import open_processor
    from nitebite.api import create_app

Subpackages:
    cas          conditional writes on shared counters
    saga         steps with compensators, rolled back in reverse
    idempotency  at-most-once execution per request key
    ratelimit    fixed-window limits per endpoint category
    catalog      products, bundles, stock
    coupons      coupon ledger and lookup
    pricing      authoritative totals
    orders       orders and profiles
    checkout     the order processor
    db           SQLAlchemy backend for every store
"""

__version__ = "0.1.0"
