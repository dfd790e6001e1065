"""
Wiring — assemble an OrderProcessor from Settings.

    processor, engine = await open_processor(Settings.from_env(), seed=True)
    app = create_app(processor)
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from kungfu import Error

from nitebite._types import Clock, utc_now
from nitebite.checkout import OrderProcessor, OrderResult
from nitebite.config import Settings
from nitebite.pricing import PriceValidator
from nitebite.ratelimit import RateLimiter
from nitebite import db


async def open_processor(
    settings: Settings | None = None,
    *,
    seed: bool = False,
    clock: Clock = utc_now,
) -> tuple[OrderProcessor, AsyncEngine]:
    """SQL-backed processor. The caller disposes the engine."""
    settings = settings or Settings()
    session_factory, engine = await db.create_database(settings.database_url)

    if seed:
        match await db.seed_demo(session_factory, clock=clock):
            case Error(err):
                await engine.dispose()
                raise RuntimeError(f"Could not seed demo data: {err.message}")
            case _:
                pass

    catalog = db.SqlCatalog(session_factory)
    ledger = db.SqlCouponLedger(session_factory)

    processor = OrderProcessor(
        catalog=catalog,
        ledger=ledger,
        orders=db.SqlOrderStore(session_factory),
        profiles=db.SqlProfileStore(session_factory),
        limiter=RateLimiter(
            db.SqlWindowStore(session_factory),
            clock=clock,
            policies=dict(settings.rate_limits),
        ),
        validator=PriceValidator(catalog, ledger, policy=settings.pricing, clock=clock),
        idempotency_store=db.SqlIdempotencyStore.for_type(session_factory, OrderResult, clock=clock),
        policy=settings.checkout,
        clock=clock,
    )
    return processor, engine


__all__ = ("open_processor",)
