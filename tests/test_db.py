"""Tests for the SQLAlchemy backend."""

import asyncio
from datetime import timedelta

import pytest
from kungfu import Ok, Error

from nitebite import cas, db
from nitebite._types import money
from nitebite.cart import PhysicalItem, VirtualBundle
from nitebite.checkout import CheckoutErrorKind, OrderResult, OrderState
from nitebite.config import Settings
from nitebite.coupons import CouponUsage
from nitebite.idempotency import RecordState
from nitebite.ratelimit import Category, RateLimitWindow, RateLimiter
from nitebite.wiring import open_processor


@pytest.fixture
def url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'nitebite.db'}"


@pytest.fixture
async def database(url, clock):
    session_factory, engine = await db.create_database(url)
    assert isinstance(await db.seed_demo(session_factory, clock=clock), Ok)
    yield session_factory
    await engine.dispose()


@pytest.fixture
async def sql_processor(url, clock):
    processor, engine = await open_processor(
        Settings().with_database_url(url), seed=True, clock=clock
    )
    yield processor
    await engine.dispose()


def ok(result):
    match result:
        case Ok(value):
            return value
        case Error(e):
            pytest.fail(e.message)


class TestCatalog:
    async def test_seeded_products(self, database):
        catalog = db.SqlCatalog(database)

        product = ok(await catalog.get_product("monster-energy"))
        bundle = ok(await catalog.get_bundle("exam-night-box"))

        assert product.price == money(110)
        assert product.stock_quantity == 40
        assert bundle.price == money(199)
        assert "Coca-Cola" in bundle.contents
        assert ok(await catalog.get_product("nope")) is None

    async def test_stock_cell_compare_and_set(self, database):
        cell = db.SqlCatalog(database).stock_cell("sting")

        assert ok(await cell.read()) == 80
        assert ok(await cell.compare_and_set(80, 79)) is True
        assert ok(await cell.compare_and_set(80, 78)) is False
        assert ok(await cell.read()) == 79

    async def test_missing_row_reads_none(self, database):
        cell = db.SqlCatalog(database).stock_cell("nope")

        assert ok(await cell.read()) is None
        match await cas.conditional_decrement(cell, 1):
            case Error(e):
                assert e.kind is cas.CasErrorKind.MISSING
            case Ok(_):
                pytest.fail("decremented a missing row")

    async def test_decrement_refused_below_zero(self, database):
        cell = db.SqlCatalog(database).stock_cell("haldiram-bhujiya")

        match await cas.conditional_decrement(cell, 31):
            case Error(e):
                assert e.kind is cas.CasErrorKind.REFUSED
                assert e.observed == 30
            case Ok(_):
                pytest.fail("oversold")

    async def test_restock(self, database):
        catalog = db.SqlCatalog(database)

        assert isinstance(await catalog.restock("sprite", 20), Ok)
        assert isinstance(await catalog.restock("nope", 1), Error)
        assert ok(await catalog.get_product("sprite")).stock_quantity == 100


class TestCouponLedger:
    async def test_codes_are_case_insensitive(self, database):
        ledger = db.SqlCouponLedger(database)

        coupon = ok(await ledger.get_coupon("firstbit"))

        assert coupon.code == "FIRSTBIT"
        assert ok(await ledger.uses_cell("firstbit").read()) == 1

    async def test_usage_is_unique_per_principal(self, database, clock):
        ledger = db.SqlCouponLedger(database)

        def usage(principal, order):
            return CouponUsage("FIRSTBIT", principal, order, clock())

        assert ok(await ledger.record_usage(usage("user-1", "o-1"))) is True
        assert ok(await ledger.record_usage(usage("user-1", "o-2"))) is False
        assert ok(await ledger.has_used("firstbit", "user-1")) is True
        assert ok(await ledger.has_used("FIRSTBIT", "user-2")) is False

        assert ok(await ledger.delete_usage("o-1")) is True
        assert ok(await ledger.usages("FIRSTBIT")) == []


class TestWindowStore:
    async def test_open_window_once(self, database, clock):
        store = db.SqlWindowStore(database)
        start = clock().replace(minute=0, second=0, microsecond=0)
        window = RateLimitWindow(
            identifier="user-1",
            category=Category.ORDER_CREATION,
            window_start=start,
            window_end=start + timedelta(hours=1),
            request_count=1,
        )

        assert ok(await store.open_window(window)) is True
        assert ok(await store.open_window(window)) is False

        stored = ok(await store.get_window("user-1", Category.ORDER_CREATION, start))
        assert stored.request_count == 1
        assert stored.window_start == start

    async def test_block_outlives_window(self, database, clock):
        limiter = RateLimiter(db.SqlWindowStore(database), clock=clock)

        for _ in range(5):
            assert (await limiter.check_order("user-1")).allowed
        blocked = await limiter.check_order("user-1")
        assert not blocked.allowed

        # 22:30 + 30 min block; the next window opens at 23:00
        clock.advance(minutes=29)
        assert not (await limiter.check_order("user-1")).allowed
        clock.advance(minutes=2)
        assert (await limiter.check_order("user-1")).allowed

    async def test_prune(self, database, clock):
        limiter = RateLimiter(db.SqlWindowStore(database), clock=clock)
        await limiter.check_order("user-1")

        clock.advance(hours=2)

        assert ok(await limiter.cleanup()) == 1


class TestIdempotencyStore:
    async def test_order_result_round_trip(self, database, clock):
        store = db.SqlIdempotencyStore.for_type(database, OrderResult, clock=clock)
        result = OrderResult(
            success=True,
            message="Order processed successfully",
            state=OrderState.COMPLETED,
            order_id="o-1",
            calculated_total=money("116.00"),
        )

        assert ok(await store.set_pending("order:u:r", timedelta(minutes=10), "hash")) is True
        assert ok(await store.set_pending("order:u:r", timedelta(minutes=10), "hash")) is False
        assert isinstance(await store.set_completed("order:u:r", result, timedelta(minutes=10)), Ok)

        record = ok(await store.get("order:u:r"))
        assert record.state is RecordState.COMPLETED
        assert record.input_hash == "hash"
        assert record.value.order_id == "o-1"
        assert record.value.state is OrderState.COMPLETED
        assert record.value.calculated_total == money(116)

    async def test_expired_record_is_replaced(self, database, clock):
        store = db.SqlIdempotencyStore.for_type(database, OrderResult, clock=clock)

        await store.set_pending("k", timedelta(minutes=1), None)
        clock.advance(minutes=2)

        assert ok(await store.get("k")) is None
        assert ok(await store.set_pending("k", timedelta(minutes=1), None)) is True


class TestSqlProcessor:
    async def test_place_and_list(self, sql_processor, clock, fields):
        # 2 x 110 = 220, free delivery, + 6
        result = await sql_processor.place_order(
            "user-1", fields(226), [PhysicalItem("monster-energy", 2)], request_id="r-1"
        )

        assert result.success, result.message
        assert result.calculated_total == money(226)

        orders = ok(await sql_processor.list_orders("user-1"))
        assert [o.id for o in orders] == [result.order_id]
        assert orders[0].items[0].price == money(110)
        assert orders[0].request_id == "r-1"

    async def test_replay_from_database(self, sql_processor, fields):
        lines = [VirtualBundle("exam-night-box", 1)]

        first = await sql_processor.place_order("user-1", fields(205), lines, request_id="r-1")
        second = await sql_processor.place_order("user-1", fields(205), lines, request_id="r-1")

        assert first.success
        assert second.replayed
        assert second.order_id == first.order_id
        assert len(ok(await sql_processor.list_orders("user-1"))) == 1

    async def test_launch_coupon_single_use(self, sql_processor, fields):
        # 5 x 20 = 100, -10%, + 10 + 6
        lines = [PhysicalItem("kurkure-green-chutney", 5)]

        first = await sql_processor.place_order("user-1", fields(106, coupon_code="FIRSTBIT"), lines)
        second = await sql_processor.place_order("user-2", fields(106, coupon_code="FIRSTBIT"), lines)

        assert first.success
        assert second.error_kind is CheckoutErrorKind.PRICE_MISMATCH
        assert second.calculated_total == money(116)

    async def test_concurrent_orders_never_oversell(self, sql_processor, url, fields):
        # 30 bhujiya in stock; 4 x 10 requested
        results = await asyncio.gather(*[
            sql_processor.place_order(f"user-{i}", fields(506), [PhysicalItem("haldiram-bhujiya", 10)])
            for i in range(4)
        ])

        sold = 10 * sum(r.success for r in results)
        assert 0 < sold <= 30

        session_factory, engine = await db.create_database(url)
        try:
            product = ok(await db.SqlCatalog(session_factory).get_product("haldiram-bhujiya"))
        finally:
            await engine.dispose()
        assert product.stock_quantity == 30 - sold

    async def test_mark_paid(self, sql_processor, fields):
        placed = await sql_processor.place_order("user-1", fields(35), [PhysicalItem("coca-cola", 1)])

        assert ok(await sql_processor.mark_paid(placed.order_id)) is True
        assert ok(await sql_processor.mark_paid(placed.order_id)) is False
