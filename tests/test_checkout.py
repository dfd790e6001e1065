"""Tests for the order processor."""

import asyncio

import pytest
from kungfu import Ok, Error

from nitebite._types import StoreError, money
from nitebite.cart import PhysicalItem, VirtualBundle
from nitebite.checkout import (
    UNCERTAIN,
    CheckoutErrorKind,
    CheckoutPolicy,
    OrderProcessor,
    OrderState,
)
from nitebite.coupons import Coupon, DiscountType, MemoryCouponLedger
from nitebite.orders import MemoryOrderStore, MemoryProfileStore, PaymentStatus
from nitebite.ratelimit import Category, ORDER_CREATION, RateLimiter


async def stock_of(catalog, product_id):
    match await catalog.get_product(product_id):
        case Ok(product):
            return product.stock_quantity
        case Error(e):
            pytest.fail(e.message)


async def remaining_uses(ledger, code):
    match await ledger.get_coupon(code):
        case Ok(coupon):
            return coupon.remaining_uses
        case Error(e):
            pytest.fail(e.message)


def unlimited(windows, clock):
    return RateLimiter(
        windows,
        clock=clock,
        policies={Category.ORDER_CREATION: ORDER_CREATION.with_max_requests(1000)},
    )


class FailingOrderStore(MemoryOrderStore):
    async def insert(self, order):
        return Error(StoreError("disk full"))


class StickyOrderStore(MemoryOrderStore):
    """Orders cannot be deleted once written."""

    async def delete(self, order_id):
        return Error(StoreError("connection reset"))


class UsageOfflineLedger(MemoryCouponLedger):
    async def record_usage(self, usage):
        return Error(StoreError("coupon_usage locked"))


class RaisingProfileStore(MemoryProfileStore):
    async def upsert(self, profile):
        raise RuntimeError("profiles table locked")


class SlowOrderStore(MemoryOrderStore):
    """Insert takes a while; events mark its start and end."""

    def __init__(self):
        super().__init__()
        self.inserting = asyncio.Event()
        self.inserted = asyncio.Event()

    async def insert(self, order):
        self.inserting.set()
        await asyncio.sleep(0.05)
        result = await super().insert(order)
        self.inserted.set()
        return result


class TestHappyPath:
    async def test_places_order(self, processor, catalog, orders, fields):
        result = await processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)])

        assert result.success
        assert result.state is OrderState.COMPLETED
        assert result.message == "Order processed successfully"
        assert result.calculated_total == money(116)
        assert await stock_of(catalog, "chips") == 35

        match await orders.get(result.order_id):
            case Ok(order):
                assert order.amount == money(116)
                assert order.subtotal == money(100)
                assert order.payment_status is PaymentStatus.PENDING
                assert [i.to_dict() for i in order.items] == [
                    {"product_id": "chips", "name": "Lays Classic", "price": "20.00", "quantity": 5}
                ]
            case Error(e):
                pytest.fail(e.message)

    async def test_total_within_tolerance_is_accepted(self, processor, fields):
        result = await processor.place_order("user-1", fields("115.50"), [PhysicalItem("chips", 5)])

        assert result.success
        assert result.calculated_total == money(116)

    async def test_duplicate_lines_are_merged(self, processor, catalog, fields):
        lines = [PhysicalItem("chips", 2), PhysicalItem("chips", 3)]
        result = await processor.place_order("user-1", fields(116), lines)

        assert result.success
        assert await stock_of(catalog, "chips") == 35

    async def test_bundle_does_not_touch_stock(self, processor, catalog, fields):
        before = {pid: await stock_of(catalog, pid) for pid in ("chips", "monster")}

        result = await processor.place_order("user-1", fields(205), [VirtualBundle("exam-box", 1)])

        assert result.success
        assert {pid: await stock_of(catalog, pid) for pid in before} == before

    async def test_updates_profile(self, processor, profiles, fields):
        await processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)])

        match await profiles.get("user-1"):
            case Ok(profile):
                assert profile.full_name == "Asha Rao"
                assert profile.email == "asha@example.com"
            case Error(e):
                pytest.fail(e.message)

    async def test_profile_failure_does_not_fail_order(self, catalog, ledger, orders, limiter, clock, fields):
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=orders,
            profiles=RaisingProfileStore(),
            limiter=limiter,
            clock=clock,
        )

        result = await processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)])

        assert result.success
        assert len(orders) == 1


class TestRejections:
    async def test_price_mismatch(self, processor, catalog, orders, fields):
        result = await processor.place_order("user-1", fields(1), [PhysicalItem("chips", 5)])

        assert not result.success
        assert result.error_kind is CheckoutErrorKind.PRICE_MISMATCH
        assert result.state is OrderState.PRICE_MISMATCH
        assert result.calculated_total == money(116)
        assert result.message == "Price mismatch detected. Please refresh and try again."
        assert await stock_of(catalog, "chips") == 40
        assert len(orders) == 0

    async def test_price_mismatch_is_a_security_event(self, processor, fields, caplog):
        with caplog.at_level("WARNING", logger="nitebite.security"):
            await processor.place_order("user-1", fields(1), [PhysicalItem("chips", 5)])

        record = next(r for r in caplog.records if r.message == "price mismatch")
        assert record.client_total == "1.00"
        assert record.server_total == "116.00"

    async def test_validation_errors_are_itemized(self, processor, orders, fields):
        bad = fields(116, email="not-an-email", hostel_number="13", payment_method="card")

        result = await processor.place_order("user-1", bad, [PhysicalItem("chips", 0)])

        assert result.error_kind is CheckoutErrorKind.VALIDATION
        assert {e.field for e in result.errors} == {
            "email",
            "hostel_number",
            "payment_method",
            "items[0].quantity",
        }
        assert len(orders) == 0

    async def test_empty_cart(self, processor, fields):
        result = await processor.place_order("user-1", fields(16), [])

        assert result.error_kind is CheckoutErrorKind.VALIDATION
        assert result.errors[0].message == "Your cart is empty"

    async def test_quantity_over_limit(self, processor, fields):
        result = await processor.place_order("user-1", fields(1000), [PhysicalItem("chips", 51)])

        assert result.error_kind is CheckoutErrorKind.VALIDATION
        assert result.errors[0].message == "Quantity must be between 1 and 50"

    async def test_repeated_lines_share_the_quantity_limit(self, processor, catalog, orders, fields):
        # 60 x 19 = 1140, free delivery, + 6
        lines = [PhysicalItem("cola", 30), PhysicalItem("cola", 30)]

        result = await processor.place_order("user-1", fields(1146), lines)

        assert result.error_kind is CheckoutErrorKind.VALIDATION
        assert result.errors[0].message == "Total quantity of cola cannot exceed 50"
        assert await stock_of(catalog, "cola") == 100
        assert len(orders) == 0

    async def test_unknown_product(self, processor, fields):
        result = await processor.place_order("user-1", fields(26), [PhysicalItem("ghost", 1)])

        assert result.error_kind is CheckoutErrorKind.VALIDATION
        assert result.message == "Product not found: ghost"

    async def test_insufficient_stock_lists_every_item(self, processor, catalog, orders, fields):
        lines = [PhysicalItem("chips", 2), PhysicalItem("monster", 12), PhysicalItem("rare", 2)]
        # 40 + 1320 + 120 = 1480, free delivery
        result = await processor.place_order("user-1", fields(1486), lines)

        assert result.error_kind is CheckoutErrorKind.STOCK_INSUFFICIENT
        failed = {f.product_id: f for f in result.failed_items}
        assert set(failed) == {"monster", "rare"}
        assert failed["monster"].reason == "Insufficient stock - only 10 available"
        assert failed["monster"].available == 10
        assert failed["rare"].requested == 2
        # chips were reserved, then released
        assert await stock_of(catalog, "chips") == 40
        assert len(orders) == 0

    async def test_out_of_stock(self, processor, catalog, fields):
        await processor.place_order("user-2", fields(76), [PhysicalItem("rare", 1)])

        result = await processor.place_order("user-1", fields(76), [PhysicalItem("rare", 1)])

        assert result.failed_items[0].reason == "Out of stock"
        assert await stock_of(catalog, "rare") == 0

    async def test_rate_limited(self, processor, fields):
        for _ in range(5):
            await processor.place_order("user-1", fields(1), [PhysicalItem("chips", 5)])

        result = await processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)])

        assert result.error_kind is CheckoutErrorKind.RATE_LIMITED
        assert result.state is OrderState.RATE_LIMITED
        assert result.retry_after == 30 * 60
        assert result.message.startswith("Too many orders. Please wait until")


class TestCoupons:
    async def test_discount_applied_and_redeemed(self, processor, ledger, orders, fields):
        result = await processor.place_order(
            "user-1", fields(96, coupon_code="late20"), [PhysicalItem("chips", 5)]
        )

        assert result.success
        assert result.calculated_total == money(96)
        assert await remaining_uses(ledger, "LATE20") == 99

        match await ledger.usages("LATE20"):
            case Ok(usages):
                assert [(u.principal_id, u.order_id) for u in usages] == [("user-1", result.order_id)]
            case Error(e):
                pytest.fail(e.message)

    async def test_invalid_coupon_is_ignored_by_default(self, processor, ledger, fields):
        result = await processor.place_order(
            "user-1", fields(116, coupon_code="OLD"), [PhysicalItem("chips", 5)]
        )

        assert result.success
        assert result.calculated_total == money(116)

    async def test_invalid_coupon_rejected_when_required(self, catalog, ledger, orders, profiles, limiter, clock, fields):
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=orders,
            profiles=profiles,
            limiter=limiter,
            policy=CheckoutPolicy().with_require_valid_coupon(),
            clock=clock,
        )

        result = await processor.place_order(
            "user-1", fields(116, coupon_code="OLD"), [PhysicalItem("chips", 5)]
        )

        assert result.error_kind is CheckoutErrorKind.COUPON_INVALID
        assert result.message == "Invalid or expired coupon"
        assert await stock_of(catalog, "chips") == 40

    async def test_second_use_by_same_principal(self, processor, fields):
        first = await processor.place_order(
            "user-1", fields(96, coupon_code="LATE20"), [PhysicalItem("chips", 5)]
        )
        # Second checkout believes the discount still applies
        second = await processor.place_order(
            "user-1", fields(96, coupon_code="LATE20"), [PhysicalItem("chips", 5)]
        )

        assert first.success
        assert second.error_kind is CheckoutErrorKind.PRICE_MISMATCH
        assert second.calculated_total == money(116)

    async def test_last_use_goes_to_exactly_one_order(self, catalog, ledger, orders, profiles, windows, clock, fields):
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=orders,
            profiles=profiles,
            limiter=unlimited(windows, clock),
            clock=clock,
        )

        results = await asyncio.gather(*[
            processor.place_order(f"user-{i}", fields(106, coupon_code="ONESHOT"), [PhysicalItem("chips", 5)])
            for i in range(6)
        ])

        winners = [r for r in results if r.success]
        losers = [r for r in results if not r.success]
        assert len(winners) == 1
        assert all(r.error_kind is CheckoutErrorKind.COUPON_INVALID for r in losers)
        assert await remaining_uses(ledger, "ONESHOT") == 0
        match await ledger.usages("ONESHOT"):
            case Ok(usages):
                assert len(usages) == 1
            case Error(e):
                pytest.fail(e.message)
        # losers released their chips
        assert await stock_of(catalog, "chips") == 35
        assert len(orders) == 1

    async def test_concurrent_redemption_by_same_principal(self, catalog, ledger, orders, profiles, windows, clock, fields):
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=orders,
            profiles=profiles,
            limiter=unlimited(windows, clock),
            clock=clock,
        )

        results = await asyncio.gather(*[
            processor.place_order("user-1", fields(96, coupon_code="LATE20"), [PhysicalItem("chips", 5)])
            for _ in range(3)
        ])

        assert sum(r.success for r in results) == 1
        assert await remaining_uses(ledger, "LATE20") == 99
        assert len(orders) == 1


class TestConcurrency:
    async def test_last_unit_sold_once(self, catalog, ledger, orders, profiles, windows, clock, fields):
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=orders,
            profiles=profiles,
            limiter=unlimited(windows, clock),
            clock=clock,
        )

        results = await asyncio.gather(*[
            processor.place_order(f"user-{i}", fields(76), [PhysicalItem("rare", 1)])
            for i in range(8)
        ])

        assert sum(r.success for r in results) == 1
        assert await stock_of(catalog, "rare") == 0
        assert len(orders) == 1

    async def test_stock_never_oversold(self, catalog, ledger, orders, profiles, windows, clock, fields):
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=orders,
            profiles=profiles,
            limiter=unlimited(windows, clock),
            clock=clock,
        )

        results = await asyncio.gather(*[
            processor.place_order(f"user-{i}", fields(226), [PhysicalItem("monster", 2)])
            for i in range(8)
        ])

        sold = 2 * sum(r.success for r in results)
        assert sold <= 10
        assert await stock_of(catalog, "monster") == 10 - sold
        assert len(orders) == sold // 2


class TestFailures:
    async def test_persistence_failure_restores_stock(self, catalog, ledger, profiles, limiter, clock, fields):
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=FailingOrderStore(),
            profiles=profiles,
            limiter=limiter,
            clock=clock,
        )

        result = await processor.place_order(
            "user-1", fields(96, coupon_code="LATE20"), [PhysicalItem("chips", 5)]
        )

        assert result.error_kind is CheckoutErrorKind.PERSISTENCE
        assert result.message == "Failed to process order. Please try again."
        assert await stock_of(catalog, "chips") == 40
        assert await remaining_uses(ledger, "LATE20") == 100

    async def test_usage_failure_returns_coupon_use(self, catalog, orders, profiles, limiter, clock, fields):
        ledger = UsageOfflineLedger([
            Coupon("LATE20", DiscountType.PERCENTAGE, money(20), max_uses=100, remaining_uses=100),
        ])
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=orders,
            profiles=profiles,
            limiter=limiter,
            clock=clock,
        )

        result = await processor.place_order(
            "user-1", fields(96, coupon_code="LATE20"), [PhysicalItem("chips", 5)]
        )

        assert result.error_kind is CheckoutErrorKind.PERSISTENCE
        assert await remaining_uses(ledger, "LATE20") == 100
        assert await stock_of(catalog, "chips") == 40
        assert len(orders) == 0

    async def test_incomplete_rollback_reports_uncertain_outcome(self, catalog, profiles, limiter, clock, fields, caplog):
        ledger = UsageOfflineLedger([
            Coupon("LATE20", DiscountType.PERCENTAGE, money(20), max_uses=100, remaining_uses=100),
        ])
        processor = OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=StickyOrderStore(),
            profiles=profiles,
            limiter=limiter,
            clock=clock,
        )

        with caplog.at_level("CRITICAL", logger="nitebite.order"):
            result = await processor.place_order(
                "user-1", fields(96, coupon_code="LATE20"), [PhysicalItem("chips", 5)]
            )

        assert result.error_kind is CheckoutErrorKind.PERSISTENCE
        assert result.message == UNCERTAIN
        assert any("rollback incomplete" in r.getMessage() for r in caplog.records)


class TestIdempotency:
    async def test_retry_with_same_request_id_creates_one_order(self, processor, catalog, orders, fields):
        lines = [PhysicalItem("chips", 5)]

        first = await processor.place_order("user-1", fields(116), lines, request_id="req-1")
        second = await processor.place_order("user-1", fields(116), lines, request_id="req-1")

        assert first.success and second.success
        assert second.replayed
        assert not first.replayed
        assert first.order_id == second.order_id
        assert len(orders) == 1
        assert await stock_of(catalog, "chips") == 35

    async def test_concurrent_double_submit(self, processor, orders, fields):
        lines = [PhysicalItem("chips", 5)]

        results = await asyncio.gather(*[
            processor.place_order("user-1", fields(116), lines, request_id="req-1")
            for _ in range(3)
        ])

        assert len({r.order_id for r in results}) == 1
        assert len(orders) == 1

    async def test_request_id_reused_for_different_cart(self, processor, fields):
        await processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)], request_id="req-1")

        result = await processor.place_order(
            "user-1", fields(55), [PhysicalItem("cola", 1), PhysicalItem("chips", 1)], request_id="req-1"
        )

        assert result.error_kind is CheckoutErrorKind.VALIDATION
        assert result.errors[0].field == "request_id"

    async def test_rejection_is_not_cached(self, processor, fields):
        lines = [PhysicalItem("chips", 5)]

        rejected = await processor.place_order("user-1", fields(1), lines, request_id="req-1")
        accepted = await processor.place_order("user-1", fields(116), lines, request_id="req-1")

        assert rejected.error_kind is CheckoutErrorKind.PRICE_MISMATCH
        assert accepted.success
        assert not accepted.replayed

    async def test_request_ids_are_scoped_per_principal(self, processor, orders, fields):
        lines = [PhysicalItem("chips", 5)]

        a = await processor.place_order("user-1", fields(116), lines, request_id="req-1")
        b = await processor.place_order("user-2", fields(116), lines, request_id="req-1")

        assert a.order_id != b.order_id
        assert len(orders) == 2


class TestCancellation:
    @pytest.fixture
    def slow_orders(self):
        return SlowOrderStore()

    @pytest.fixture
    def slow_processor(self, catalog, ledger, slow_orders, profiles, limiter, clock):
        return OrderProcessor(
            catalog=catalog,
            ledger=ledger,
            orders=slow_orders,
            profiles=profiles,
            limiter=limiter,
            clock=clock,
        )

    async def test_cancelled_caller_leaves_order_whole(self, slow_processor, slow_orders, catalog, fields):
        task = asyncio.create_task(
            slow_processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)])
        )
        await slow_orders.inserting.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await slow_orders.inserted.wait()

        assert len(slow_orders) == 1
        assert await stock_of(catalog, "chips") == 35

    async def test_retry_after_cancel_replays_the_same_order(self, slow_processor, slow_orders, catalog, fields):
        lines = [PhysicalItem("chips", 5)]
        task = asyncio.create_task(
            slow_processor.place_order("user-1", fields(116), lines, request_id="req-1")
        )
        await slow_orders.inserting.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        retry = await slow_processor.place_order("user-1", fields(116), lines, request_id="req-1")

        assert retry.success
        assert retry.replayed
        match await slow_orders.list_for("user-1"):
            case Ok([order]):
                assert order.id == retry.order_id
            case other:
                pytest.fail(f"unexpected {other!r}")
        assert await stock_of(catalog, "chips") == 35


class TestOtherOperations:
    async def test_list_orders_newest_first(self, processor, clock, fields):
        first = await processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)])
        clock.advance(minutes=5)
        second = await processor.place_order("user-1", fields(35), [PhysicalItem("cola", 1)])
        await processor.place_order("user-2", fields(35), [PhysicalItem("cola", 1)])

        match await processor.list_orders("user-1"):
            case Ok(mine):
                assert [o.id for o in mine] == [second.order_id, first.order_id]
            case Error(e):
                pytest.fail(e.message)

    async def test_mark_paid_once(self, processor, fields):
        placed = await processor.place_order("user-1", fields(116), [PhysicalItem("chips", 5)])

        match (await processor.mark_paid(placed.order_id), await processor.mark_paid(placed.order_id)):
            case (Ok(True), Ok(False)):
                pass
            case other:
                pytest.fail(f"unexpected {other!r}")

    async def test_validate_prices_preview(self, processor):
        result = await processor.validate_prices([PhysicalItem("chips", 5)], "LATE20")
        assert result.total == money(96)

    @pytest.mark.parametrize(
        "lines",
        [
            [PhysicalItem("chips", -3)],
            [PhysicalItem("chips", 5), PhysicalItem("cola", 0)],
            [PhysicalItem("cola", 30), PhysicalItem("cola", 30)],
        ],
    )
    async def test_previews_reject_bad_quantities(self, processor, lines):
        priced = await processor.validate_prices(lines, "LATE20")
        check = await processor.validate_coupon_for_cart("user-1", "FLAT50", lines)

        assert not priced.success
        assert priced.message.startswith("Invalid quantity for")
        assert not check.valid

    async def test_validate_coupon_for_cart_uses_server_subtotal(self, processor):
        check = await processor.validate_coupon_for_cart("user-1", "FLAT50", [PhysicalItem("chips", 5)])

        assert check.valid
        assert check.discount_amount == money(50)

    async def test_validate_coupon_is_rate_limited(self, processor):
        for _ in range(20):
            await processor.validate_coupon("user-1", "NOPE", money(100))

        check = await processor.validate_coupon("user-1", "LATE20", money(100))

        assert not check.valid
        assert check.message.startswith("Too many coupon attempts")
