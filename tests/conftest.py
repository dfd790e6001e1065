"""Pytest fixtures for nitebite tests."""

from datetime import datetime, timedelta, timezone

import pytest

from nitebite._types import money
from nitebite.catalog import Bundle, MemoryCatalog, Product
from nitebite.checkout import OrderFields, OrderProcessor
from nitebite.coupons import Coupon, DiscountType, MemoryCouponLedger
from nitebite.orders import MemoryOrderStore, MemoryProfileStore
from nitebite.ratelimit import MemoryWindowStore, RateLimiter


class FakeClock:
    """Settable clock. Starts at a fixed UTC instant."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 14, 22, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return MemoryCatalog(
        products=[
            Product("chips", "Lays Classic", money(20), stock_quantity=40, category="chips"),
            Product("cola", "Coca-Cola", money(19), stock_quantity=100, category="drinks"),
            Product("monster", "Monster Energy", money(110), stock_quantity=10, category="drinks"),
            Product("rare", "Limited Edition Pocky", money(60), stock_quantity=1),
        ],
        bundles=[
            Bundle("exam-box", "Exam Night Box", money(199), contents=("Monster Energy", "Lays Classic")),
        ],
    )


@pytest.fixture
def ledger(clock):
    return MemoryCouponLedger([
        Coupon("LATE20", DiscountType.PERCENTAGE, money(20), max_uses=100, remaining_uses=100),
        Coupon("FLAT50", DiscountType.FIXED, money(50), min_order_amount=money(100)),
        Coupon("ONESHOT", DiscountType.FIXED, money(10), max_uses=1, remaining_uses=1),
        Coupon("OLD", DiscountType.FIXED, money(10), expires_at=clock() - timedelta(days=1)),
        Coupon("OFF", DiscountType.FIXED, money(10), is_active=False),
    ])


@pytest.fixture
def orders():
    return MemoryOrderStore()


@pytest.fixture
def profiles():
    return MemoryProfileStore()


@pytest.fixture
def windows():
    return MemoryWindowStore()


@pytest.fixture
def limiter(windows, clock):
    return RateLimiter(windows, clock=clock)


@pytest.fixture
def processor(catalog, ledger, orders, profiles, limiter, clock):
    return OrderProcessor(
        catalog=catalog,
        ledger=ledger,
        orders=orders,
        profiles=profiles,
        limiter=limiter,
        clock=clock,
    )


def make_fields(amount, **overrides) -> OrderFields:
    values = dict(
        customer_name="Asha Rao",
        email="asha@example.com",
        phone_number="9876543210",
        hostel_number="4",
        room_number="B-112",
        payment_method="qr",
        amount=money(amount),
        coupon_code=None,
    )
    values.update(overrides)
    return OrderFields(**values)


@pytest.fixture
def fields():
    return make_fields
