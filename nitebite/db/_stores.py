"""
SQL stores — catalog, coupon ledger, orders, profiles, rate-limit windows.

Every method opens its own session and reports failures as StoreError
values. Unique constraints do the deduplication: an IntegrityError on
insert is the "somebody got there first" answer, not a failure.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from nitebite._types import StoreError, money
from nitebite.cas import Cell
from nitebite.catalog import Product, Bundle
from nitebite.coupons import Coupon, CouponUsage, DiscountType
from nitebite.orders import Order, OrderItemSnapshot, PaymentMethod, PaymentStatus, Profile
from nitebite.ratelimit import Category, RateLimitWindow
from nitebite.db._cell import SqlCell
from nitebite.db._tables import (
    ProductRow,
    BundleRow,
    CouponRow,
    CouponUsageRow,
    OrderRow,
    ProfileRow,
    RateLimitWindowRow,
)

type SessionFactory = async_sessionmaker[AsyncSession]


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class SqlCatalog:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_product(self, product_id: str) -> Result[Product | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(ProductRow, product_id)
                return Ok(_product(row) if row is not None else None)
        except Exception as e:
            return Error(StoreError(f"Failed to get product: {e}", e))

    async def get_bundle(self, bundle_id: str) -> Result[Bundle | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(BundleRow, bundle_id)
                if row is None:
                    return Ok(None)
                return Ok(Bundle(
                    id=row.id,
                    name=row.name,
                    price=money(row.price),
                    contents=tuple(row.contents),
                ))
        except Exception as e:
            return Error(StoreError(f"Failed to get bundle: {e}", e))

    def stock_cell(self, product_id: str) -> Cell:
        return SqlCell(
            self._session_factory,
            name=f"stock:{product_id}",
            model=ProductRow,
            column=ProductRow.stock_quantity,
            criteria=(ProductRow.id == product_id,),
        )

    async def restock(self, product_id: str, quantity: int) -> Result[None, StoreError]:
        if quantity < 0:
            return Error(StoreError("restock quantity must be >= 0"))
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(ProductRow)
                    .where(ProductRow.id == product_id)
                    .values(stock_quantity=ProductRow.stock_quantity + quantity)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                if result.rowcount == 0:  # type: ignore[attr-defined]
                    return Error(StoreError(f"Unknown product: {product_id}"))
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to restock: {e}", e))

    async def add_products(self, products: Iterable[Product]) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                session.add_all(
                    ProductRow(
                        id=p.id,
                        name=p.name,
                        price=p.price,
                        stock_quantity=p.stock_quantity,
                        category=p.category,
                    )
                    for p in products
                )
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to add products: {e}", e))

    async def add_bundles(self, bundles: Iterable[Bundle]) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                session.add_all(
                    BundleRow(id=b.id, name=b.name, price=b.price, contents=list(b.contents))
                    for b in bundles
                )
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to add bundles: {e}", e))


def _product(row: ProductRow) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        price=money(row.price),
        stock_quantity=row.stock_quantity,
        category=row.category,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Coupon ledger
# ═══════════════════════════════════════════════════════════════════════════════


class SqlCouponLedger:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_coupon(self, code: str) -> Result[Coupon | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(CouponRow, code.upper())
                if row is None:
                    return Ok(None)
                return Ok(Coupon(
                    code=row.code,
                    discount_type=DiscountType(row.discount_type),
                    discount_value=money(row.discount_value),
                    min_order_amount=money(row.min_order_amount),
                    max_uses=row.max_uses,
                    remaining_uses=row.remaining_uses,
                    is_active=row.is_active,
                    starts_at=row.starts_at,
                    expires_at=row.expires_at,
                ))
        except Exception as e:
            return Error(StoreError(f"Failed to get coupon: {e}", e))

    def uses_cell(self, code: str) -> Cell:
        code = code.upper()
        return SqlCell(
            self._session_factory,
            name=f"coupon:{code}",
            model=CouponRow,
            column=CouponRow.remaining_uses,
            criteria=(CouponRow.code == code,),
        )

    async def has_used(self, code: str, principal_id: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                found = await session.scalar(
                    select(func.count()).select_from(CouponUsageRow).where(
                        CouponUsageRow.coupon_code == code.upper(),
                        CouponUsageRow.principal_id == principal_id,
                    )
                )
                return Ok(bool(found))
        except Exception as e:
            return Error(StoreError(f"Failed to check usage: {e}", e))

    async def record_usage(self, usage: CouponUsage) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                session.add(CouponUsageRow(
                    coupon_code=usage.coupon_code.upper(),
                    principal_id=usage.principal_id,
                    order_id=usage.order_id,
                    used_at=usage.used_at,
                ))
                await session.commit()
                return Ok(True)
        except IntegrityError:
            return Ok(False)
        except Exception as e:
            return Error(StoreError(f"Failed to record usage: {e}", e))

    async def delete_usage(self, order_id: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(CouponUsageRow).where(CouponUsageRow.order_id == order_id)
                )
                await session.commit()
                return Ok(result.rowcount > 0)  # type: ignore[attr-defined]
        except Exception as e:
            return Error(StoreError(f"Failed to delete usage: {e}", e))

    async def usages(self, code: str) -> Result[list[CouponUsage], StoreError]:
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(CouponUsageRow)
                    .where(CouponUsageRow.coupon_code == code.upper())
                    .order_by(CouponUsageRow.id)
                )
                return Ok([
                    CouponUsage(
                        coupon_code=r.coupon_code,
                        principal_id=r.principal_id,
                        order_id=r.order_id,
                        used_at=r.used_at,
                    )
                    for r in rows
                ])
        except Exception as e:
            return Error(StoreError(f"Failed to list usages: {e}", e))

    async def add_coupons(self, coupons: Iterable[Coupon]) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                session.add_all(
                    CouponRow(
                        code=c.code.upper(),
                        discount_type=c.discount_type.value,
                        discount_value=c.discount_value,
                        min_order_amount=c.min_order_amount,
                        max_uses=c.max_uses,
                        remaining_uses=c.remaining_uses,
                        is_active=c.is_active,
                        starts_at=c.starts_at,
                        expires_at=c.expires_at,
                    )
                    for c in coupons
                )
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to add coupons: {e}", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Orders and profiles
# ═══════════════════════════════════════════════════════════════════════════════


class SqlOrderStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def insert(self, order: Order) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                session.add(OrderRow(
                    id=order.id,
                    principal_id=order.principal_id,
                    items=[item.to_dict() for item in order.items],
                    amount=order.amount,
                    subtotal=order.subtotal,
                    delivery_fee=order.delivery_fee,
                    convenience_fee=order.convenience_fee,
                    coupon_code=order.coupon_code,
                    coupon_discount=order.coupon_discount,
                    customer_name=order.customer_name,
                    email=order.email,
                    phone_number=order.phone_number,
                    hostel_number=order.hostel_number,
                    room_number=order.room_number,
                    payment_method=order.payment_method.value,
                    payment_status=order.payment_status.value,
                    request_id=order.request_id,
                    created_at=order.created_at,
                    updated_at=order.updated_at,
                ))
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to insert order: {e}", e))

    async def delete(self, order_id: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(OrderRow).where(OrderRow.id == order_id))
                await session.commit()
                return Ok(result.rowcount > 0)  # type: ignore[attr-defined]
        except Exception as e:
            return Error(StoreError(f"Failed to delete order: {e}", e))

    async def get(self, order_id: str) -> Result[Order | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(OrderRow, order_id)
                return Ok(_order(row) if row is not None else None)
        except Exception as e:
            return Error(StoreError(f"Failed to get order: {e}", e))

    async def list_for(self, principal_id: str) -> Result[list[Order], StoreError]:
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(OrderRow)
                    .where(OrderRow.principal_id == principal_id)
                    .order_by(OrderRow.created_at.desc())
                )
                return Ok([_order(r) for r in rows])
        except Exception as e:
            return Error(StoreError(f"Failed to list orders: {e}", e))

    async def mark_paid(self, order_id: str, at: datetime) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(OrderRow)
                    .where(
                        OrderRow.id == order_id,
                        OrderRow.payment_status == PaymentStatus.PENDING.value,
                    )
                    .values(payment_status=PaymentStatus.PAID.value, updated_at=at)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return Ok(result.rowcount == 1)  # type: ignore[attr-defined]
        except Exception as e:
            return Error(StoreError(f"Failed to mark paid: {e}", e))


def _order(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        principal_id=row.principal_id,
        items=tuple(
            OrderItemSnapshot(
                product_id=item["product_id"],
                name=item["name"],
                price=money(item["price"]),
                quantity=int(item["quantity"]),
            )
            for item in row.items
        ),
        amount=money(row.amount),
        subtotal=money(row.subtotal),
        delivery_fee=money(row.delivery_fee),
        convenience_fee=money(row.convenience_fee),
        customer_name=row.customer_name,
        email=row.email,
        phone_number=row.phone_number,
        hostel_number=row.hostel_number,
        room_number=row.room_number,
        payment_method=PaymentMethod(row.payment_method),
        payment_status=PaymentStatus(row.payment_status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        coupon_code=row.coupon_code,
        coupon_discount=money(row.coupon_discount),
        request_id=row.request_id,
    )


class SqlProfileStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get(self, principal_id: str) -> Result[Profile | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(ProfileRow, principal_id)
                if row is None:
                    return Ok(None)
                return Ok(Profile(
                    principal_id=row.principal_id,
                    full_name=row.full_name,
                    email=row.email,
                    phone_number=row.phone_number,
                    updated_at=row.updated_at,
                ))
        except Exception as e:
            return Error(StoreError(f"Failed to get profile: {e}", e))

    async def upsert(self, profile: Profile) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                await session.merge(ProfileRow(
                    principal_id=profile.principal_id,
                    full_name=profile.full_name,
                    email=profile.email,
                    phone_number=profile.phone_number,
                    updated_at=profile.updated_at,
                ))
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to upsert profile: {e}", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Rate-limit windows
# ═══════════════════════════════════════════════════════════════════════════════


class SqlWindowStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_window(
        self, identifier: str, category: Category, window_start: datetime
    ) -> Result[RateLimitWindow | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.scalar(
                    select(RateLimitWindowRow).where(*_window_key(identifier, category, window_start))
                )
                if row is None:
                    return Ok(None)
                return Ok(RateLimitWindow(
                    identifier=row.identifier,
                    category=Category(row.category),
                    window_start=row.window_start,
                    window_end=row.window_end,
                    request_count=row.request_count,
                    blocked_until=row.blocked_until,
                ))
        except Exception as e:
            return Error(StoreError(f"Failed to get window: {e}", e))

    async def blocked_until(
        self, identifier: str, category: Category
    ) -> Result[datetime | None, StoreError]:
        try:
            async with self._session_factory() as session:
                until = await session.scalar(
                    select(RateLimitWindowRow.blocked_until)
                    .where(
                        RateLimitWindowRow.identifier == identifier,
                        RateLimitWindowRow.category == category.value,
                        RateLimitWindowRow.blocked_until.is_not(None),
                    )
                    .order_by(RateLimitWindowRow.blocked_until.desc())
                    .limit(1)
                )
                return Ok(until)
        except Exception as e:
            return Error(StoreError(f"Failed to read block: {e}", e))

    async def open_window(self, window: RateLimitWindow) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                session.add(RateLimitWindowRow(
                    identifier=window.identifier,
                    category=window.category.value,
                    window_start=window.window_start,
                    window_end=window.window_end,
                    request_count=window.request_count,
                    blocked_until=window.blocked_until,
                ))
                await session.commit()
                return Ok(True)
        except IntegrityError:
            return Ok(False)
        except Exception as e:
            return Error(StoreError(f"Failed to open window: {e}", e))

    def count_cell(
        self, identifier: str, category: Category, window_start: datetime
    ) -> Cell:
        return SqlCell(
            self._session_factory,
            name=f"ratelimit:{identifier}:{category.value}",
            model=RateLimitWindowRow,
            column=RateLimitWindowRow.request_count,
            criteria=_window_key(identifier, category, window_start),
        )

    async def block(
        self,
        identifier: str,
        category: Category,
        window_start: datetime,
        until: datetime,
    ) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(RateLimitWindowRow)
                    .where(*_window_key(identifier, category, window_start))
                    .values(blocked_until=until)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                if result.rowcount == 0:  # type: ignore[attr-defined]
                    return Error(StoreError(f"No window for {identifier}/{category.value}"))
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to block: {e}", e))

    async def prune(self, before: datetime) -> Result[int, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(RateLimitWindowRow).where(
                        RateLimitWindowRow.window_end <= before,
                        or_(
                            RateLimitWindowRow.blocked_until.is_(None),
                            RateLimitWindowRow.blocked_until <= before,
                        ),
                    )
                )
                await session.commit()
                return Ok(result.rowcount)  # type: ignore[attr-defined]
        except Exception as e:
            return Error(StoreError(f"Failed to prune windows: {e}", e))


def _window_key(identifier: str, category: Category, window_start: datetime):
    return (
        RateLimitWindowRow.identifier == identifier,
        RateLimitWindowRow.category == category.value,
        RateLimitWindowRow.window_start == window_start,
    )


__all__ = (
    "SqlCatalog",
    "SqlCouponLedger",
    "SqlOrderStore",
    "SqlProfileStore",
    "SqlWindowStore",
)
