"""
Order processor — the checkout state machine.

    rate limit → validate input → re-derive prices → ┌ reserve stock    ┐
                                                     │ persist order    │ saga, shielded
                                                     └ redeem coupon    ┘
                                                   → update profile (best effort)

Every step returns a Result; place_order() turns the first Error into an
OrderResult so callers never see an exception.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from uuid import uuid4

from kungfu import Result, Ok, Error

from nitebite import cas
from nitebite import saga as S
from nitebite import idempotency as I
from nitebite._types import Clock, Money, StoreError, money, utc_now
from nitebite.cart import CartLine, PhysicalItem, merge_lines
from nitebite.catalog import CatalogStore
from nitebite.coupons import (
    CouponCheck,
    CouponLedger,
    CouponUsage,
    ALREADY_USED,
    validate_coupon as check_coupon,
)
from nitebite.lift import guarded
from nitebite.orders import (
    Order,
    OrderItemSnapshot,
    OrderStore,
    PaymentMethod,
    PaymentStatus,
    Profile,
    ProfileStore,
)
from nitebite.pricing import PriceValidator, PriceValidationResult, PricingFailure, FAILED_TO_VALIDATE
from nitebite.ratelimit import RateLimiter
from nitebite.checkout._policy import CheckoutPolicy
from nitebite.checkout._types import (
    OrderFields,
    OrderState,
    CheckoutError,
    CheckoutErrors,
    FailedItem,
    FieldError,
    OrderResult,
)
from nitebite.checkout._validate import validate_order_input

logger = logging.getLogger("nitebite.order")
security_log = logging.getLogger("nitebite.security")

UNCERTAIN = (
    "We could not confirm whether your order went through. "
    "Please check My orders before trying again."
)
COUPON_RACE = "This coupon was just used up. Please refresh and try again."


class CompensationFailed(Exception):
    """Raised by a compensator so the saga counts it as failed."""


@dataclass(frozen=True, slots=True)
class Reservation:
    product_id: str
    quantity: int


# ═══════════════════════════════════════════════════════════════════════════════
# OrderProcessor
# ═══════════════════════════════════════════════════════════════════════════════


class OrderProcessor:
    """
    Secure checkout over injected stores.

    Example:
        processor = OrderProcessor(
            catalog=MemoryCatalog(products, bundles),
            ledger=MemoryCouponLedger(coupons),
            orders=MemoryOrderStore(),
            profiles=MemoryProfileStore(),
            limiter=RateLimiter(MemoryWindowStore()),
        )

        result = await processor.place_order("user-1", fields, [PhysicalItem("chips", 2)])
        if result.success:
            print(result.order_id, result.calculated_total)
        else:
            print(result.state, result.message, result.failed_items)
    """

    def __init__(
        self,
        *,
        catalog: CatalogStore,
        ledger: CouponLedger,
        orders: OrderStore,
        profiles: ProfileStore,
        limiter: RateLimiter,
        validator: PriceValidator | None = None,
        idempotency_store: I.StoreAny | None = None,
        policy: CheckoutPolicy | None = None,
        clock: Clock = utc_now,
        new_id: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self._catalog = catalog
        self._ledger = ledger
        self._orders = orders
        self._profiles = profiles
        self._limiter = limiter
        self._validator = validator or PriceValidator(catalog, ledger, clock=clock)
        self._policy = policy or CheckoutPolicy()
        self._guard = I.IdempotentExecutor(
            store=idempotency_store if idempotency_store is not None else I.MemoryStore(clock),
            policy=self._policy.idempotency,
        )
        self._clock = clock
        self._new_id = new_id

    @property
    def policy(self) -> CheckoutPolicy:
        return self._policy

    # ═══════════════════════════════════════════════════════════════════════════
    # place_order()
    # ═══════════════════════════════════════════════════════════════════════════

    async def place_order(
        self,
        principal_id: str,
        fields: OrderFields,
        lines: Sequence[CartLine],
        request_id: str | None = None,
    ) -> OrderResult:
        """
        Run the checkout. Never raises for business or backend failures.

        With request_id, a retry within the idempotency TTL replays the first
        successful result (replayed=True) instead of placing a second order.
        """
        if request_id is None:
            return _to_order_result(await self._place_safely(principal_id, fields, lines, None))

        key = f"order:{principal_id}:{request_id}"
        outcome = await self._guard.run(
            key,
            lambda: self._place_safely(principal_id, fields, lines, request_id),
            input_hash=_fingerprint(fields, lines),
        )

        match outcome:
            case Ok(r) if r.from_cache:
                logger.info("replayed order result for %s", key)
                return replace(r.value, replayed=True)
            case Ok(r):
                return r.value
            case Error(e) if isinstance(e.original_error, CheckoutError):
                return OrderResult.from_error(e.original_error)
            case Error(e) if e.kind is I.IdempotencyErrorKind.INPUT_MISMATCH:
                return OrderResult.from_error(CheckoutErrors.validation(
                    [FieldError("request_id", e.message)], e.message
                ))
            case Error(e):
                logger.warning("idempotency guard rejected %s: %s", key, e.message)
                return OrderResult.from_error(CheckoutErrors.persistence(UNCERTAIN))

    async def _place_safely(
        self,
        principal_id: str,
        fields: OrderFields,
        lines: Sequence[CartLine],
        request_id: str | None,
    ) -> Result[OrderResult, CheckoutError]:
        try:
            return await self._place(principal_id, fields, lines, request_id)
        except Exception:
            logger.exception("unexpected failure placing order for %s", principal_id)
            return Error(CheckoutErrors.persistence(
                "An unexpected error occurred. Please try again."
            ))

    async def _place(
        self,
        principal_id: str,
        fields: OrderFields,
        lines: Sequence[CartLine],
        request_id: str | None,
    ) -> Result[OrderResult, CheckoutError]:
        # 1. Rate limit
        rate = await self._limiter.check_order(principal_id)
        if not rate.allowed:
            retry = rate.retry_after(self._clock())
            return Error(CheckoutErrors.rate_limited(
                rate.message or "Too many order attempts. Please wait before trying again.",
                int(retry.total_seconds()) if retry is not None else None,
            ))

        # 2. Input
        problems = validate_order_input(fields, lines, self._policy)
        if problems:
            return Error(CheckoutErrors.validation(problems))

        # 3. Prices
        priced = await self._validator.validate(
            lines,
            fields.coupon_code,
            principal_id=principal_id,
            require_coupon=self._policy.require_valid_coupon,
        )
        if not priced.success:
            return Error(_pricing_error(priced))

        claimed = money(fields.amount)
        if abs(claimed - priced.total) > self._policy.price_tolerance:
            security_log.warning(
                "price mismatch",
                extra={
                    "principal_id": principal_id,
                    "client_total": str(claimed),
                    "server_total": str(priced.total),
                },
            )
            return Error(CheckoutErrors.price_mismatch(priced.total))

        # 4-6. Reserve, persist, redeem
        order = self._draft_order(principal_id, fields, priced, request_id)
        saga = self._checkout_saga(order, lines, priced)

        outcome = await asyncio.shield(S.run(
            saga,
            on_exception=lambda e: CheckoutErrors.persistence(),
        ))

        match outcome:
            case Error(failure) if not failure.rollback_complete:
                logger.critical(
                    "order %s rollback incomplete (%d compensators failed)",
                    order.id,
                    failure.compensators_failed,
                )
                return Error(CheckoutErrors.persistence(UNCERTAIN))
            case Error(failure):
                logger.info("order %s rejected: %s", order.id, failure.error.message)
                return Error(failure.error)
            case Ok(_):
                pass

        # 7. Profile, best effort
        await self._update_profile(principal_id, fields)

        logger.info(
            "order %s placed by %s for %s", order.id, principal_id, order.amount
        )
        return Ok(OrderResult(
            success=True,
            message="Order processed successfully",
            state=OrderState.COMPLETED,
            order_id=order.id,
            calculated_total=order.amount,
        ))

    # ───────────────────────────────────────────────────────────────────────────
    # Saga
    # ───────────────────────────────────────────────────────────────────────────

    def _checkout_saga(
        self,
        order: Order,
        lines: Sequence[CartLine],
        priced: PriceValidationResult,
    ) -> S.SagaExpr[object, CheckoutError]:
        names = {p.line.item_id: p.name for p in priced.lines}
        physical = [line for line in merge_lines(lines) if isinstance(line, PhysicalItem)]

        reserve = S.collect(
            *[
                S.step(
                    guarded(
                        lambda item=item: self._reserve(item, names.get(item.product_id, item.product_id)),
                        on_error=lambda e: CheckoutErrors.persistence(),
                    ),
                    self._release,
                    name=f"reserve:{item.product_id}",
                )
                for item in physical
            ],
            on_errors=_reservation_error,
        )

        persist = S.step(
            guarded(lambda: self._insert_order(order), on_error=lambda e: CheckoutErrors.persistence()),
            self._delete_order,
            name="persist",
        )

        def redeem(_: Order) -> S.SagaExpr[object, CheckoutError]:
            code = order.coupon_code
            if code is None:
                return S.pure(None)
            return S.step(
                guarded(lambda: self._redeem(order, code), on_error=lambda e: CheckoutErrors.persistence()),
                self._unredeem,
                name="redeem",
            )

        return reserve.then(lambda _: persist).then(redeem)

    async def _reserve(self, item: PhysicalItem, name: str) -> Result[Reservation, FailedItem | CheckoutError]:
        cell = self._catalog.stock_cell(item.product_id)
        match await cas.conditional_decrement(cell, item.quantity):
            case Ok(_):
                return Ok(Reservation(item.product_id, item.quantity))
            case Error(e):
                return Error(_stock_failure(item, name, e))

    async def _release(self, reservation: Reservation) -> None:
        cell = self._catalog.stock_cell(reservation.product_id)
        match await cas.conditional_increment(cell, reservation.quantity):
            case Error(e):
                raise CompensationFailed(f"restock {reservation.product_id}: {e.message}")
            case Ok(_):
                logger.debug("released %d x %s", reservation.quantity, reservation.product_id)

    async def _insert_order(self, order: Order) -> Result[Order, CheckoutError]:
        match await self._orders.insert(order):
            case Error(err):
                logger.error("order insert failed: %s", err.message)
                return Error(CheckoutErrors.persistence())
            case Ok(_):
                return Ok(order)

    async def _delete_order(self, order: Order) -> None:
        match await self._orders.delete(order.id):
            case Error(err):
                raise CompensationFailed(f"delete order {order.id}: {err.message}")
            case Ok(_):
                pass

    async def _redeem(self, order: Order, code: str) -> Result[CouponUsage, CheckoutError]:
        cell = self._ledger.uses_cell(code)

        match await cas.conditional_decrement(cell, 1):
            case Error(e) if e.kind in (cas.CasErrorKind.REFUSED, cas.CasErrorKind.MISSING):
                return Error(CheckoutErrors.coupon(COUPON_RACE))
            case Error(e) if e.kind is cas.CasErrorKind.CONTENDED:
                return Error(CheckoutErrors.coupon(COUPON_RACE))
            case Error(e):
                logger.error("coupon decrement failed: %s", e.message)
                return Error(CheckoutErrors.persistence())
            case Ok(_):
                pass

        usage = CouponUsage(
            coupon_code=code,
            principal_id=order.principal_id,
            order_id=order.id,
            used_at=self._clock(),
        )
        recorded = await self._ledger.record_usage(usage)
        match recorded:
            case Ok(True):
                return Ok(usage)
            case Ok(_):
                failure = CheckoutErrors.coupon(ALREADY_USED)
            case Error(err):
                logger.error("coupon usage insert failed: %s", err.message)
                failure = CheckoutErrors.persistence()

        # Give back the use taken above; this step is not recorded yet.
        match await cas.conditional_increment(cell, 1):
            case Error(e):
                logger.critical("could not return coupon use for %s: %s", code, e.message)
                return Error(CheckoutErrors.persistence(UNCERTAIN))
            case Ok(_):
                return Error(failure)

    async def _unredeem(self, usage: CouponUsage) -> None:
        match await self._ledger.delete_usage(usage.order_id):
            case Error(err):
                raise CompensationFailed(f"delete usage {usage.order_id}: {err.message}")
            case Ok(_):
                pass
        match await cas.conditional_increment(self._ledger.uses_cell(usage.coupon_code), 1):
            case Error(e):
                raise CompensationFailed(f"return use of {usage.coupon_code}: {e.message}")
            case Ok(_):
                pass

    # ───────────────────────────────────────────────────────────────────────────
    # Helpers
    # ───────────────────────────────────────────────────────────────────────────

    def _draft_order(
        self,
        principal_id: str,
        fields: OrderFields,
        priced: PriceValidationResult,
        request_id: str | None,
    ) -> Order:
        now = self._clock()
        return Order(
            id=self._new_id(),
            principal_id=principal_id,
            items=tuple(
                OrderItemSnapshot(
                    product_id=p.line.item_id,
                    name=p.name,
                    price=p.unit_price,
                    quantity=p.quantity,
                )
                for p in priced.lines
            ),
            amount=priced.total,
            subtotal=priced.subtotal,
            delivery_fee=priced.delivery_fee,
            convenience_fee=priced.convenience_fee,
            customer_name=fields.customer_name.strip(),
            email=fields.email.strip().lower(),
            phone_number=fields.phone_number.strip(),
            hostel_number=fields.hostel_number.strip(),
            room_number=fields.room_number.strip(),
            payment_method=PaymentMethod(fields.payment_method),
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
            coupon_code=priced.coupon_code if priced.coupon_discount > 0 else None,
            coupon_discount=priced.coupon_discount,
            request_id=request_id,
        )

    async def _update_profile(self, principal_id: str, fields: OrderFields) -> None:
        profile = Profile(
            principal_id=principal_id,
            full_name=fields.customer_name.strip(),
            email=fields.email.strip().lower(),
            phone_number=fields.phone_number.strip(),
            updated_at=self._clock(),
        )
        updated = await guarded(
            lambda: self._profiles.upsert(profile),
            on_error=lambda e: StoreError(str(e), e),
        )
        match updated:
            case Error(err):
                logger.warning("profile update failed for %s: %s", principal_id, err.message)
            case Ok(_):
                pass

    # ═══════════════════════════════════════════════════════════════════════════
    # Other operations
    # ═══════════════════════════════════════════════════════════════════════════

    async def validate_prices(
        self,
        lines: Sequence[CartLine],
        coupon_code: str | None = None,
    ) -> PriceValidationResult:
        """Preview for the order summary. Same computation as checkout."""
        return await self._validator.validate(
            lines, coupon_code, max_quantity=self._policy.max_item_quantity
        )

    async def validate_coupon(
        self,
        principal_id: str,
        code: str,
        amount: Money,
    ) -> CouponCheck:
        """
        Rate-limited coupon check.

        amount must already be authoritative; use validate_coupon_for_cart
        when starting from client input.
        """
        rate = await self._limiter.check_coupon(principal_id)
        if not rate.allowed:
            return CouponCheck.rejected(rate.message or "Too many coupon attempts")

        checked = await guarded(
            lambda: check_coupon(
                self._ledger, code, amount, now=self._clock(), principal_id=principal_id
            ),
            on_error=lambda e: StoreError(str(e), e),
        )
        match checked:
            case Ok(check):
                return check
            case Error(err):
                logger.error("coupon ledger unavailable: %s", err.message)
                return CouponCheck.rejected("Failed to validate coupon")

    async def validate_coupon_for_cart(
        self,
        principal_id: str,
        code: str,
        lines: Sequence[CartLine],
    ) -> CouponCheck:
        """Coupon check against the server subtotal of lines."""
        priced = await self._validator.validate(lines, max_quantity=self._policy.max_item_quantity)
        if not priced.success:
            return CouponCheck.rejected(priced.message)
        return await self.validate_coupon(principal_id, code, priced.subtotal)

    async def list_orders(self, principal_id: str) -> Result[list[Order], StoreError]:
        """My orders, newest first."""
        return await guarded(
            lambda: self._orders.list_for(principal_id),
            on_error=lambda e: StoreError(str(e), e),
        )

    async def mark_paid(self, order_id: str) -> Result[bool, StoreError]:
        """pending → paid. Ok(False) if the order is missing or already paid."""
        result = await self._orders.mark_paid(order_id, self._clock())
        match result:
            case Ok(True):
                logger.info("order %s marked paid", order_id)
            case Ok(_):
                logger.info("order %s not pending, left unchanged", order_id)
            case Error(err):
                logger.error("mark_paid %s failed: %s", order_id, err.message)
        return result


# ═══════════════════════════════════════════════════════════════════════════════
# Module helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _to_order_result(result: Result[OrderResult, CheckoutError]) -> OrderResult:
    match result:
        case Ok(value):
            return value
        case Error(error):
            return OrderResult.from_error(error)


def _pricing_error(priced: PriceValidationResult) -> CheckoutError:
    match priced.failure:
        case PricingFailure.UNKNOWN_ITEM | PricingFailure.INVALID_QUANTITY:
            return CheckoutErrors.validation([FieldError("items", priced.message)], priced.message)
        case PricingFailure.COUPON_REQUIRED:
            return CheckoutErrors.coupon(priced.message)
        case _:
            return CheckoutErrors.persistence(FAILED_TO_VALIDATE)


def _stock_failure(item: PhysicalItem, name: str, error: cas.CasError) -> FailedItem | CheckoutError:
    match error.kind:
        case cas.CasErrorKind.MISSING:
            reason, available = "Product not found", 0
        case cas.CasErrorKind.REFUSED if not error.observed:
            reason, available = "Out of stock", 0
        case cas.CasErrorKind.REFUSED:
            reason, available = f"Insufficient stock - only {error.observed} available", error.observed or 0
        case cas.CasErrorKind.CONTENDED:
            reason, available = "Stock is changing quickly - please try again", error.observed or 0
        case _:
            logger.error("stock store failed for %s: %s", item.product_id, error.message)
            return CheckoutErrors.persistence()
    return FailedItem(
        product_id=item.product_id,
        name=name,
        reason=reason,
        requested=item.quantity,
        available=available,
    )


def _reservation_error(errors: list[FailedItem | CheckoutError]) -> CheckoutError:
    for e in errors:
        if isinstance(e, CheckoutError):
            return e
    return CheckoutErrors.stock([e for e in errors if isinstance(e, FailedItem)])


def _fingerprint(fields: OrderFields, lines: Sequence[CartLine]) -> str:
    payload = {
        "amount": str(fields.amount),
        "coupon": (fields.coupon_code or "").strip().upper(),
        "payment": fields.payment_method,
        "lines": sorted(
            [type(line).__name__, line.item_id, line.quantity] for line in merge_lines(lines)
        ),
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()


__all__ = ("OrderProcessor", "Reservation", "CompensationFailed", "UNCERTAIN", "COUPON_RACE")
