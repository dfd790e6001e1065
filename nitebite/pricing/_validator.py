"""
Price validator — authoritative totals from catalog and ledger.

Client-side prices never enter the computation. When the catalog or the
coupon ledger cannot answer, the result is a failure; there is no
fallback to whatever the client believed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from kungfu import LazyCoroResult, Ok, Error

import combinators as C

from nitebite._types import Clock, StoreError, ZERO, money, utc_now
from nitebite.cart import CartLine, PhysicalItem, VirtualBundle, merge_lines
from nitebite.catalog import CatalogStore
from nitebite.coupons import CouponLedger, CouponCheck, validate_coupon
from nitebite.lift import guarded
from nitebite.pricing._types import (
    PricingPolicy,
    PricedLine,
    PricingFailure,
    PriceValidationResult,
    FAILED_TO_VALIDATE,
)

logger = logging.getLogger("nitebite.pricing")


@dataclass(frozen=True, slots=True)
class _LookupError:
    failure: PricingFailure
    message: str
    cause: StoreError | None = None


class PriceValidator:
    """
    Recomputes an order's money from authoritative sources.

    Example:
        validator = PriceValidator(catalog, ledger)

        result = await validator.validate([PhysicalItem("chips", 2)], "LATE20")
        print(result.subtotal, result.delivery_fee, result.total)
    """

    def __init__(
        self,
        catalog: CatalogStore,
        ledger: CouponLedger,
        *,
        policy: PricingPolicy | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._catalog = catalog
        self._ledger = ledger
        self._policy = policy or PricingPolicy()
        self._clock = clock

    @property
    def policy(self) -> PricingPolicy:
        return self._policy

    async def validate(
        self,
        lines: Sequence[CartLine],
        coupon_code: str | None = None,
        *,
        principal_id: str | None = None,
        require_coupon: bool = False,
        max_quantity: int | None = None,
    ) -> PriceValidationResult:
        """max_quantity caps each item after repeated lines are merged."""
        policy = self._policy

        bad = _bad_quantity(lines, max_quantity)
        if bad is not None:
            logger.info("price validation rejected quantity for %s", bad.item_id)
            return PriceValidationResult.failed(
                PricingFailure.INVALID_QUANTITY, f"Invalid quantity for {bad.item_id}", policy
            )

        looked_up = await C.traverse_par(list(lines), self._lookup)()
        match looked_up:
            case Error(err) if err.failure is PricingFailure.UNKNOWN_ITEM:
                logger.info("price validation rejected: %s", err.message)
                return PriceValidationResult.failed(err.failure, err.message, policy)
            case Error(err):
                logger.error("catalog unavailable during price validation: %s", err.message)
                return PriceValidationResult.failed(
                    PricingFailure.BACKEND, FAILED_TO_VALIDATE, policy
                )
            case Ok(priced):
                pass

        subtotal = money(sum((p.line_total for p in priced), ZERO))
        delivery_fee = policy.delivery_fee_for(subtotal)
        convenience_fee = policy.convenience_fee_for(subtotal)

        discount = ZERO
        coupon_message: str | None = None
        applied_code: str | None = None

        if coupon_code and coupon_code.strip():
            checked = await guarded(
                lambda: validate_coupon(
                    self._ledger,
                    coupon_code,
                    subtotal,
                    now=self._clock(),
                    principal_id=principal_id,
                ),
                on_error=lambda e: StoreError(str(e), e),
            )
            match checked:
                case Error(err):
                    logger.error("coupon ledger unavailable: %s", err.message)
                    return PriceValidationResult.failed(
                        PricingFailure.BACKEND, FAILED_TO_VALIDATE, policy
                    )
                case Ok(check):
                    coupon_message = check.message
                    if check.valid:
                        discount = min(check.discount_amount, subtotal)
                        applied_code = self._applied_code(check)
                    elif require_coupon:
                        return PriceValidationResult.failed(
                            PricingFailure.COUPON_REQUIRED, check.message, policy
                        )

        total = max(ZERO, subtotal + delivery_fee + convenience_fee - discount)

        return PriceValidationResult(
            success=True,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            convenience_fee=convenience_fee,
            coupon_discount=discount,
            total=money(total),
            message="Prices validated successfully",
            coupon_message=coupon_message,
            coupon_code=applied_code,
            free_delivery_threshold=policy.free_delivery_threshold,
            remaining_for_free_delivery=max(ZERO, policy.free_delivery_threshold - subtotal),
            lines=tuple(priced),
        )

    @staticmethod
    def _applied_code(check: CouponCheck) -> str | None:
        return check.coupon.code.upper() if check.coupon is not None else None

    # ───────────────────────────────────────────────────────────────────────────
    # Per-line lookup
    # ───────────────────────────────────────────────────────────────────────────

    def _lookup(self, line: CartLine) -> LazyCoroResult[PricedLine, _LookupError]:
        async def impl():
            match line:
                case PhysicalItem(product_id=pid):
                    found = await self._catalog.get_product(pid)
                    kind = "Product"
                case VirtualBundle(bundle_id=bid):
                    found = await self._catalog.get_bundle(bid)
                    kind = "Bundle"

            match found:
                case Error(err):
                    return Error(_LookupError(PricingFailure.BACKEND, err.message, err))
                case Ok(None):
                    return Error(_LookupError(
                        PricingFailure.UNKNOWN_ITEM,
                        f"{kind} not found: {line.item_id}",
                    ))
                case Ok(item):
                    return Ok(PricedLine(line=line, name=item.name, unit_price=money(item.price)))

        return guarded(
            impl,
            on_error=lambda e: _LookupError(PricingFailure.BACKEND, str(e), StoreError(str(e), e)),
        )


def _bad_quantity(lines: Sequence[CartLine], max_quantity: int | None) -> CartLine | None:
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
            return line
    if max_quantity is not None:
        for line in merge_lines(lines):
            if line.quantity > max_quantity:
                return line
    return None


__all__ = ("PriceValidator",)
