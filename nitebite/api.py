"""
HTTP surface — FastAPI routes over an OrderProcessor.

    processor, engine = await open_processor(Settings.from_env(), seed=True)
    app = create_app(processor)

Authentication happens upstream; the authenticated principal arrives in
the X-Principal-Id header. Request models ignore unknown fields, so a
client-sent name or price on a cart line is dropped before it reaches
checkout.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

import fastapi
from fastapi import Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from kungfu import Ok, Error

from nitebite.cart import CartLine, PhysicalItem, VirtualBundle
from nitebite.checkout import CheckoutErrorKind, OrderFields, OrderProcessor, OrderResult
from nitebite.coupons import CouponCheck
from nitebite.orders import Order
from nitebite.pricing import PriceValidationResult

STATUS_FOR_KIND = {
    CheckoutErrorKind.RATE_LIMITED: 429,
    CheckoutErrorKind.VALIDATION: 422,
    CheckoutErrorKind.PRICE_MISMATCH: 409,
    CheckoutErrorKind.STOCK_INSUFFICIENT: 409,
    CheckoutErrorKind.COUPON_INVALID: 409,
    CheckoutErrorKind.PERSISTENCE: 503,
}


# ═══════════════════════════════════════════════════════════════════════════════
# Request models
# ═══════════════════════════════════════════════════════════════════════════════


class ProductLineIn(BaseModel):
    type: Literal["product"]
    product_id: str
    quantity: int = Field(ge=1)

    def to_domain(self) -> CartLine:
        return PhysicalItem(self.product_id, self.quantity)


class BundleLineIn(BaseModel):
    type: Literal["bundle"]
    bundle_id: str
    quantity: int = Field(ge=1)

    def to_domain(self) -> CartLine:
        return VirtualBundle(self.bundle_id, self.quantity)


LineIn = Annotated[ProductLineIn | BundleLineIn, Field(discriminator="type")]


def _lines(items: list[ProductLineIn | BundleLineIn]) -> list[CartLine]:
    return [item.to_domain() for item in items]


class OrderFieldsIn(BaseModel):
    customer_name: str
    email: str
    phone_number: str
    hostel_number: str
    room_number: str
    payment_method: str
    amount: Decimal
    coupon_code: str | None = None

    def to_domain(self) -> OrderFields:
        return OrderFields(**self.model_dump())


class PlaceOrderIn(BaseModel):
    order: OrderFieldsIn
    items: list[LineIn]
    request_id: str | None = Field(default=None, max_length=100)


class PricesIn(BaseModel):
    items: list[LineIn]
    coupon_code: str | None = None


class CouponIn(BaseModel):
    code: str
    items: list[LineIn]


# ═══════════════════════════════════════════════════════════════════════════════
# Response models
# ═══════════════════════════════════════════════════════════════════════════════


class FailedItemOut(BaseModel):
    product_id: str
    name: str
    reason: str
    requested: int
    available: int


class FieldErrorOut(BaseModel):
    field: str
    message: str


class OrderResultOut(BaseModel):
    success: bool
    message: str
    state: str
    order_id: str | None = None
    calculated_total: Decimal | None = None
    failed_items: list[FailedItemOut] = []
    errors: list[FieldErrorOut] = []
    error_kind: str | None = None
    retry_after: int | None = None
    replayed: bool = False

    @classmethod
    def from_domain(cls, result: OrderResult) -> OrderResultOut:
        return cls(
            success=result.success,
            message=result.message,
            state=result.state.name.lower(),
            order_id=result.order_id,
            calculated_total=result.calculated_total,
            failed_items=[FailedItemOut(**vars_of(f)) for f in result.failed_items],
            errors=[FieldErrorOut(field=e.field, message=e.message) for e in result.errors],
            error_kind=result.error_kind.value if result.error_kind is not None else None,
            retry_after=result.retry_after,
            replayed=result.replayed,
        )


class PriceOut(BaseModel):
    success: bool
    message: str
    subtotal: Decimal
    delivery_fee: Decimal
    convenience_fee: Decimal
    coupon_discount: Decimal
    total: Decimal
    coupon_message: str | None = None
    coupon_code: str | None = None
    free_delivery_threshold: Decimal
    remaining_for_free_delivery: Decimal

    @classmethod
    def from_domain(cls, result: PriceValidationResult) -> PriceOut:
        return cls(
            success=result.success,
            message=result.message,
            subtotal=result.subtotal,
            delivery_fee=result.delivery_fee,
            convenience_fee=result.convenience_fee,
            coupon_discount=result.coupon_discount,
            total=result.total,
            coupon_message=result.coupon_message,
            coupon_code=result.coupon_code,
            free_delivery_threshold=result.free_delivery_threshold,
            remaining_for_free_delivery=result.remaining_for_free_delivery,
        )


class CouponOut(BaseModel):
    valid: bool
    discount_amount: Decimal
    message: str
    code: str | None = None

    @classmethod
    def from_domain(cls, check: CouponCheck) -> CouponOut:
        return cls(
            valid=check.valid,
            discount_amount=check.discount_amount,
            message=check.message,
            code=check.coupon.code if check.coupon is not None and check.valid else None,
        )


class OrderItemOut(BaseModel):
    product_id: str
    name: str
    price: Decimal
    quantity: int


class OrderOut(BaseModel):
    id: str
    items: list[OrderItemOut]
    amount: Decimal
    subtotal: Decimal
    delivery_fee: Decimal
    convenience_fee: Decimal
    coupon_code: str | None
    coupon_discount: Decimal
    customer_name: str
    hostel_number: str
    room_number: str
    payment_method: str
    payment_status: str
    created_at: datetime

    @classmethod
    def from_domain(cls, order: Order) -> OrderOut:
        return cls(
            id=order.id,
            items=[OrderItemOut(**vars_of(item)) for item in order.items],
            amount=order.amount,
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            convenience_fee=order.convenience_fee,
            coupon_code=order.coupon_code,
            coupon_discount=order.coupon_discount,
            customer_name=order.customer_name,
            hostel_number=order.hostel_number,
            room_number=order.room_number,
            payment_method=order.payment_method.value,
            payment_status=order.payment_status.value,
            created_at=order.created_at,
        )


def vars_of(obj: object) -> dict[str, object]:
    """Field dict of a slotted dataclass."""
    return {name: getattr(obj, name) for name in obj.__dataclass_fields__}  # type: ignore[attr-defined]


# ═══════════════════════════════════════════════════════════════════════════════
# App
# ═══════════════════════════════════════════════════════════════════════════════


def principal(x_principal_id: Annotated[str | None, Header()] = None) -> str:
    if not x_principal_id or not x_principal_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_principal_id.strip()


Principal = Annotated[str, Depends(principal)]


def create_app(processor: OrderProcessor) -> fastapi.FastAPI:
    app = fastapi.FastAPI(title="NiteBite checkout")

    @app.post("/orders", response_model=OrderResultOut)
    async def place_order(body: PlaceOrderIn, principal_id: Principal) -> JSONResponse:
        result = await processor.place_order(
            principal_id,
            body.order.to_domain(),
            _lines(body.items),
            request_id=body.request_id,
        )
        out = OrderResultOut.from_domain(result)
        if result.success:
            return JSONResponse(out.model_dump(mode="json"))

        status = STATUS_FOR_KIND[result.error_kind] if result.error_kind is not None else 400
        headers = {"Retry-After": str(result.retry_after)} if result.retry_after else None
        return JSONResponse(out.model_dump(mode="json"), status_code=status, headers=headers)

    @app.post("/prices", response_model=PriceOut)
    async def validate_prices(body: PricesIn, principal_id: Principal) -> PriceOut:
        result = await processor.validate_prices(_lines(body.items), body.coupon_code)
        return PriceOut.from_domain(result)

    @app.post("/coupons/validate", response_model=CouponOut)
    async def validate_coupon(body: CouponIn, principal_id: Principal) -> CouponOut:
        check = await processor.validate_coupon_for_cart(principal_id, body.code, _lines(body.items))
        return CouponOut.from_domain(check)

    @app.get("/orders", response_model=list[OrderOut])
    async def list_orders(principal_id: Principal) -> list[OrderOut]:
        match await processor.list_orders(principal_id):
            case Ok(orders):
                return [OrderOut.from_domain(o) for o in orders]
            case Error(_):
                raise HTTPException(status_code=503, detail="Could not load orders. Please try again.")

    return app


__all__ = (
    "STATUS_FOR_KIND",
    "PlaceOrderIn",
    "PricesIn",
    "CouponIn",
    "OrderResultOut",
    "PriceOut",
    "CouponOut",
    "OrderOut",
    "create_app",
)
