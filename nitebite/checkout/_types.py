"""
Checkout types — input fields, errors, states, result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from nitebite._types import Money

# ═══════════════════════════════════════════════════════════════════════════════
# Input
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderFields:
    """
    What the checkout form submits besides the cart.

    amount is the total the client displayed. It is compared against the
    server total and never used as a price.
    """

    customer_name: str
    email: str
    phone_number: str
    hostel_number: str
    room_number: str
    payment_method: str
    amount: Money
    coupon_code: str | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# States
# ═══════════════════════════════════════════════════════════════════════════════


class OrderState(Enum):
    """
    Checkout lifecycle.

        RECEIVED → INVALID | RATE_LIMITED | PRICE_MISMATCH | STOCK_INSUFFICIENT
                 | COUPON_INVALID | PERSISTENCE_FAILED
                 | RESERVED → PERSISTED → COMPLETED
    """

    RECEIVED = auto()
    INVALID = auto()
    RATE_LIMITED = auto()
    PRICE_MISMATCH = auto()
    STOCK_INSUFFICIENT = auto()
    COUPON_INVALID = auto()
    PERSISTENCE_FAILED = auto()
    RESERVED = auto()
    PERSISTED = auto()
    COMPLETED = auto()

    @property
    def is_terminal(self) -> bool:
        return self not in (OrderState.RECEIVED, OrderState.RESERVED, OrderState.PERSISTED)


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutErrorKind(Enum):
    RATE_LIMITED = "rate_limited"
    VALIDATION = "validation"
    PRICE_MISMATCH = "price_mismatch"
    STOCK_INSUFFICIENT = "stock_insufficient"
    COUPON_INVALID = "coupon_invalid"
    PERSISTENCE = "persistence"

    @property
    def state(self) -> OrderState:
        return _KIND_STATES[self]


_KIND_STATES = {
    CheckoutErrorKind.RATE_LIMITED: OrderState.RATE_LIMITED,
    CheckoutErrorKind.VALIDATION: OrderState.INVALID,
    CheckoutErrorKind.PRICE_MISMATCH: OrderState.PRICE_MISMATCH,
    CheckoutErrorKind.STOCK_INSUFFICIENT: OrderState.STOCK_INSUFFICIENT,
    CheckoutErrorKind.COUPON_INVALID: OrderState.COUPON_INVALID,
    CheckoutErrorKind.PERSISTENCE: OrderState.PERSISTENCE_FAILED,
}


@dataclass(frozen=True, slots=True)
class FailedItem:
    product_id: str
    name: str
    reason: str
    requested: int
    available: int


@dataclass(frozen=True, slots=True)
class FieldError:
    field: str
    message: str


@dataclass(frozen=True, slots=True)
class CheckoutError:
    """
    Why a checkout was rejected.

    retry_after is in seconds, set for RATE_LIMITED only.
    """

    kind: CheckoutErrorKind
    message: str
    failed_items: tuple[FailedItem, ...] = ()
    errors: tuple[FieldError, ...] = ()
    calculated_total: Money | None = None
    retry_after: int | None = None


class CheckoutErrors:
    @staticmethod
    def rate_limited(message: str, retry_after: int | None) -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.RATE_LIMITED, message, retry_after=retry_after)

    @staticmethod
    def validation(errors: list[FieldError] | tuple[FieldError, ...], message: str | None = None) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.VALIDATION,
            message or "Please fix the highlighted fields",
            errors=tuple(errors),
        )

    @staticmethod
    def price_mismatch(calculated_total: Money) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.PRICE_MISMATCH,
            "Price mismatch detected. Please refresh and try again.",
            calculated_total=calculated_total,
        )

    @staticmethod
    def stock(failed_items: list[FailedItem]) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.STOCK_INSUFFICIENT,
            "Some items are no longer available in the requested quantity",
            failed_items=tuple(failed_items),
        )

    @staticmethod
    def coupon(message: str) -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.COUPON_INVALID, message)

    @staticmethod
    def persistence(message: str = "Failed to process order. Please try again.") -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.PERSISTENCE, message)


# ═══════════════════════════════════════════════════════════════════════════════
# Result — what the UI receives
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderResult:
    success: bool
    message: str
    state: OrderState
    order_id: str | None = None
    calculated_total: Money | None = None
    failed_items: tuple[FailedItem, ...] = ()
    errors: tuple[FieldError, ...] = ()
    error_kind: CheckoutErrorKind | None = None
    retry_after: int | None = None
    replayed: bool = False

    @classmethod
    def from_error(cls, error: CheckoutError) -> OrderResult:
        return cls(
            success=False,
            message=error.message,
            state=error.kind.state,
            calculated_total=error.calculated_total,
            failed_items=error.failed_items,
            errors=error.errors,
            error_kind=error.kind,
            retry_after=error.retry_after,
        )


__all__ = (
    "OrderFields",
    "OrderState",
    "CheckoutErrorKind",
    "FailedItem",
    "FieldError",
    "CheckoutError",
    "CheckoutErrors",
    "OrderResult",
)
