"""Domain types, ports and the order status machine.

This module contains the order and payment status enumerations, the
transition table that governs an order's lifecycle, small dataclasses used
as results between the ledger, the fulfillment engine and the views, and
protocol definitions (ports) for external dependencies such as payment
providers.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from gateway.errors import InvalidTransitionError


# ---- Enums ----
class OrderStatus(str, Enum):
    """Enumeration of the possible order statuses.

    ``completed`` and ``cancelled`` are terminal.
    """

    CREATED = "created"
    PAYMENT_AUTHORIZING = "payment_authorizing"
    PAYMENT_AUTHORIZED = "payment_authorized"
    PAYMENT_FAILED = "payment_failed"
    STOCK_CHECKING = "stock_checking"
    FULFILLMENT_PENDING = "fulfillment_pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    INITIATED = "initiated"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"


class EventType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    PAYMENT_AUTH_START = "PAYMENT_AUTH_START"
    PAYMENT_AUTH_OK = "PAYMENT_AUTH_OK"
    PAYMENT_AUTH_FAIL = "PAYMENT_AUTH_FAIL"
    PAYMENT_INTENT_CREATED = "PAYMENT_INTENT_CREATED"
    PAYMENT_CONFIRM_OK = "PAYMENT_CONFIRM_OK"
    PAYMENT_CONFIRM_FAIL = "PAYMENT_CONFIRM_FAIL"
    ELIGIBILITY_OK = "ELIGIBILITY_OK"
    ELIGIBILITY_FAIL = "ELIGIBILITY_FAIL"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    FULFILLED = "FULFILLED"
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_SEND_FAIL = "EMAIL_SEND_FAIL"
    SELLER_EMAIL_SENT = "SELLER_EMAIL_SENT"
    SELLER_EMAIL_FAIL = "SELLER_EMAIL_FAIL"


# ---- State machine ----
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.PAYMENT_AUTHORIZING}),
    OrderStatus.PAYMENT_AUTHORIZING: frozenset({
        OrderStatus.PAYMENT_AUTHORIZED,
        OrderStatus.PAYMENT_FAILED,
    }),
    OrderStatus.PAYMENT_FAILED: frozenset({OrderStatus.PAYMENT_AUTHORIZING}),
    OrderStatus.PAYMENT_AUTHORIZED: frozenset({OrderStatus.STOCK_CHECKING}),
    OrderStatus.STOCK_CHECKING: frozenset({
        OrderStatus.FULFILLMENT_PENDING,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.FULFILLMENT_PENDING: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PROCESSABLE_STATUSES = frozenset({OrderStatus.CREATED, OrderStatus.PAYMENT_FAILED})


def can_transition(current: str, target: str) -> bool:
    """Return True when ``current -> target`` is in the transition table.

    Unknown status strings are never allowed to move.
    """
    try:
        src, dst = OrderStatus(current), OrderStatus(target)
    except ValueError:
        return False
    return dst in ALLOWED_TRANSITIONS[src]


def ensure_transition(current: str, target: str) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Order cannot move from {current} to {target}",
            current=current,
            target=target,
        )


# ---- Results / DTOs ----
@dataclass
class Authorization:
    """Outcome of a payment provider call.

    Attributes:
        ok: True when the provider authorized (or confirmed) the payment.
        provider: Provider name, e.g. ``"test"`` or ``"stripe"``.
        provider_reference: Provider-side identifier, if one was issued.
        raw: Opaque provider payload, stored for audit only.
        client_secret: Secret handed to the client when the provider needs
            client-side confirmation.
        requires_confirmation: True when the payment completes only after
            the client confirms and the server re-verifies.
        provider_status: Provider's own status string, when it reports one.
    """

    ok: bool
    provider: str
    provider_reference: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    client_secret: str | None = None
    requires_confirmation: bool = False
    provider_status: str | None = None


@dataclass
class FulfillmentResult:
    ok: bool
    http_status: int
    status: OrderStatus
    granted_courses: list[int] = field(default_factory=list)
    reason: str | None = None
    error: str | None = None
    course_id: int | None = None


@dataclass
class ProcessingResult:
    """What ``process_order``/``confirm_order`` report back to the caller.

    Declines and eligibility failures are results, not exceptions: the state
    change is committed and the view maps ``http_status`` to the response.
    ``reason`` is a stable machine code and ``error`` its translated message.
    """

    ok: bool
    http_status: int
    order_id: int
    status: OrderStatus
    granted_courses: list[int] = field(default_factory=list)
    client_secret: str | None = None
    payment_intent_id: str | None = None
    reason: str | None = None
    error: str | None = None
    idempotent: bool = False

    def as_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"order_id": self.order_id, "status": self.status.value}
        if self.granted_courses or self.status == OrderStatus.COMPLETED:
            body["granted_courses"] = list(self.granted_courses)
        if self.client_secret:
            body["client_secret"] = self.client_secret
        if self.payment_intent_id:
            body["payment_intent_id"] = self.payment_intent_id
        if self.reason:
            body["reason"] = self.reason
        if self.error:
            body["error"] = str(self.error)
        if self.idempotent:
            body["idempotent"] = True
        return body


# ---- Ports (DIP) ----
class PaymentAuthorizerPort(Protocol):
    """Port describing payment operations used by the ledger."""

    name: str
    requires_confirmation: bool

    def authorize(
        self,
        amount: Decimal,
        currency: str,
        order_reference: str,
        *,
        receipt_email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Authorization:
        """Authorize ``amount`` for the order identified by ``order_reference``.

        Args:
            amount: Order total in major currency units.
            currency: ISO currency code, e.g. ``'EUR'``.
            order_reference: Human readable order number.
            receipt_email: Address the provider may send its own receipt to.
            metadata: Extra key/value pairs attached to the provider object.

        Returns:
            An ``Authorization`` describing the outcome. Declines are
            reported through ``ok=False``, not raised.
        """
        raise NotImplementedError()

    def verify(self, provider_reference: str) -> Authorization:
        """Re-check a previously created payment on the provider side."""
        raise NotImplementedError()
