"""Order ledger: checkout, payment processing and confirmation.

The ledger owns orders, order items, payments and the audit trail. Every
public operation is one database transaction; processing and confirmation
lock the order row (``SELECT ... FOR UPDATE``) for the whole transaction so
concurrent requests for the same order are serialised and the second one
observes the committed outcome.

Payment declines and eligibility failures are returned as
``ProcessingResult`` values rather than raised, so their state changes
commit. Anything raised rolls the whole transaction back.
"""

import logging
import secrets
from collections.abc import Callable
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.translation import gettext as _

from apps.cart.models import Cart
from apps.cart.services import get_or_create_active_cart
from gateway.errors import (
    AlreadyOwnedError,
    EmptyCartError,
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    PaymentDeclinedError,
    SelfPurchaseError,
    ValidationError,
)
from gateway.pii import mask_email

from .domain import (
    PROCESSABLE_STATUSES,
    EventType,
    OrderStatus,
    PaymentAuthorizerPort,
    PaymentStatus,
    ProcessingResult,
)
from .events import log_order_event
from .fulfillment import FulfillmentEngine
from .models import Enrollment, Order, OrderItem, Payment

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5
ZERO = Decimal("0.00")


def make_order_number(now=None) -> str:
    """Return ``ORD-<year>-<6 random digits>``."""
    year = (now or timezone.now()).year
    return f"ORD-{year}-{100000 + secrets.randbelow(900000)}"


class OrderLedger:
    """Application service for the order lifecycle.

    Args:
        fulfillment: Engine that checks eligibility and grants enrollments.
        authorizer_factory: Callable returning the configured payment
            authorizer. It is called after the order is locked and found
            processable, so a misconfigured provider neither breaks
            idempotent re-processing nor changes the order.
        currency: ISO currency code stamped on new orders.
    """

    def __init__(self, fulfillment: FulfillmentEngine,
                 authorizer_factory: Callable[[], PaymentAuthorizerPort],
                 currency: str | None = None):
        self.fulfillment = fulfillment
        self.authorizer_factory = authorizer_factory
        self.currency = currency or getattr(settings, "PAYMENT_CURRENCY", "EUR")

    # ---- queries ----

    def list_orders(self, buyer):
        return Order.objects.filter(buyer=buyer).order_by("-created_at", "-id")

    def get_order(self, order_id: int, buyer) -> Order:
        try:
            order = Order.objects.prefetch_related("items__course").get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
        if order.buyer_id != buyer.pk:
            raise ForbiddenError("No access to this order")
        return order

    # ---- checkout ----

    def _create_with_number(self, **fields) -> Order:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            number = make_order_number()
            try:
                with transaction.atomic():
                    return Order.objects.create(order_number=number, **fields)
            except IntegrityError:
                logger.warning("order_number_collision", extra={"order_number": number, "attempt": attempt})
        raise InternalError("Could not allocate a unique order number")

    @transaction.atomic
    def create_order(self, buyer, full_name: str = "", phone: str = "") -> Order:
        """Convert the buyer's active cart into an order.

        Prices are read live from the courses and frozen on the order items.
        The cart is marked ``ordered`` and emptied.

        Raises:
            EmptyCartError: The cart has no items.
            AlreadyOwnedError: A course in the cart is already actively owned.
            SelfPurchaseError: A course in the cart was created by the buyer.
        """
        cart = get_or_create_active_cart(buyer)
        cart = Cart.objects.select_for_update().get(pk=cart.pk)
        items = list(cart.items.select_related("course").order_by("id"))
        if not items:
            raise EmptyCartError()

        course_ids = [it.course_id for it in items]
        if Enrollment.objects.filter(
            user=buyer, course_id__in=course_ids, status=Enrollment.Status.ACTIVE
        ).exists():
            raise AlreadyOwnedError()
        if any(it.course.creator_id == buyer.pk for it in items):
            raise SelfPurchaseError()

        lines = [(it.course, it.course.price, it.qty, it.course.price * it.qty) for it in items]
        subtotal = sum((line_total for *_head, line_total in lines), ZERO)

        order = self._create_with_number(
            buyer=buyer,
            status=OrderStatus.CREATED.value,
            full_name=(full_name or "").strip(),
            phone=(phone or "").strip(),
            subtotal=subtotal,
            total=subtotal,
            currency=self.currency,
        )
        OrderItem.objects.bulk_create([
            OrderItem(order=order, course=course, unit_price=unit, quantity=qty, line_total=line_total)
            for course, unit, qty, line_total in lines
        ])

        cart.status = Cart.Status.ORDERED
        cart.save(update_fields=["status", "updated_at"])
        cart.items.all().delete()

        log_order_event(order.pk, EventType.ORDER_CREATED, "Order created from cart", {
            "cart_id": cart.pk,
            "items": [
                {"course_id": course.pk, "qty": qty, "price": str(unit)}
                for course, unit, qty, _total in lines
            ],
        })
        logger.info(
            "order_created",
            extra={"order_id": order.pk, "order_number": order.order_number, "total": str(subtotal)},
        )
        return order

    # ---- payment ----

    def _lock(self, order_id: int, buyer) -> Order:
        try:
            order = Order.objects.select_for_update().get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
        if order.buyer_id != buyer.pk:
            raise ForbiddenError("No access to this order")
        return order

    def _already_completed(self, order: Order) -> ProcessingResult:
        granted = list(order.items.order_by("id").values_list("course_id", flat=True))
        return ProcessingResult(
            ok=True,
            http_status=200,
            order_id=order.pk,
            status=OrderStatus.COMPLETED,
            granted_courses=granted,
            idempotent=True,
        )

    def _fulfill(self, order: Order, buyer) -> ProcessingResult:
        result = self.fulfillment.fulfill(order, buyer.email)
        return ProcessingResult(
            ok=result.ok,
            http_status=result.http_status,
            order_id=order.pk,
            status=result.status,
            granted_courses=result.granted_courses,
            reason=result.reason,
            error=result.error,
        )

    def _failed(self, order: Order, http_status: int, reason: str, error=None) -> ProcessingResult:
        return ProcessingResult(
            ok=False,
            http_status=http_status,
            order_id=order.pk,
            status=OrderStatus.PAYMENT_FAILED,
            reason=reason,
            error=error or PaymentDeclinedError.default_message,
        )

    def process_order(self, order_id: int, buyer) -> ProcessingResult:
        """Authorize payment for an order and fulfil it when authorized.

        Only ``created`` and ``payment_failed`` orders are processed; a
        ``completed`` order returns success without side effects.

        Raises:
            ProviderConfigError: The payment provider is misconfigured.
            NotFoundError / ForbiddenError: Unknown order or not the buyer's.
            InvalidStateError: The order is in any other status.
        """
        with transaction.atomic():
            order = self._lock(order_id, buyer)
            if order.status == OrderStatus.COMPLETED.value:
                return self._already_completed(order)
            if OrderStatus(order.status) not in PROCESSABLE_STATUSES:
                raise InvalidStateError(
                    f"Order cannot be processed from status: {order.status}",
                    status=order.status,
                )
            # raises before any state change when the provider is misconfigured
            authorizer = self.authorizer_factory()

            order.advance(OrderStatus.PAYMENT_AUTHORIZING)
            log_order_event(order.pk, EventType.PAYMENT_AUTH_START, "Starting payment authorization", {
                "provider": authorizer.name,
            })

            if order.total < ZERO:
                order.advance(OrderStatus.PAYMENT_FAILED)
                log_order_event(order.pk, EventType.PAYMENT_AUTH_FAIL, "Total must be >= 0", {"total": order.total})
                return self._failed(order, 400, "invalid_total", _("The order total must not be negative."))

            if order.total == ZERO:
                Payment.objects.create(
                    order=order,
                    provider=authorizer.name,
                    provider_ref=None,
                    status=PaymentStatus.CAPTURED.value,
                    amount=ZERO,
                    currency=order.currency,
                    raw={"free": True},
                )
                order.advance(OrderStatus.PAYMENT_AUTHORIZED)
                log_order_event(order.pk, EventType.PAYMENT_AUTH_OK, "Free order (no payment required)", {
                    "total": order.total,
                })
                return self._fulfill(order, buyer)

            auth = authorizer.authorize(
                order.total,
                order.currency,
                order.order_number,
                receipt_email=buyer.email or None,
                metadata={
                    "order_id": str(order.pk),
                    "order_number": order.order_number,
                    "user_id": str(buyer.pk),
                },
            )

            if auth.requires_confirmation:
                Payment.objects.create(
                    order=order,
                    provider=auth.provider,
                    provider_ref=auth.provider_reference,
                    status=PaymentStatus.INITIATED.value,
                    amount=order.total,
                    currency=order.currency,
                    raw=auth.raw,
                )
                log_order_event(order.pk, EventType.PAYMENT_INTENT_CREATED, "Payment intent created", {
                    "intent_id": auth.provider_reference,
                })
                return ProcessingResult(
                    ok=True,
                    http_status=200,
                    order_id=order.pk,
                    status=OrderStatus.PAYMENT_AUTHORIZING,
                    client_secret=auth.client_secret,
                    payment_intent_id=auth.provider_reference,
                )

            Payment.objects.create(
                order=order,
                provider=auth.provider,
                provider_ref=auth.provider_reference,
                status=(PaymentStatus.AUTHORIZED if auth.ok else PaymentStatus.FAILED).value,
                amount=order.total,
                currency=order.currency,
                raw=auth.raw,
            )

            if not auth.ok:
                order.advance(OrderStatus.PAYMENT_FAILED)
                log_order_event(order.pk, EventType.PAYMENT_AUTH_FAIL, "Payment declined", auth.raw)
                logger.info(
                    "payment_declined",
                    extra={"order_id": order.pk, "provider": auth.provider, "reason": auth.raw.get("reason")},
                )
                return self._failed(order, 402, auth.raw.get("reason") or "declined")

            order.advance(OrderStatus.PAYMENT_AUTHORIZED)
            log_order_event(order.pk, EventType.PAYMENT_AUTH_OK, "Payment authorized", {
                "intent_id": auth.provider_reference,
            })
            logger.info(
                "payment_authorized",
                extra={"order_id": order.pk, "provider": auth.provider, "buyer": mask_email(buyer.email)},
            )
            return self._fulfill(order, buyer)

    def confirm_order(self, order_id: int, buyer, provider_reference: str) -> ProcessingResult:
        """Re-verify a client-confirmed payment and fulfil the order.

        Raises:
            ValidationError: The provider needs no confirmation, the
                reference is empty, or it does not match an initiated
                payment of this order.
            InvalidStateError: The order is not awaiting confirmation.
        """
        authorizer = self.authorizer_factory()
        if not authorizer.requires_confirmation:
            raise ValidationError(
                "The active payment provider does not use confirmation",
                code="CONFIRMATION_NOT_SUPPORTED",
            )
        provider_reference = (provider_reference or "").strip()
        if not provider_reference:
            raise ValidationError("payment_intent_id is required")

        with transaction.atomic():
            order = self._lock(order_id, buyer)
            if order.status == OrderStatus.COMPLETED.value:
                return self._already_completed(order)
            if order.status != OrderStatus.PAYMENT_AUTHORIZING.value:
                raise InvalidStateError(
                    f"Order cannot be confirmed from status: {order.status}",
                    status=order.status,
                )

            payment = (
                order.payments
                .filter(
                    provider=authorizer.name,
                    provider_ref=provider_reference,
                    status=PaymentStatus.INITIATED.value,
                )
                .order_by("-id")
                .first()
            )
            if payment is None:
                raise ValidationError(
                    "Payment reference does not belong to this order",
                    code="UNKNOWN_PAYMENT",
                )

            auth = authorizer.verify(provider_reference)
            payment.raw = auth.raw

            if not auth.ok:
                payment.status = PaymentStatus.FAILED.value
                payment.save(update_fields=["status", "raw", "updated_at"])
                order.advance(OrderStatus.PAYMENT_FAILED)
                log_order_event(order.pk, EventType.PAYMENT_CONFIRM_FAIL, "Payment not succeeded", {
                    "status": auth.provider_status,
                })
                return self._failed(order, 402, f"provider_status:{auth.provider_status}")

            payment.status = PaymentStatus.CAPTURED.value
            payment.save(update_fields=["status", "raw", "updated_at"])
            order.advance(OrderStatus.PAYMENT_AUTHORIZED)
            log_order_event(order.pk, EventType.PAYMENT_CONFIRM_OK, "Payment succeeded", {
                "intent_id": provider_reference,
            })
            return self._fulfill(order, buyer)
