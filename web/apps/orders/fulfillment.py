"""Eligibility check and enrollment granting for paid orders.

``FulfillmentEngine.fulfill`` only runs inside the ledger's open transaction
with the order row locked and in ``payment_authorized``. Eligibility is
all-or-nothing: a single unpublished course cancels the whole order and no
enrollment is granted.
"""

import logging

from django.utils import timezone
from django.utils.translation import gettext as _

from .domain import EventType, FulfillmentResult, OrderStatus
from .events import log_order_event
from .models import Enrollment, Order

logger = logging.getLogger(__name__)


class FulfillmentEngine:
    def __init__(self, dispatcher):
        self.dispatcher = dispatcher

    def fulfill(self, order: Order, buyer_email: str | None) -> FulfillmentResult:
        order.advance(OrderStatus.STOCK_CHECKING)
        items = list(order.items.select_related("course").order_by("id"))

        if not items:
            order.advance(OrderStatus.CANCELLED)
            log_order_event(order.pk, EventType.ORDER_CANCELLED, "No items found for order")
            logger.warning("order_cancelled_no_items", extra={"order_id": order.pk})
            return FulfillmentResult(
                ok=False,
                http_status=400,
                status=OrderStatus.CANCELLED,
                reason="no_items",
                error=_("The order has no items."),
            )

        unavailable = next((it for it in items if not it.course.is_published), None)
        if unavailable is not None:
            order.advance(OrderStatus.CANCELLED)
            log_order_event(
                order.pk,
                EventType.ELIGIBILITY_FAIL,
                "Course is not available",
                {"course_id": unavailable.course_id},
            )
            logger.warning(
                "order_cancelled_ineligible",
                extra={"order_id": order.pk, "course_id": unavailable.course_id},
            )
            return FulfillmentResult(
                ok=False,
                http_status=409,
                status=OrderStatus.CANCELLED,
                reason="course_unavailable",
                error=_("A course in this order is no longer available."),
                course_id=unavailable.course_id,
            )

        log_order_event(order.pk, EventType.ELIGIBILITY_OK, "All items eligible", {"count": len(items)})
        order.advance(OrderStatus.FULFILLMENT_PENDING)

        now = timezone.now()
        granted: list[int] = []
        for it in items:
            Enrollment.objects.update_or_create(
                user_id=order.buyer_id,
                course_id=it.course_id,
                defaults={"status": Enrollment.Status.ACTIVE, "order": order},
                create_defaults={"status": Enrollment.Status.ACTIVE, "order": order, "granted_at": now},
            )
            if it.course_id not in granted:
                granted.append(it.course_id)

        order.advance(OrderStatus.COMPLETED)
        log_order_event(order.pk, EventType.FULFILLED, "Enrollments granted", {"granted_courses": granted})
        logger.info("order_fulfilled", extra={"order_id": order.pk, "granted_courses": granted})

        self.dispatcher.dispatch(order, buyer_email)
        return FulfillmentResult(ok=True, http_status=200, status=OrderStatus.COMPLETED, granted_courses=granted)
