"""Append-only order audit trail.

Writing an event must never abort the caller's transaction: each insert runs
in its own savepoint and database errors are logged and dropped.
"""

import logging

from django.db import DatabaseError, transaction

from .domain import EventType
from .models import OrderEvent

logger = logging.getLogger(__name__)


def log_order_event(order_id: int, event_type: EventType, message: str = "", meta: dict | None = None) -> None:
    event_type = EventType(event_type).value
    try:
        with transaction.atomic():
            OrderEvent.objects.create(
                order_id=order_id,
                type=event_type,
                message=message[:500],
                meta=meta or {},
            )
    except DatabaseError:
        logger.warning(
            "order_event_write_failed",
            extra={"order_id": order_id, "event_type": event_type},
            exc_info=True,
        )
