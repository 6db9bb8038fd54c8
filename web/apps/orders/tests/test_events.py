import pytest
from django.db import DatabaseError

from apps.orders import events
from apps.orders.domain import EventType
from apps.orders.events import log_order_event
from apps.orders.models import OrderEvent


@pytest.mark.django_db
def test_log_order_event_persists(make_course, place_order):
    order = place_order(make_course())

    log_order_event(order.pk, EventType.PAYMENT_AUTH_START, "starting", {"provider": "test"})

    event = OrderEvent.objects.filter(order=order).last()
    assert event.type == "PAYMENT_AUTH_START"
    assert event.message == "starting"
    assert event.meta == {"provider": "test"}


@pytest.mark.django_db
def test_log_order_event_swallows_database_errors(make_course, place_order, monkeypatch):
    order = place_order(make_course())
    before = OrderEvent.objects.count()
    warnings = []

    def _fail(*args, **kwargs):
        raise DatabaseError("disk full")

    monkeypatch.setattr(OrderEvent.objects, "create", _fail)
    monkeypatch.setattr(events.logger, "warning", lambda msg, *a, **k: warnings.append(msg))

    log_order_event(order.pk, EventType.FULFILLED, "done")

    monkeypatch.undo()
    assert OrderEvent.objects.count() == before
    assert warnings == ["order_event_write_failed"]


def test_log_order_event_rejects_unknown_type():
    with pytest.raises(ValueError):
        log_order_event(1, "NOT_AN_EVENT")
