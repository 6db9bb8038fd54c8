"""Concurrent processing of one order. Needs PostgreSQL row locks."""
import threading

import pytest
from django.db import connection, connections

from apps.orders.models import Enrollment, Payment
from apps.orders.providers import get_order_ledger

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(
        connection.vendor != "postgresql",
        reason="SELECT ... FOR UPDATE is a no-op on SQLite; set POSTGRES_DB",
    ),
]


@pytest.mark.django_db(transaction=True)
def test_parallel_process_charges_once(buyer, make_course, place_order, mailoutbox):
    course = make_course()
    order = place_order(course)
    barrier = threading.Barrier(4)
    results, errors = [], []

    def worker():
        try:
            barrier.wait()
            results.append(get_order_ledger().process_order(order.pk, buyer))
        except Exception as e:
            errors.append(e)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert all(r.ok and r.status.value == "completed" for r in results)
    assert sum(1 for r in results if not r.idempotent) == 1
    assert Payment.objects.filter(order=order).count() == 1
    assert Enrollment.objects.filter(user=buyer, course=course).count() == 1
    assert len(mailoutbox) == 2
