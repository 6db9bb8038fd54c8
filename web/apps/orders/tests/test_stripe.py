"""Stripe PaymentIntent flow with an in-memory Stripe client."""
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from apps.orders.models import Enrollment, OrderEvent, Payment
from apps.orders.stripe_adapter import StripePaymentAuthorizer, to_minor_units


class FakeIntent(SimpleNamespace):
    def to_dict(self):
        return dict(vars(self))


class FakePaymentIntents:
    def __init__(self):
        self.created = []
        self.status = "succeeded"
        self.error = None

    def create(self, params):
        if self.error:
            raise self.error
        self.created.append(params)
        n = len(self.created)
        return FakeIntent(id=f"pi_{n}", client_secret=f"pi_{n}_secret", status="requires_payment_method")

    def retrieve(self, intent_id):
        if self.error:
            raise self.error
        return FakeIntent(id=intent_id, client_secret=f"{intent_id}_secret", status=self.status)


@pytest.fixture
def intents(settings, monkeypatch):
    settings.PAYMENT_PROVIDER = "stripe"
    settings.STRIPE_SECRET_KEY = "sk_test_dummy"
    fake = FakePaymentIntents()
    client = SimpleNamespace(v1=SimpleNamespace(payment_intents=fake))
    monkeypatch.setattr("apps.orders.stripe_adapter.build_stripe_client", lambda: client)
    return fake


def _process(client, order):
    return client.post(f"/api/orders/{order.pk}/process")


def _confirm(client, order, intent_id):
    return client.post(f"/api/orders/{order.pk}/confirm", {"payment_intent_id": intent_id}, format="json")


@pytest.mark.parametrize(
    "amount, cents",
    [("49.90", 4990), ("0.01", 1), ("10", 1000), ("19.995", 2000), ("0.005", 1)],
)
def test_to_minor_units(amount, cents):
    assert to_minor_units(Decimal(amount)) == cents


@pytest.mark.django_db
def test_process_creates_payment_intent(buyer_client, buyer, make_course, place_order, intents, mailoutbox):
    order = place_order(make_course(price="49.90"))

    r = _process(buyer_client, order)

    assert r.status_code == 200
    body = r.json()
    assert body["provider"] == "stripe"
    assert body["status"] == "payment_authorizing"
    assert body["client_secret"] == "pi_1_secret"
    assert body["payment_intent_id"] == "pi_1"

    params = intents.created[0]
    assert params["amount"] == 4990
    assert params["currency"] == "eur"
    assert params["receipt_email"] == buyer.email
    assert params["metadata"]["order_number"] == order.order_number

    order.refresh_from_db()
    assert order.status == "payment_authorizing"
    payment = Payment.objects.get(order=order)
    assert (payment.provider, payment.provider_ref, payment.status) == ("stripe", "pi_1", "initiated")
    assert OrderEvent.objects.filter(order=order, type="PAYMENT_INTENT_CREATED").exists()
    assert not Enrollment.objects.exists()
    assert mailoutbox == []


@pytest.mark.django_db
def test_confirm_succeeded_fulfils(buyer_client, buyer, make_course, place_order, intents, mailoutbox):
    course = make_course()
    order = place_order(course)
    _process(buyer_client, order)

    r = _confirm(buyer_client, order, "pi_1")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "completed"
    assert body["granted_courses"] == [course.pk]
    assert Payment.objects.get(order=order).status == "captured"
    assert Enrollment.objects.filter(user=buyer, course=course, status="active").exists()
    assert OrderEvent.objects.filter(order=order, type="PAYMENT_CONFIRM_OK").exists()
    assert len(mailoutbox) == 2

    again = _confirm(buyer_client, order, "pi_1")
    assert again.status_code == 200
    assert again.json()["idempotent"] is True


@pytest.mark.django_db
def test_confirm_not_succeeded_fails_payment(buyer_client, make_course, place_order, intents):
    order = place_order(make_course())
    _process(buyer_client, order)
    intents.status = "requires_payment_method"

    r = _confirm(buyer_client, order, "pi_1")

    assert r.status_code == 402
    body = r.json()
    assert body["status"] == "payment_failed"
    assert body["reason"] == "provider_status:requires_payment_method"
    assert body["error"] == "The payment was declined."
    order.refresh_from_db()
    assert order.status == "payment_failed"
    assert Payment.objects.get(order=order).status == "failed"

    # a failed order can start a new intent
    r = _process(buyer_client, order)
    assert r.status_code == 200
    assert r.json()["payment_intent_id"] == "pi_2"


@pytest.mark.django_db
def test_confirm_unknown_reference(buyer_client, make_course, place_order, intents):
    order = place_order(make_course())
    _process(buyer_client, order)

    r = _confirm(buyer_client, order, "pi_other")

    assert r.status_code == 400
    assert r.json()["detail"] == "UNKNOWN_PAYMENT"
    order.refresh_from_db()
    assert order.status == "payment_authorizing"


@pytest.mark.django_db
def test_confirm_requires_authorizing_state(buyer_client, make_course, place_order, intents):
    order = place_order(make_course())

    r = _confirm(buyer_client, order, "pi_1")

    assert r.status_code == 409
    assert r.json()["detail"] == "INVALID_STATE"


@pytest.mark.django_db
def test_confirm_requires_reference(buyer_client, make_course, place_order, intents):
    order = place_order(make_course())
    r = _confirm(buyer_client, order, "   ")
    assert r.status_code == 400


@pytest.mark.django_db
def test_confirm_with_test_provider_is_rejected(buyer_client, make_course, place_order):
    order = place_order(make_course())

    r = _confirm(buyer_client, order, "pi_1")

    assert r.status_code == 400
    assert r.json()["detail"] == "CONFIRMATION_NOT_SUPPORTED"


@pytest.mark.django_db
def test_stripe_without_secret_key(buyer_client, make_course, place_order, settings):
    settings.PAYMENT_PROVIDER = "stripe"
    settings.STRIPE_SECRET_KEY = ""
    order = place_order(make_course())

    r = _process(buyer_client, order)

    assert r.status_code == 500
    assert r.json()["detail"] == "PROVIDER_NOT_CONFIGURED"
    order.refresh_from_db()
    assert order.status == "created"
    assert not Payment.objects.filter(order=order).exists()


@pytest.mark.django_db
def test_completed_order_stays_idempotent_without_secret_key(buyer_client, make_course, place_order, settings):
    order = place_order(make_course())
    assert _process(buyer_client, order).json()["status"] == "completed"
    settings.PAYMENT_PROVIDER = "stripe"
    settings.STRIPE_SECRET_KEY = ""

    r = _process(buyer_client, order)

    assert r.status_code == 200
    assert r.json()["idempotent"] is True
    assert r.json()["status"] == "completed"


@pytest.mark.django_db
def test_stripe_outage_rolls_back(buyer_client, make_course, place_order, intents):
    intents.error = stripe.APIConnectionError("network down")
    order = place_order(make_course())

    r = _process(buyer_client, order)

    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
    order.refresh_from_db()
    assert order.status == "created"
    assert not OrderEvent.objects.filter(order=order, type="PAYMENT_AUTH_START").exists()


def test_authorizer_verify_maps_status():
    fake = FakePaymentIntents()
    fake.status = "processing"
    authorizer = StripePaymentAuthorizer(client=SimpleNamespace(v1=SimpleNamespace(payment_intents=fake)))

    auth = authorizer.verify("pi_9")

    assert auth.ok is False
    assert auth.provider_status == "processing"
    assert auth.provider_reference == "pi_9"
