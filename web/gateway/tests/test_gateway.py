import pytest
from rest_framework.exceptions import NotAuthenticated

from apps.cart.schemas import AddCartItemDTO
from gateway.errors import (
    InternalError,
    NotFoundError,
    PaymentDeclinedError,
    ProviderConfigError,
    ValidationError,
    api_exception_handler,
    parse_payload,
)
from gateway.pii import mask_email


def test_handler_renders_taxonomy_errors():
    r = api_exception_handler(NotFoundError("Order not found", code="ORDER_NOT_FOUND"), {})
    assert r.status_code == 404
    assert r.data == {"detail": "ORDER_NOT_FOUND", "error": "Order not found"}

    r = api_exception_handler(ProviderConfigError(), {})
    assert r.status_code == 500
    assert r.data["detail"] == "PROVIDER_NOT_CONFIGURED"


def test_handler_keeps_drf_errors():
    r = api_exception_handler(NotAuthenticated(), {})
    assert r.status_code == 401


def test_handler_hides_unexpected_errors():
    r = api_exception_handler(KeyError("secret internals"), {})
    assert r.status_code == 500
    assert r.data == InternalError().as_body()
    assert "secret" not in str(r.data)


def test_parse_payload_lists_fields():
    with pytest.raises(ValidationError) as exc:
        parse_payload(AddCartItemDTO, {"qty": -1})
    assert exc.value.context["fields"] == ["course_id", "qty"]
    assert "course_id" in str(exc.value.message)


def test_parse_payload_accepts_none_body():
    with pytest.raises(ValidationError):
        parse_payload(AddCartItemDTO, None)


@pytest.mark.parametrize(
    "email, masked",
    [("jane@x.io", "ja**@x.io"), ("jo@x.io", "**@x.io"), (None, "-"), ("nope", "nope")],
)
def test_mask_email(email, masked):
    assert mask_email(email) == masked


@pytest.mark.django_db
def test_request_id_is_echoed(client):
    r = client.get("/api/health/", HTTP_X_REQUEST_ID="req-123")
    assert r["X-Request-ID"] == "req-123"


@pytest.mark.django_db
def test_request_id_is_generated(client):
    r = client.get("/api/health/")
    assert len(r["X-Request-ID"]) == 36


@pytest.mark.django_db
def test_oversized_api_body_is_rejected(buyer_client, settings):
    settings.API_MAX_BYTES = 10

    r = buyer_client.post("/api/cart/items", {"course_id": 1, "qty": 1}, format="json")

    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"


def test_payment_declined_maps_to_402():
    r = api_exception_handler(PaymentDeclinedError(), {})
    assert r.status_code == 402
    assert r.data["detail"] == "PAYMENT_DECLINED"
