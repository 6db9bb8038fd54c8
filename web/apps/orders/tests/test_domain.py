"""Unit tests for the order state machine and the test payment authorizer."""
from decimal import Decimal

import pytest

from apps.orders.adapters import TestPaymentAuthorizer
from apps.orders.domain import (
    OrderStatus,
    ProcessingResult,
    can_transition,
    ensure_transition,
)
from gateway.errors import InvalidTransitionError, ValidationError


@pytest.mark.parametrize("src,dst", [
    ("created", "payment_authorizing"),
    ("payment_authorizing", "payment_authorized"),
    ("payment_authorizing", "payment_failed"),
    ("payment_failed", "payment_authorizing"),
    ("payment_authorized", "stock_checking"),
    ("stock_checking", "fulfillment_pending"),
    ("stock_checking", "cancelled"),
    ("fulfillment_pending", "completed"),
])
def test_allowed_transitions(src, dst):
    assert can_transition(src, dst) is True


@pytest.mark.parametrize("src,dst", [
    ("created", "completed"),
    ("payment_failed", "payment_authorized"),
    ("completed", "payment_authorizing"),
    ("cancelled", "created"),
    ("created", "bogus"),
])
def test_rejected_transitions(src, dst):
    assert can_transition(src, dst) is False


def test_ensure_transition_raises_conflict():
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_transition("completed", "cancelled")
    assert exc.value.status_code == 409
    assert exc.value.code == "INVALID_TRANSITION"


def test_test_authorizer_approves():
    auth = TestPaymentAuthorizer().authorize(Decimal("49.90"), "EUR", "ORD-2026-123457")
    assert auth.ok is True
    assert auth.provider == "test"
    assert auth.provider_reference.startswith("test_auth_")
    assert auth.raw["authorized"] is True


def test_test_authorizer_declines_odd_order_number_above_100():
    auth = TestPaymentAuthorizer().authorize(Decimal("100.01"), "EUR", "ORD-2026-123457")
    assert auth.ok is False
    assert auth.provider_reference.startswith("test_fail_")
    assert auth.raw == {"reason": "simulated_decline"}


def test_test_authorizer_even_order_number_is_never_declined():
    auth = TestPaymentAuthorizer().authorize(Decimal("500"), "EUR", "ORD-2026-123456")
    assert auth.ok is True


def test_test_authorizer_rejects_non_positive_amount():
    auth = TestPaymentAuthorizer().authorize(Decimal("0"), "EUR", "ORD-2026-123456")
    assert auth.ok is False
    assert auth.provider_reference is None
    assert auth.raw == {"reason": "amount_must_be_positive"}


def test_test_authorizer_has_no_confirmation_step():
    with pytest.raises(ValidationError):
        TestPaymentAuthorizer().verify("test_auth_1")


def test_processing_result_body():
    r = ProcessingResult(ok=True, http_status=200, order_id=7, status=OrderStatus.COMPLETED, granted_courses=[3])
    assert r.as_body() == {"order_id": 7, "status": "completed", "granted_courses": [3]}

    r = ProcessingResult(ok=False, http_status=402, order_id=7, status=OrderStatus.PAYMENT_FAILED, reason="simulated_decline")
    assert r.as_body() == {"order_id": 7, "status": "payment_failed", "reason": "simulated_decline"}


def test_processing_result_includes_error_message():
    r = ProcessingResult(
        ok=False,
        http_status=409,
        order_id=7,
        status=OrderStatus.CANCELLED,
        reason="course_unavailable",
        error="A course in this order is no longer available.",
    )
    assert r.as_body() == {
        "order_id": 7,
        "status": "cancelled",
        "reason": "course_unavailable",
        "error": "A course in this order is no longer available.",
    }
