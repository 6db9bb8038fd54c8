"""In-process payment authorizer for tests and local development.

``TestPaymentAuthorizer`` implements ``PaymentAuthorizerPort`` without any
network calls. Its outcome is deterministic so checkout flows, declines and
retries can be exercised end to end:

- a non-positive amount fails with reason ``amount_must_be_positive``;
- an order number ending in an odd digit with an amount above 100 is
  declined with reason ``simulated_decline``;
- everything else is authorized.
"""

import time
from decimal import Decimal

from gateway.errors import ValidationError

from .domain import Authorization, PaymentAuthorizerPort

DECLINE_THRESHOLD = Decimal("100")


def _now_ms() -> int:
    return int(time.time() * 1000)


class TestPaymentAuthorizer(PaymentAuthorizerPort):
    """Deterministic stub implementation of ``PaymentAuthorizerPort``."""

    __test__ = False  # not a pytest test class

    name = "test"
    requires_confirmation = False

    def authorize(self, amount, currency, order_reference, *, receipt_email=None, metadata=None):
        amount = Decimal(amount or 0)
        if amount <= 0:
            return Authorization(
                ok=False,
                provider=self.name,
                raw={"reason": "amount_must_be_positive"},
            )

        last = str(order_reference or "")[-1:]
        if last.isdigit() and int(last) % 2 == 1 and amount > DECLINE_THRESHOLD:
            return Authorization(
                ok=False,
                provider=self.name,
                provider_reference=f"test_fail_{_now_ms()}",
                raw={"reason": "simulated_decline"},
            )

        return Authorization(
            ok=True,
            provider=self.name,
            provider_reference=f"test_auth_{_now_ms()}",
            raw={"authorized": True, "amount": str(amount), "currency": currency},
        )

    def verify(self, provider_reference):
        raise ValidationError(
            "The test payment provider does not use confirmation",
            code="CONFIRMATION_NOT_SUPPORTED",
        )
