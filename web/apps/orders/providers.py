"""Service provider helpers wiring the order ledger with its ports.

``get_order_ledger`` returns an ``OrderLedger`` whose payment authorizer is
chosen by ``settings.PAYMENT_PROVIDER``: ``stripe`` uses
``StripePaymentAuthorizer``; anything else falls back to the deterministic
``TestPaymentAuthorizer``. The authorizer is built lazily by the ledger so
order reads and checkout keep working when Stripe is not configured.
"""

from django.conf import settings

from apps.notifications.providers import get_dispatcher

from .adapters import TestPaymentAuthorizer
from .domain import PaymentAuthorizerPort
from .fulfillment import FulfillmentEngine
from .ledger import OrderLedger
from .stripe_adapter import StripePaymentAuthorizer


def payment_provider_name() -> str:
    return getattr(settings, "PAYMENT_PROVIDER", "test")


def get_payment_authorizer() -> PaymentAuthorizerPort:
    """Return the configured authorizer.

    Raises:
        ProviderConfigError: ``stripe`` is selected without a secret key.
    """
    if payment_provider_name() == "stripe":
        return StripePaymentAuthorizer()
    return TestPaymentAuthorizer()


def get_fulfillment_engine() -> FulfillmentEngine:
    return FulfillmentEngine(dispatcher=get_dispatcher())


def get_order_ledger() -> OrderLedger:
    return OrderLedger(
        fulfillment=get_fulfillment_engine(),
        authorizer_factory=get_payment_authorizer,
    )
