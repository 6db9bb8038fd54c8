"""Stripe PaymentIntents adapter for ``PaymentAuthorizerPort``.

The client is built explicitly from settings (or injected by tests) instead
of configuring the ``stripe`` module globally. Network calls are bounded by
``STRIPE_TIMEOUT_SECS`` and retried by the Stripe library up to
``STRIPE_MAX_NETWORK_RETRIES`` times.

Flow:
    1. ``authorize`` creates a PaymentIntent and returns its client secret.
       The order stays ``payment_authorizing`` until the client confirms.
    2. ``verify`` retrieves the intent and reports success only when Stripe
       says ``succeeded``.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

import stripe
from django.conf import settings

from gateway.errors import ProviderConfigError, UpstreamUnavailableError
from gateway.pii import mask_email

from .domain import Authorization, PaymentAuthorizerPort

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"


def to_minor_units(amount) -> int:
    """Convert a major-unit amount to integer cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_stripe_client() -> stripe.StripeClient:
    """Return a ``StripeClient`` configured from Django settings.

    Raises:
        ProviderConfigError: When ``STRIPE_SECRET_KEY`` is not set.
    """
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise ProviderConfigError(
            "Stripe is not configured. Missing STRIPE_SECRET_KEY.",
        )
    timeout = getattr(settings, "STRIPE_TIMEOUT_SECS", 20)
    return stripe.StripeClient(
        api_key,
        max_network_retries=getattr(settings, "STRIPE_MAX_NETWORK_RETRIES", 2),
        http_client=stripe.RequestsClient(timeout=timeout),
    )


def _as_dict(obj) -> dict:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


class StripePaymentAuthorizer(PaymentAuthorizerPort):
    """Create and verify Stripe PaymentIntents for orders."""

    name = "stripe"
    requires_confirmation = True

    def __init__(self, client: stripe.StripeClient | None = None):
        self.client = client or build_stripe_client()

    def authorize(self, amount, currency, order_reference, *, receipt_email=None, metadata=None):
        params = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "payment_method_types": ["card"],
            "description": f"Order {order_reference}",
            "metadata": dict(metadata or {}),
        }
        if receipt_email:
            params["receipt_email"] = receipt_email

        try:
            intent = self.client.v1.payment_intents.create(params=params)
        except stripe.StripeError as e:
            logger.warning(
                "stripe_intent_create_failed",
                extra={
                    "order_number": order_reference,
                    "receipt_email": mask_email(receipt_email),
                    "error_type": type(e).__name__,
                },
            )
            raise UpstreamUnavailableError("Payment provider request failed") from e

        logger.info(
            "stripe_intent_created",
            extra={"order_number": order_reference, "intent_id": intent.id},
        )
        return Authorization(
            ok=True,
            provider=self.name,
            provider_reference=intent.id,
            raw=_as_dict(intent),
            client_secret=intent.client_secret,
            requires_confirmation=True,
            provider_status=intent.status,
        )

    def verify(self, provider_reference):
        try:
            intent = self.client.v1.payment_intents.retrieve(provider_reference)
        except stripe.StripeError as e:
            logger.warning(
                "stripe_intent_retrieve_failed",
                extra={"intent_id": provider_reference, "error_type": type(e).__name__},
            )
            raise UpstreamUnavailableError("Payment provider request failed") from e

        return Authorization(
            ok=intent.status == SUCCEEDED,
            provider=self.name,
            provider_reference=intent.id,
            raw=_as_dict(intent),
            requires_confirmation=True,
            provider_status=intent.status,
        )
