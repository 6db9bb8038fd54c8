"""Error taxonomy shared by the marketplace apps and its DRF handler.

Every error carries a stable machine ``code`` (returned as ``detail``) and a
human readable, translatable ``message`` (returned as ``error``). Views and
services raise these; ``api_exception_handler`` turns them into JSON
responses with the mapped HTTP status. Anything unexpected is logged with
its traceback and rendered as a generic 500 so internals never reach the
caller.
"""

import logging

from django.utils.translation import gettext_lazy as _
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"
    default_message = _("An internal error occurred.")

    def __init__(self, message=None, code: str | None = None, **context):
        self.message = message if message is not None else self.default_message
        if code:
            self.code = code
        self.context = context
        super().__init__(str(self.message))

    def as_body(self) -> dict:
        return {"detail": self.code, "error": str(self.message)}


class ValidationError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = _("The request is invalid.")


class AuthError(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    default_message = _("Missing, invalid or expired credentials.")


class ForbiddenError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = _("You do not have access to this resource.")


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = _("Resource not found.")


class ConflictError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = _("The resource is not in a state that allows this operation.")


class PaymentDeclinedError(MarketplaceError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "PAYMENT_DECLINED"
    default_message = _("The payment was declined.")


class ProviderConfigError(MarketplaceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "PROVIDER_NOT_CONFIGURED"
    default_message = _("The payment provider is not configured.")


class UpstreamUnavailableError(MarketplaceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "UPSTREAM_UNAVAILABLE"
    default_message = _("An upstream service is unavailable. Please retry later.")


class InternalError(MarketplaceError):
    pass


# ---- Specialisations used by the order pipeline ----

class EmptyCartError(ValidationError):
    code = "EMPTY_CART"
    default_message = _("Your cart is empty.")


class AlreadyOwnedError(ConflictError):
    code = "ALREADY_OWNED"
    default_message = _("Your cart contains a course you already own.")


class SelfPurchaseError(ConflictError):
    code = "SELF_PURCHASE"
    default_message = _("Your cart contains a course you created. You cannot buy it.")


class InvalidStateError(ConflictError):
    code = "INVALID_STATE"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"


def api_exception_handler(exc, context):
    """DRF ``EXCEPTION_HANDLER`` mapping the taxonomy above to responses."""
    if isinstance(exc, MarketplaceError):
        if exc.status_code >= 500:
            logger.error(
                "api_error",
                extra={"code": exc.code, "error_type": type(exc).__name__},
                exc_info=exc,
            )
        return Response(exc.as_body(), status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is not None:
        return response

    logger.error(
        "unexpected_error",
        extra={"error_type": type(exc).__name__, "error_message": str(exc)},
        exc_info=exc,
    )
    return Response(
        InternalError().as_body(),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def parse_payload(schema, data):
    """Validate ``data`` with a pydantic ``schema`` or raise ``ValidationError``."""
    try:
        return schema.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ValidationError(
            _("Invalid request body: %(fields)s") % {"fields": ", ".join(fields) or "body"},
            fields=fields,
        ) from e
