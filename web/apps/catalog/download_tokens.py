"""Signed, time-limited download links for course materials.

A token is a Django ``signing`` payload ``{"asset_id": ..., "buyer_id": ...}``
stamped with its creation time. It lets a buyer fetch a file straight from a
purchase e-mail without a session. Resolving the token does not grant access
by itself: the download view still checks that the buyer currently owns or
created the course.
"""

from django.conf import settings
from django.core import signing
from django.urls import reverse

from gateway.errors import AuthError, ValidationError

SALT = "apps.catalog.download"


def make_download_token(asset_id: int, buyer_id: int) -> str:
    return signing.dumps({"asset_id": asset_id, "buyer_id": buyer_id}, salt=SALT)


def build_download_url(asset_id: int, buyer_id: int) -> str:
    token = make_download_token(asset_id, buyer_id)
    path = reverse("catalog:public-download", kwargs={"token": token})
    return f"{settings.PUBLIC_BASE_URL}{path}"


def read_download_token(token: str, max_age: int | None = None) -> tuple[int, int]:
    """Validate ``token`` and return ``(asset_id, buyer_id)``.

    Raises:
        AuthError: The signature is invalid or the token has expired.
        ValidationError: The token is empty or its payload is malformed.
    """
    if not token:
        raise ValidationError("Missing token", code="MISSING_TOKEN")
    if max_age is None:
        max_age = getattr(settings, "DOWNLOAD_TOKEN_TTL", 7 * 24 * 3600)
    try:
        payload = signing.loads(token, salt=SALT, max_age=max_age)
    except signing.SignatureExpired:
        raise AuthError("Invalid or expired link", code="LINK_EXPIRED")
    except signing.BadSignature:
        raise AuthError("Invalid or expired link", code="INVALID_LINK")

    if not isinstance(payload, dict):
        raise ValidationError("Invalid token payload", code="INVALID_TOKEN_PAYLOAD")
    try:
        asset_id = int(payload["asset_id"])
        buyer_id = int(payload["buyer_id"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Invalid token payload", code="INVALID_TOKEN_PAYLOAD")
    return asset_id, buyer_id
