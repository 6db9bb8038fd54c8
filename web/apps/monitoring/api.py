"""Liveness and readiness check used by load balancers and smoke tests."""

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1")
        db_ok = True
    except DatabaseError:
        logger.warning("health_db_unreachable", exc_info=True)

    return JsonResponse(
        {
            "ok": db_ok,
            "provider": getattr(settings, "PAYMENT_PROVIDER", "test"),
            "components": {"db": {"ok": db_ok}},
        },
        status=200 if db_ok else 503,
    )
