"""Gateway middleware: request correlation and API payload limits.

``RequestIdMiddleware`` gives every request an identifier, reusing the
client's ``X-Request-Id`` header when present and generating a UUIDv4
otherwise. The id is stored on ``request.request_id`` and in
``REQUEST_ID_CTX`` so log records emitted deeper in the stack (order ledger,
dispatcher, mailers) can be correlated without threading the value through
every call. The same id is echoed back in the ``X-Request-ID`` response
header.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body
exceeds ``API_MAX_BYTES`` before any view parses them.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    """Assign a per-request id and expose it to logs and responses."""

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None) or REQUEST_ID_CTX.get()
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Return 413 for oversized API bodies based on ``Content-Length``."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        limit = getattr(settings, "API_MAX_BYTES", 1024 * 1024)
        if clen and clen.isdigit() and int(clen) > limit:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
