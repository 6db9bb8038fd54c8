"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via Pydantic),
delegate to the ``OrderLedger`` obtained from ``get_order_ledger()`` and map
the outcome to an HTTP response. Errors raised by the ledger are rendered by
``gateway.errors.api_exception_handler``; payment declines and eligibility
failures come back as ``ProcessingResult`` values whose ``http_status`` is
used as the response status.
"""

from django.core.paginator import Paginator
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from gateway.errors import ValidationError, parse_payload

from . import providers
from .schemas import ConfirmOrderDTO, CreateOrderDTO, OrderReadDTO

MAX_PAGE_SIZE = 100


def _int_param(request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


class OrdersCollectionView(APIView):
    """List the caller's orders or create one from the active cart."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # throttles are evaluated in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        page = _int_param(request, "page", 1)
        page_size = max(1, min(MAX_PAGE_SIZE, _int_param(request, "page_size", 20)))

        qs = providers.get_order_ledger().list_orders(request.user)
        p = Paginator(qs, page_size)
        page_obj = p.get_page(page)

        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": [
                    OrderReadDTO.from_order(o).model_dump(mode="json", exclude_none=True)
                    for o in page_obj.object_list
                ],
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        """Create an order from the caller's cart.

        Returns:
            Response: 201 with ``{order_id, order_number, status, subtotal,
            total}``; 400 ``EMPTY_CART``; 409 ``ALREADY_OWNED`` or
            ``SELF_PURCHASE``.
        """
        dto = parse_payload(CreateOrderDTO, request.data)
        order = providers.get_order_ledger().create_order(
            request.user,
            full_name=dto.customer.full_name,
            phone=dto.customer.phone,
        )
        return Response(
            {
                "order_id": order.pk,
                "order_number": order.order_number,
                "status": order.status,
                "subtotal": str(order.subtotal),
                "total": str(order.total),
            },
            status=status.HTTP_201_CREATED,
        )


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request, order_id: int):
        order = providers.get_order_ledger().get_order(order_id, request.user)
        dto = OrderReadDTO.from_order(order, with_items=True)
        return Response(dto.model_dump(mode="json", exclude_none=True), status=status.HTTP_200_OK)


class ProcessOrderView(APIView):
    """Authorize payment and fulfil, or start a client-confirmed payment."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_process"

    def post(self, request, order_id: int):
        result = providers.get_order_ledger().process_order(order_id, request.user)
        body = {"ok": result.ok, "provider": providers.payment_provider_name(), **result.as_body()}
        return Response(body, status=result.http_status)


class ConfirmOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_process"

    def post(self, request, order_id: int):
        dto = parse_payload(ConfirmOrderDTO, request.data)
        result = providers.get_order_ledger().confirm_order(order_id, request.user, dto.payment_intent_id)
        return Response({"ok": result.ok, **result.as_body()}, status=result.http_status)
