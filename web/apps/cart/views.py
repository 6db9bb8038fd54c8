"""HTTP views for the buyer's cart.

Every mutating endpoint answers with the full cart so clients can re-render
without a second round trip.
"""

from rest_framework.response import Response
from rest_framework.views import APIView

from gateway.errors import parse_payload

from . import services
from .schemas import AddCartItemDTO, UpdateCartItemDTO


def _cart_response(cart, status=200):
    return Response(cart.model_dump(mode="json"), status=status)


class CartView(APIView):
    def get(self, request):
        return _cart_response(services.read_cart(request.user))


class CartItemsView(APIView):
    def post(self, request):
        dto = parse_payload(AddCartItemDTO, request.data)
        return _cart_response(services.add_item(request.user, dto.course_id, dto.qty))


class CartItemDetailView(APIView):
    def put(self, request, course_id: int):
        dto = parse_payload(UpdateCartItemDTO, request.data)
        return _cart_response(services.set_item_qty(request.user, course_id, dto.qty))

    def delete(self, request, course_id: int):
        return _cart_response(services.remove_item(request.user, course_id))
