"""Cart operations used by the cart API and by order creation.

Prices are never stored on cart lines; every read joins the live course
price. The order ledger snapshots them when the cart is converted.
"""

import logging
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import F

from apps.catalog.access import has_active_enrollment
from apps.catalog.models import Course
from gateway.errors import AlreadyOwnedError, NotFoundError, SelfPurchaseError

from .models import Cart, CartItem
from .schemas import CartLineOut, CartOut

logger = logging.getLogger(__name__)


def get_or_create_active_cart(user) -> Cart:
    """Return the buyer's active cart, creating it on first access.

    Concurrent first requests race on the partial unique constraint; the
    loser rolls back its savepoint and reads the winner's row.
    """
    cart = Cart.objects.filter(user=user, status=Cart.Status.ACTIVE).order_by("-id").first()
    if cart is not None:
        return cart
    try:
        with transaction.atomic():
            return Cart.objects.create(user=user, status=Cart.Status.ACTIVE)
    except IntegrityError:
        return Cart.objects.get(user=user, status=Cart.Status.ACTIVE)


def cart_lines(cart: Cart) -> list[CartLineOut]:
    items = cart.items.select_related("course").order_by("-id")
    return [
        CartLineOut(
            course_id=it.course_id,
            qty=it.qty,
            title=it.course.title,
            price=it.course.price,
            line_total=it.course.price * it.qty,
        )
        for it in items
    ]


def read_cart(user) -> CartOut:
    cart = get_or_create_active_cart(user)
    lines = cart_lines(cart)
    subtotal = sum((line.line_total for line in lines), Decimal("0.00"))
    return CartOut(cart_id=cart.pk, items=lines, subtotal=subtotal, total=subtotal)


def add_item(user, course_id: int, qty: int = 1) -> CartOut:
    """Add ``qty`` of a published course, merging with an existing line.

    Raises:
        NotFoundError: The course does not exist or is not published.
        SelfPurchaseError: The buyer created the course.
        AlreadyOwnedError: The buyer already holds an active enrollment.
    """
    try:
        course = Course.objects.get(pk=course_id, is_published=True)
    except Course.DoesNotExist:
        raise NotFoundError("Course not found", code="COURSE_NOT_FOUND")
    if course.creator_id == user.pk:
        raise SelfPurchaseError("You cannot buy a course you created.")
    if has_active_enrollment(user.pk, course.pk):
        raise AlreadyOwnedError("You already own this course.")

    cart = get_or_create_active_cart(user)
    with transaction.atomic():
        item, created = CartItem.objects.get_or_create(
            cart=cart, course=course, defaults={"qty": qty}
        )
        if not created:
            CartItem.objects.filter(pk=item.pk).update(qty=F("qty") + qty)
    logger.info("cart_item_added", extra={"cart_id": cart.pk, "course_id": course.pk, "qty": qty})
    return read_cart(user)


def set_item_qty(user, course_id: int, qty: int) -> CartOut:
    cart = get_or_create_active_cart(user)
    if qty <= 0:
        CartItem.objects.filter(cart=cart, course_id=course_id).delete()
    else:
        CartItem.objects.filter(cart=cart, course_id=course_id).update(qty=qty)
    return read_cart(user)


def remove_item(user, course_id: int) -> CartOut:
    cart = get_or_create_active_cart(user)
    CartItem.objects.filter(cart=cart, course_id=course_id).delete()
    return read_cart(user)
