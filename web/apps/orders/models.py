from decimal import Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from .domain import EventType, OrderStatus, PaymentStatus, ensure_transition


def _choices(enum_cls):
    return [(m.value, m.value) for m in enum_cls]


class Order(models.Model):
    # Human readable number exposed to buyers and providers: ORD-<year>-<6 digits>
    order_number = models.CharField(max_length=32, unique=True)
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    status = models.CharField(
        max_length=32,
        choices=_choices(OrderStatus),
        default=OrderStatus.CREATED.value,
    )
    full_name = models.CharField(max_length=200, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="EUR")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=("buyer", "-created_at"), name="orders_buyer_created_idx")]

    def __str__(self) -> str:
        return self.order_number

    def advance(self, target: OrderStatus) -> None:
        """Move to ``target`` if the state machine allows it, and persist.

        Raises:
            InvalidTransitionError: The transition is not in the table.
        """
        ensure_transition(self.status, target.value)
        self.status = target.value
        self.save(update_fields=["status", "updated_at"])


class OrderItem(models.Model):
    """Price snapshot of one course at the moment the order was created."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    course = models.ForeignKey(
        "catalog.Course",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "order_items"
        ordering = ["id"]


class Payment(models.Model):
    """One row per authorization attempt against a provider."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="payments")
    provider = models.CharField(max_length=32)
    provider_ref = models.CharField(max_length=255, null=True, blank=True)
    status = models.CharField(max_length=16, choices=_choices(PaymentStatus))
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="EUR")
    raw = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payments"
        ordering = ["id"]
        indexes = [models.Index(fields=("provider", "provider_ref"), name="payments_provider_ref_idx")]


class Enrollment(models.Model):
    """Access grant from a buyer to a course. Never deleted, only revoked."""

    class Status(models.TextChoices):
        ACTIVE = "active"
        REVOKED = "revoked"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="enrollments",
    )
    course = models.ForeignKey(
        "catalog.Course",
        on_delete=models.CASCADE,
        related_name="enrollments",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="enrollments",
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    granted_at = models.DateTimeField()

    class Meta:
        db_table = "enrollments"
        constraints = [
            models.UniqueConstraint(fields=("user", "course"), name="uniq_enrollment_user_course"),
        ]


class OrderEvent(models.Model):
    """Append-only audit trail for an order."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="events")
    type = models.CharField(max_length=32, choices=_choices(EventType))
    message = models.CharField(max_length=500, blank=True, default="")
    meta = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_events"
        ordering = ["id"]
