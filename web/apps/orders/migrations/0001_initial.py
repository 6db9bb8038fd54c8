from decimal import Decimal

import django.core.serializers.json
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ("created", "created"),
    ("payment_authorizing", "payment_authorizing"),
    ("payment_authorized", "payment_authorized"),
    ("payment_failed", "payment_failed"),
    ("stock_checking", "stock_checking"),
    ("fulfillment_pending", "fulfillment_pending"),
    ("completed", "completed"),
    ("cancelled", "cancelled"),
]

PAYMENT_STATUS_CHOICES = [
    ("initiated", "initiated"),
    ("authorized", "authorized"),
    ("captured", "captured"),
    ("failed", "failed"),
]

EVENT_TYPE_CHOICES = [
    (name, name)
    for name in (
        "ORDER_CREATED",
        "PAYMENT_AUTH_START",
        "PAYMENT_AUTH_OK",
        "PAYMENT_AUTH_FAIL",
        "PAYMENT_INTENT_CREATED",
        "PAYMENT_CONFIRM_OK",
        "PAYMENT_CONFIRM_FAIL",
        "ELIGIBILITY_OK",
        "ELIGIBILITY_FAIL",
        "ORDER_CANCELLED",
        "FULFILLED",
        "EMAIL_SENT",
        "EMAIL_SEND_FAIL",
        "SELLER_EMAIL_SENT",
        "SELLER_EMAIL_FAIL",
    )
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order_number", models.CharField(max_length=32, unique=True)),
                ("status", models.CharField(choices=ORDER_STATUS_CHOICES, default="created", max_length=32)),
                ("full_name", models.CharField(blank=True, default="", max_length=200)),
                ("phone", models.CharField(blank=True, default="", max_length=50)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("currency", models.CharField(default="EUR", max_length=3)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("buyer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="orders", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["buyer", "-created_at"], name="orders_buyer_created_idx")],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("line_total", models.DecimalField(decimal_places=2, max_digits=12)),
                ("course", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="order_items", to="catalog.course")),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.order")),
            ],
            options={
                "db_table": "order_items",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("provider", models.CharField(max_length=32)),
                ("provider_ref", models.CharField(blank=True, max_length=255, null=True)),
                ("status", models.CharField(choices=PAYMENT_STATUS_CHOICES, max_length=16)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="EUR", max_length=3)),
                ("raw", models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="orders.order")),
            ],
            options={
                "db_table": "payments",
                "ordering": ["id"],
                "indexes": [models.Index(fields=["provider", "provider_ref"], name="payments_provider_ref_idx")],
            },
        ),
        migrations.CreateModel(
            name="Enrollment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(choices=[("active", "Active"), ("revoked", "Revoked")], default="active", max_length=16)),
                ("granted_at", models.DateTimeField()),
                ("course", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="enrollments", to="catalog.course")),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="enrollments", to="orders.order")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="enrollments", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "enrollments",
                "constraints": [
                    models.UniqueConstraint(fields=("user", "course"), name="uniq_enrollment_user_course"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(choices=EVENT_TYPE_CHOICES, max_length=32)),
                ("message", models.CharField(blank=True, default="", max_length=500)),
                ("meta", models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="events", to="orders.order")),
            ],
            options={
                "db_table": "order_events",
                "ordering": ["id"],
            },
        ),
    ]
