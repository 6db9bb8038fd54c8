from django.contrib import admin

from .models import Enrollment, Order, OrderEvent, OrderItem, Payment


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("course", "unit_price", "quantity", "line_total")


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ("provider", "provider_ref", "status", "amount", "currency", "created_at")
    exclude = ("raw",)


class OrderEventInline(admin.TabularInline):
    model = OrderEvent
    extra = 0
    readonly_fields = ("type", "message", "meta", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "buyer", "status", "total", "currency", "created_at")
    list_filter = ("status",)
    search_fields = ("order_number", "buyer__email")
    readonly_fields = ("order_number", "subtotal", "total", "created_at", "updated_at")
    inlines = [OrderItemInline, PaymentInline, OrderEventInline]


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "status", "order", "granted_at")
    list_filter = ("status",)
