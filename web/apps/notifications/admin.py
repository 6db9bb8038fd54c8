from django.contrib import admin

from .models import NotificationOutbox


@admin.register(NotificationOutbox)
class NotificationOutboxAdmin(admin.ModelAdmin):
    list_display = ("id", "to_addr", "subject", "status", "attempts", "sent_at", "created_at")
    list_filter = ("status", "channel")
    search_fields = ("to_addr", "subject")
    readonly_fields = ("created_at", "updated_at", "sent_at", "last_error")
