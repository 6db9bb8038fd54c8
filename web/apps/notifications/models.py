from django.conf import settings
from django.db import models


class NotificationOutbox(models.Model):
    """Durable copy of an outbound notification.

    Rows are written in the same transaction as the business change that
    produced them and are drained by the outbox worker. ``claimed_until`` is
    a lease so several workers never deliver the same row twice.
    """

    class Status(models.TextChoices):
        PENDING = "pending"
        SENT = "sent"
        FAILED = "failed"

    class Channel(models.TextChoices):
        EMAIL = "email"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    channel = models.CharField(max_length=16, choices=Channel.choices, default=Channel.EMAIL)
    to_addr = models.CharField(max_length=254)
    subject = models.CharField(max_length=255)
    body = models.TextField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    last_error = models.CharField(max_length=255, null=True, blank=True)
    attempts = models.PositiveIntegerField(default=0)
    claimed_until = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "notification_outbox"
        ordering = ["id"]
        indexes = [models.Index(fields=("status", "id"), name="outbox_status_id_idx")]

    def __str__(self) -> str:
        return f"{self.channel}:{self.to_addr} [{self.status}]"
