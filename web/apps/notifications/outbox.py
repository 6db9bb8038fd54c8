"""Outbox persistence and status transitions.

Both the synchronous path in the dispatcher and the background worker go
through ``OutboxRepository`` so a row is marked ``sent`` exactly where it
was delivered.
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from gateway.pii import mask_email

from .models import NotificationOutbox

logger = logging.getLogger(__name__)

ERROR_MAX_LEN = 250


class OutboxRepository:
    """Repository for notification outbox rows."""

    def add(self, *, to_addr: str, subject: str, body: str, user_id: int | None = None) -> NotificationOutbox:
        row = NotificationOutbox.objects.create(
            user_id=user_id,
            channel=NotificationOutbox.Channel.EMAIL,
            to_addr=to_addr,
            subject=subject[:255],
            body=body,
        )
        logger.info("outbox_enqueued", extra={"outbox_id": row.pk, "to": mask_email(to_addr)})
        return row

    def claim_batch(self, limit: int, lease_secs: int) -> list[NotificationOutbox]:
        """Lease up to ``limit`` pending rows, oldest first.

        Rows locked by another worker are skipped, and rows whose lease has
        not yet expired are left alone, so concurrent workers never pick up
        the same row.
        """
        now = timezone.now()
        with transaction.atomic():
            rows = list(
                NotificationOutbox.objects
                .select_for_update(skip_locked=True)
                .filter(status=NotificationOutbox.Status.PENDING)
                .filter(Q(claimed_until__isnull=True) | Q(claimed_until__lt=now))
                .order_by("id")[:limit]
            )
            if rows:
                NotificationOutbox.objects.filter(pk__in=[r.pk for r in rows]).update(
                    claimed_until=now + timedelta(seconds=lease_secs),
                )
        return rows

    def mark_sent(self, outbox_id: int) -> None:
        NotificationOutbox.objects.filter(pk=outbox_id).update(
            status=NotificationOutbox.Status.SENT,
            sent_at=timezone.now(),
            last_error=None,
            claimed_until=None,
            attempts=F("attempts") + 1,
        )

    def mark_failed(self, outbox_id: int, error: str) -> None:
        NotificationOutbox.objects.filter(pk=outbox_id).update(
            status=NotificationOutbox.Status.FAILED,
            last_error=(error or "unknown error")[:ERROR_MAX_LEN],
            claimed_until=None,
            attempts=F("attempts") + 1,
        )

    def requeue_failed(self, max_attempts: int | None = None) -> int:
        """Move ``failed`` rows back to ``pending``; returns how many moved."""
        qs = NotificationOutbox.objects.filter(status=NotificationOutbox.Status.FAILED)
        if max_attempts is not None:
            qs = qs.filter(attempts__lt=max_attempts)
        return qs.update(status=NotificationOutbox.Status.PENDING, claimed_until=None)
