"""Factories wiring the notification components to their transports.

``EMAIL_PROVIDER`` selects the transport: ``smtp`` (default) sends through
Django's configured ``EMAIL_BACKEND``; ``sendgrid`` posts to the SendGrid
HTTP API with retries and a circuit breaker.
"""

from django.conf import settings

from .dispatcher import NotificationDispatcher
from .http_mailer import SendGridMailSender
from .mailer import DjangoMailSender, MailSender
from .outbox import OutboxRepository
from .worker import OutboxWorker


def get_mail_sender() -> MailSender:
    if getattr(settings, "EMAIL_PROVIDER", "smtp") == "sendgrid":
        return SendGridMailSender()
    return DjangoMailSender()


def get_dispatcher(mailer: MailSender | None = None) -> NotificationDispatcher:
    return NotificationDispatcher(mailer=mailer or get_mail_sender(), outbox=OutboxRepository())


def get_outbox_worker(
    mailer: MailSender | None = None,
    batch_size: int | None = None,
    interval: float | None = None,
) -> OutboxWorker:
    return OutboxWorker(
        mailer=mailer or get_mail_sender(),
        outbox=OutboxRepository(),
        batch_size=batch_size or getattr(settings, "OUTBOX_BATCH_SIZE", 10),
        interval=interval or getattr(settings, "OUTBOX_POLL_INTERVAL", 4.0),
        lease_secs=getattr(settings, "OUTBOX_LEASE_SECS", 300),
    )
