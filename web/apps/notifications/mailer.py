"""Mail transmission port and the Django mail backend adapter."""

import html
from dataclasses import dataclass, field
from typing import Protocol

from django.conf import settings
from django.core.mail import EmailMultiAlternatives


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class OutboundEmail:
    to: str
    subject: str
    text: str
    html: str | None = None
    attachments: list[Attachment] = field(default_factory=list)


class MailSender(Protocol):
    """Port for anything that can transmit an ``OutboundEmail``.

    Implementations raise on failure; callers decide whether a failure is
    fatal.
    """

    def send(self, message: OutboundEmail) -> None:
        raise NotImplementedError()


def text_to_html(text: str) -> str:
    """Wrap plain text in an escaped, whitespace-preserving ``<pre>`` block."""
    return (
        '<pre style="font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, '
        f'monospace; white-space: pre-wrap;">{html.escape(text or "", quote=False)}</pre>'
    )


def default_from_email() -> str:
    return getattr(settings, "DEFAULT_FROM_EMAIL", "Elitearn <no-reply@elitearn.dev>")


class DjangoMailSender:
    """Send through ``django.core.mail`` (SMTP in production, locmem in tests)."""

    def __init__(self, from_email: str | None = None, connection=None):
        self.from_email = from_email or default_from_email()
        self.connection = connection

    def send(self, message: OutboundEmail) -> None:
        if not message.to:
            raise ValueError("Missing recipient")
        if not message.subject:
            raise ValueError("Missing subject")
        msg = EmailMultiAlternatives(
            subject=message.subject,
            body=message.text,
            from_email=self.from_email,
            to=[message.to],
            connection=self.connection,
        )
        if message.html:
            msg.attach_alternative(message.html, "text/html")
        for att in message.attachments:
            msg.attach(att.filename, att.content, att.content_type)
        msg.send(fail_silently=False)

