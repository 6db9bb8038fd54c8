"""SendGrid HTTP mail transport with retries, a circuit breaker and context headers.

This module implements ``MailSender`` on top of the SendGrid v3 ``mail/send``
endpoint using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- A circuit breaker so an unhealthy SendGrid is not hammered, with
  HALF_OPEN probing after a timeout.
- A retry policy with exponential backoff for transport errors and 5xx.
"""

import base64
import logging
import threading
import time

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX
from gateway.pii import mask_email

from .mailer import OutboundEmail, default_from_email

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """SendGrid rejected the message or could not be reached."""


class CircuitOpenError(MailDeliveryError):
    pass


CLOSED, OPEN, HALF_OPEN = "CLOSED", "OPEN", "HALF_OPEN"


class CircuitBreaker:
    """Stop calling SendGrid after repeated failures.

    After ``fail_threshold`` consecutive failed sends the breaker opens and
    every send fails fast with ``CircuitOpenError``. Once ``reset_timeout``
    seconds have passed a single trial send is let through: success closes
    the breaker, failure opens it for another period.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = max(1, fail_threshold)
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_running = False

    def _cooled_down(self) -> bool:
        return time.monotonic() - self._opened_at >= self.reset_timeout

    @property
    def state(self) -> str:
        with self._lock:
            if self._opened_at is None:
                return CLOSED
            return HALF_OPEN if self._cooled_down() else OPEN

    def allow(self) -> str:
        """Admit one send and return the breaker state it was admitted in.

        Raises:
            CircuitOpenError: The breaker is open, or its single trial send
                is already running.
        """
        with self._lock:
            current = self.state
            if current == OPEN:
                raise CircuitOpenError(f"circuit {self.name} is open")
            if current == HALF_OPEN:
                if self._trial_running:
                    raise CircuitOpenError(f"circuit {self.name} is probing")
                self._trial_running = True
            return current

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_running = False

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            trial_failed = self._trial_running
            self._trial_running = False
            if trial_failed or self._consecutive_failures >= self.fail_threshold:
                self._opened_at = time.monotonic()

    def release(self) -> None:
        """Free the trial slot if the send ended without a verdict."""
        with self._lock:
            self._trial_running = False


sendgrid_cb = CircuitBreaker(
    "sendgrid",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---- helpers ----

def _request_headers(extra: dict | None = None) -> dict:
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy() -> tuple[int, float, float]:
    """Return ``(max_retries, backoff_base_seconds, max_sleep_seconds)``."""
    return (
        max(0, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 2.0),
    )


def _should_retry(resp: httpx.Response | None, exc: Exception | None) -> bool:
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def build_payload(message: OutboundEmail, from_email: str) -> dict:
    content = [{"type": "text/plain", "value": message.text}]
    if message.html:
        content.append({"type": "text/html", "value": message.html})
    payload = {
        "personalizations": [{"to": [{"email": message.to}]}],
        "from": {"email": from_email},
        "subject": message.subject,
        "content": content,
    }
    if message.attachments:
        payload["attachments"] = [
            {
                "content": base64.b64encode(a.content).decode("ascii"),
                "filename": a.filename,
                "type": a.content_type,
                "disposition": "attachment",
            }
            for a in message.attachments
        ]
    return payload


def _sender_address(from_email: str) -> str:
    # SendGrid wants the bare address: "Name <a@b>" -> "a@b"
    if "<" in from_email and from_email.endswith(">"):
        return from_email.rsplit("<", 1)[1][:-1].strip()
    return from_email


# ---- transport ----

class SendGridMailSender:
    """HTTP client for SendGrid with retry and circuit breaker."""

    def __init__(self, api_key: str | None = None, url: str | None = None,
                 timeout: float | None = None, from_email: str | None = None,
                 breaker: CircuitBreaker | None = None):
        self.api_key = api_key or getattr(settings, "SENDGRID_API_KEY", "")
        self.url = url or getattr(settings, "SENDGRID_API_URL", "https://api.sendgrid.com/v3/mail/send")
        self.timeout = timeout or getattr(settings, "HTTP_TIMEOUT_SECS", 10.0)
        self.from_email = _sender_address(from_email or default_from_email())
        self.breaker = breaker or sendgrid_cb

    def send(self, message: OutboundEmail) -> None:
        """Deliver ``message`` through SendGrid.

        SendGrid answers ``202 Accepted`` on success. 4xx responses are not
        retried and do not count against the circuit.

        Raises:
            MailDeliveryError: On a rejected message, or when retries are
                exhausted for transport errors and 5xx responses.
        """
        if not self.api_key:
            raise MailDeliveryError("Missing SENDGRID_API_KEY")
        if not message.to:
            raise MailDeliveryError("Missing recipient")

        payload = build_payload(message, self.from_email)
        max_retries, backoff, cap = _retry_policy()
        tries = 0

        state = self.breaker.allow()
        headers = _request_headers({
            "Authorization": f"Bearer {self.api_key}",
            "X-Circuit-State": state,
        })

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.post(self.url, json=payload, headers=headers)
                        if 200 <= resp.status_code < 300:
                            self.breaker.record_success()
                            logger.info(
                                "sendgrid_sent",
                                extra={"to": mask_email(message.to), "tries": tries + 1},
                            )
                            return
                        if not _should_retry(resp, None):
                            # client error: the message itself is bad
                            self.breaker.record_success()
                            raise MailDeliveryError(
                                f"SendGrid rejected message: HTTP {resp.status_code} {resp.text[:200]}"
                            )
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    if tries > max_retries:
                        self.breaker.record_failure()
                        logger.warning(
                            "sendgrid_failed",
                            extra={"to": mask_email(message.to), "tries": tries},
                        )
                        if exc is not None:
                            raise MailDeliveryError(f"SendGrid unreachable: {exc}") from exc
                        raise MailDeliveryError(f"SendGrid error: HTTP {resp.status_code}")

                    time.sleep(min(backoff * (2 ** (tries - 1)), cap))
        finally:
            self.breaker.release()
