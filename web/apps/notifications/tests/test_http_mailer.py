import httpx
import pytest

from apps.notifications.http_mailer import (
    CircuitBreaker,
    CircuitOpenError,
    MailDeliveryError,
    SendGridMailSender,
    build_payload,
    sendgrid_cb,
)
from apps.notifications.mailer import Attachment, OutboundEmail

URL = "https://sendgrid.test/v3/mail/send"


@pytest.fixture(autouse=True)
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None)
    sendgrid_cb.record_success()
    yield
    sendgrid_cb.record_success()


def _message(**kwargs):
    return OutboundEmail(to="buyer@example.com", subject="Hi", text="Hello", **kwargs)


def _sender(**kwargs):
    kwargs.setdefault("breaker", CircuitBreaker("test", fail_threshold=5, reset_timeout=60))
    return SendGridMailSender(api_key="SG.key", url=URL, from_email="Elitearn <no-reply@elitearn.dev>", **kwargs)


def _responses(monkeypatch, *outcomes):
    calls = []
    it = iter(outcomes)

    def fake_post(self, url, json=None, headers=None, **kwargs):
        calls.append({"url": url, "json": json, "headers": headers})
        outcome = next(it)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text="body", request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.Client, "post", fake_post)
    return calls


def test_payload_includes_html_and_attachments():
    msg = _message(html="<p>Hello</p>", attachments=[Attachment("a.txt", b"abc", "text/plain")])

    payload = build_payload(msg, "no-reply@elitearn.dev")

    assert payload["personalizations"] == [{"to": [{"email": "buyer@example.com"}]}]
    assert payload["from"] == {"email": "no-reply@elitearn.dev"}
    assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]
    assert payload["attachments"][0]["content"] == "YWJj"
    assert payload["attachments"][0]["filename"] == "a.txt"


def test_send_accepted(monkeypatch):
    calls = _responses(monkeypatch, 202)

    _sender().send(_message())

    assert len(calls) == 1
    assert calls[0]["url"] == URL
    assert calls[0]["headers"]["Authorization"] == "Bearer SG.key"
    assert calls[0]["json"]["from"] == {"email": "no-reply@elitearn.dev"}


def test_retries_on_5xx_then_succeeds(monkeypatch):
    calls = _responses(monkeypatch, 503, 202)
    _sender().send(_message())
    assert len(calls) == 2


def test_retries_on_transport_error(monkeypatch):
    calls = _responses(monkeypatch, httpx.ConnectError("refused"), 202)
    _sender().send(_message())
    assert len(calls) == 2


def test_gives_up_after_max_retries(monkeypatch):
    calls = _responses(monkeypatch, 500, 500, 500)

    with pytest.raises(MailDeliveryError):
        _sender().send(_message())

    assert len(calls) == 3


def test_client_error_is_not_retried(monkeypatch):
    calls = _responses(monkeypatch, 400)

    with pytest.raises(MailDeliveryError, match="rejected"):
        _sender().send(_message())

    assert len(calls) == 1


def test_missing_api_key(settings):
    settings.SENDGRID_API_KEY = ""
    with pytest.raises(MailDeliveryError):
        SendGridMailSender(url=URL).send(_message())


def test_circuit_opens_after_failures(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 0
    breaker = CircuitBreaker("test", fail_threshold=2, reset_timeout=60)
    calls = _responses(monkeypatch, 500, 500, 202)
    sender = _sender(breaker=breaker)

    for _ in range(2):
        with pytest.raises(MailDeliveryError):
            sender.send(_message())

    assert breaker.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        sender.send(_message())
    assert len(calls) == 2


def test_half_open_trial_success_closes_circuit(monkeypatch):
    breaker = CircuitBreaker("test", fail_threshold=1, reset_timeout=0)
    breaker.record_failure()
    assert breaker.state == "HALF_OPEN"

    _responses(monkeypatch, 202)
    _sender(breaker=breaker).send(_message())

    assert breaker.state == "CLOSED"
