from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.files.base import ContentFile
from rest_framework.test import APIClient


@pytest.fixture(autouse=True)
def test_settings(settings, tmp_path):
    settings.PAYMENT_PROVIDER = "test"
    settings.EMAIL_PROVIDER = "smtp"
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.MEDIA_ROOT = str(tmp_path / "media")
    settings.PUBLIC_BASE_URL = "http://testserver"
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    # throttle counters live in the default cache
    cache.clear()


@pytest.fixture
def make_user(db):
    User = get_user_model()
    counter = {"n": 0}

    def _make(email=None, **kwargs):
        counter["n"] += 1
        email = email if email is not None else f"user{counter['n']}@example.com"
        return User.objects.create_user(
            username=kwargs.pop("username", f"user{counter['n']}"),
            email=email,
            password="pass1234",
            **kwargs,
        )

    return _make


@pytest.fixture
def buyer(make_user):
    return make_user(email="buyer@example.com", username="buyer")


@pytest.fixture
def creator(make_user):
    return make_user(email="creator@example.com", username="creator")


@pytest.fixture
def make_course(creator):
    from apps.catalog.models import Course

    def _make(title="Python 101", price="49.90", published=True, owner=None):
        return Course.objects.create(
            creator=owner or creator,
            title=title,
            description=f"{title} description",
            price=Decimal(price),
            is_published=published,
        )

    return _make


@pytest.fixture
def make_asset():
    from apps.catalog.models import CourseAsset

    def _make(course, title="Slides.pdf", content=b"%PDF-1.4 test", mime_type="application/pdf"):
        asset = CourseAsset(course=course, title=title, mime_type=mime_type, file_size=len(content))
        asset.file.save(title, ContentFile(content), save=False)
        asset.save()
        return asset

    return _make


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


class RecordingMailer:
    """In-memory ``MailSender`` that records messages or fails on demand."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, message):
        if message.to in self.fail_for:
            raise ConnectionError(f"smtp down for {message.to}")
        self.sent.append(message)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def recording_mailer_cls():
    return RecordingMailer


@pytest.fixture
def place_order(buyer):
    """Put ``courses`` in the cart and check out through the ledger."""
    from apps.cart.models import CartItem
    from apps.cart.services import get_or_create_active_cart
    from apps.orders.providers import get_order_ledger

    def _place(*courses, user=None, qty=1):
        user = user or buyer
        cart = get_or_create_active_cart(user)
        for course in courses:
            CartItem.objects.create(cart=cart, course=course, qty=qty)
        return get_order_ledger().create_order(user, full_name="Jane Doe")

    return _place
