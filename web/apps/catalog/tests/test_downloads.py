"""Material downloads: session endpoint and signed e-mail links."""
import pytest
from django.core import signing
from django.utils import timezone

from apps.catalog.download_tokens import SALT, build_download_url, make_download_token, read_download_token
from apps.orders.models import Enrollment
from gateway.errors import AuthError, ValidationError


def _enroll(user, course, status="active"):
    return Enrollment.objects.create(user=user, course=course, status=status, granted_at=timezone.now())


def _public_url(token):
    return f"/api/public/download/{token}"


def _body(response):
    return b"".join(response.streaming_content)


@pytest.mark.django_db
def test_token_round_trip(buyer, make_course, make_asset):
    asset = make_asset(make_course())
    token = make_download_token(asset.pk, buyer.pk)
    assert read_download_token(token) == (asset.pk, buyer.pk)


def test_build_download_url_uses_public_base(settings):
    settings.PUBLIC_BASE_URL = "https://elitearn.example"
    url = build_download_url(7, 3)
    assert url.startswith("https://elitearn.example/api/public/download/")


def test_read_token_errors(settings):
    with pytest.raises(ValidationError) as exc:
        read_download_token("")
    assert exc.value.code == "MISSING_TOKEN"

    with pytest.raises(AuthError) as exc:
        read_download_token("garbage")
    assert exc.value.code == "INVALID_LINK"

    settings.DOWNLOAD_TOKEN_TTL = -1
    with pytest.raises(AuthError) as exc:
        read_download_token(make_download_token(1, 1))
    assert exc.value.code == "LINK_EXPIRED"


@pytest.mark.django_db
def test_public_download_streams_file(api_client, buyer, make_course, make_asset):
    course = make_course()
    asset = make_asset(course, title="Week 1: intro.pdf", content=b"%PDF-1.4 hello")
    _enroll(buyer, course)

    r = api_client.get(_public_url(make_download_token(asset.pk, buyer.pk)))

    assert r.status_code == 200
    assert _body(r) == b"%PDF-1.4 hello"
    assert r["Content-Type"] == "application/pdf"
    assert "attachment" in r["Content-Disposition"]
    assert "Week 1_ intro.pdf" in r["Content-Disposition"]


@pytest.mark.django_db
def test_public_download_expired(api_client, buyer, make_course, make_asset, settings):
    course = make_course()
    asset = make_asset(course)
    _enroll(buyer, course)
    settings.DOWNLOAD_TOKEN_TTL = -1

    r = api_client.get(_public_url(make_download_token(asset.pk, buyer.pk)))

    assert r.status_code == 401
    assert r.json()["detail"] == "LINK_EXPIRED"


@pytest.mark.django_db
def test_public_download_tampered(api_client, buyer, make_course, make_asset):
    asset = make_asset(make_course())
    token = make_download_token(asset.pk, buyer.pk)

    r = api_client.get(_public_url(token + "x"))

    assert r.status_code == 401
    assert r.json()["detail"] == "INVALID_LINK"


@pytest.mark.django_db
def test_public_download_malformed_payload(api_client):
    r = api_client.get(_public_url(signing.dumps(["not", "a", "dict"], salt=SALT)))
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_TOKEN_PAYLOAD"


@pytest.mark.django_db
def test_public_download_revoked_enrollment(api_client, buyer, make_course, make_asset):
    course = make_course()
    asset = make_asset(course)
    token = make_download_token(asset.pk, buyer.pk)
    _enroll(buyer, course, status="revoked")

    r = api_client.get(_public_url(token))

    assert r.status_code == 403


@pytest.mark.django_db
def test_public_download_unknown_asset(api_client, buyer):
    r = api_client.get(_public_url(make_download_token(999999, buyer.pk)))
    assert r.status_code == 404
    assert r.json()["detail"] == "ASSET_NOT_FOUND"


@pytest.mark.django_db
def test_public_download_missing_file(api_client, buyer, make_course, make_asset):
    course = make_course()
    asset = make_asset(course)
    _enroll(buyer, course)
    asset.file.storage.delete(asset.file.name)

    r = api_client.get(_public_url(make_download_token(asset.pk, buyer.pk)))

    assert r.status_code == 404
    assert r.json()["detail"] == "FILE_MISSING"


@pytest.mark.django_db
def test_session_download_for_enrolled_buyer(buyer_client, buyer, make_course, make_asset):
    course = make_course()
    asset = make_asset(course, content=b"data")
    _enroll(buyer, course)

    r = buyer_client.get(f"/api/assets/{asset.pk}/download")

    assert r.status_code == 200
    assert _body(r) == b"data"


@pytest.mark.django_db
def test_session_download_for_creator(api_client, creator, make_course, make_asset):
    asset = make_asset(make_course())
    api_client.force_authenticate(user=creator)

    r = api_client.get(f"/api/assets/{asset.pk}/download")

    assert r.status_code == 200


@pytest.mark.django_db
def test_session_download_without_enrollment(buyer_client, make_course, make_asset):
    asset = make_asset(make_course())
    r = buyer_client.get(f"/api/assets/{asset.pk}/download")
    assert r.status_code == 403
