import pytest

DETAIL_URL = "/api/orders/{oid}/"
LIST_URL = "/api/orders/"


@pytest.mark.django_db
def test_get_order_returns_items(buyer_client, make_course, place_order):
    a = make_course("Django", price="30.00")
    b = make_course("Pandas", price="12.50")
    order = place_order(a, b)

    r = buyer_client.get(DETAIL_URL.format(oid=order.pk))

    assert r.status_code == 200
    body = r.json()
    assert body["id"] == order.pk
    assert body["order_number"] == order.order_number
    assert body["status"] == "created"
    assert body["full_name"] == "Jane Doe"
    assert body["total"] == "42.50"
    assert body["currency"] == "EUR"
    assert [(it["course_id"], it["title"], it["unit_price"]) for it in body["items"]] == [
        (a.pk, "Django", "30.00"),
        (b.pk, "Pandas", "12.50"),
    ]


@pytest.mark.django_db
def test_get_order_not_found(buyer_client):
    r = buyer_client.get(DETAIL_URL.format(oid=424242))
    assert r.status_code == 404
    assert r.json()["detail"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
def test_get_foreign_order_is_forbidden(api_client, make_user, make_course, place_order):
    order = place_order(make_course())
    api_client.force_authenticate(user=make_user())

    r = api_client.get(DETAIL_URL.format(oid=order.pk))

    assert r.status_code == 403
    assert r.json()["detail"] == "FORBIDDEN"


@pytest.mark.django_db
def test_list_orders_only_own_newest_first(buyer_client, make_user, make_course, place_order):
    first = place_order(make_course("One"))
    second = place_order(make_course("Two"))
    place_order(make_course("Three"), user=make_user())

    r = buyer_client.get(LIST_URL)

    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert [o["id"] for o in body["results"]] == [second.pk, first.pk]
    assert all("items" not in o for o in body["results"])


@pytest.mark.django_db
def test_list_orders_paginates(buyer_client, make_course, place_order):
    for i in range(3):
        place_order(make_course(f"Course {i}"))

    r = buyer_client.get(LIST_URL, {"page": 2, "page_size": 2})

    body = r.json()
    assert body["count"] == 3
    assert body["page"] == 2
    assert body["page_size"] == 2
    assert len(body["results"]) == 1


@pytest.mark.django_db
def test_list_orders_clamps_page_size(buyer_client):
    r = buyer_client.get(LIST_URL, {"page_size": 1000})
    assert r.json()["page_size"] == 100


@pytest.mark.django_db
def test_list_orders_rejects_non_integer_page(buyer_client):
    r = buyer_client.get(LIST_URL, {"page": "abc"})
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"
