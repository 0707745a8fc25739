import logging

import pytest
from fastapi.testclient import TestClient

from storefront.app.main import create_app


@pytest.fixture
def client(database, settings):
    app = create_app(settings=settings, database=database)
    with TestClient(app) as c:
        yield c


def _payload(*items, email="carol@example.com", order_number=None):
    body = {
        "customer": {"email": email, "name": "Carol"},
        "items": [{"product_id": pid, "quantity": qty, "unit_price": "12.50"} for pid, qty in items],
    }
    if order_number:
        body["order_number"] = order_number
    return body


def test_health(client):
    assert client.get("/v1/health").json() == {"ok": True}


def test_place_order_and_track_it(client, stored_product):
    p = stored_product(items=[{"code": "API-1"}, {"code": "API-2"}])

    res = client.post("/v1/orders", json=_payload((p, 2)))
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["replayed"] is False
    assert [l["asset"] for l in body["lines"]] == [
        {"kind": "code", "code": "API-1"},
        {"kind": "code", "code": "API-2"},
    ]

    res = client.get(f"/v1/orders/{body['order_number']}")
    assert res.status_code == 200
    assert [l["line_no"] for l in res.json()] == [1, 2]

    res = client.get("/v1/orders", params={"email": "carol@example.com"})
    assert res.status_code == 200
    history = res.json()
    assert len(history) == 1
    assert history[0]["order_number"] == body["order_number"]
    assert history[0]["total"] == "25.00"


def test_failures_map_to_http_status(client, stored_product):
    empty = stored_product(items=[])

    res = client.post("/v1/orders", json=_payload((empty, 1)))
    assert res.status_code == 409
    assert res.json() == {
        "ok": False,
        "kind": "OutOfStock",
        "product_id": empty,
        "detail": f"Product {empty} has no asset left",
    }

    res = client.post("/v1/orders", json=_payload((empty + 500, 1)))
    assert res.status_code == 404
    assert res.json()["kind"] == "ProductNotFound"


def test_invalid_cart_is_rejected(client, stored_product):
    p = stored_product(items=[{"code": "Z"}])

    assert client.post("/v1/orders", json=_payload()).status_code == 422
    assert client.post("/v1/orders", json=_payload((p, 0))).status_code == 422


def test_unknown_order_is_404(client):
    assert client.get("/v1/orders/ORD-NOPE").status_code == 404
    assert client.post("/v1/orders/ORD-NOPE/fulfill").status_code == 404


def test_retry_with_same_order_number(client, stored_product):
    p = stored_product(items=[{"code": "ONCE"}, {"code": "TWICE"}])

    first = client.post("/v1/orders", json=_payload((p, 1), order_number="ORD-CLIENT-42")).json()
    retry = client.post("/v1/orders", json=_payload((p, 1), order_number="ORD-CLIENT-42")).json()

    assert retry["replayed"] is True
    assert [l["id"] for l in retry["lines"]] == [l["id"] for l in first["lines"]]
    assert [l["asset"] for l in retry["lines"]] == [{"kind": "code", "code": "ONCE"}]


def test_line_status_update(client, stored_product):
    p = stored_product(items=[{"code": "S1"}])
    placed = client.post("/v1/orders", json=_payload((p, 1))).json()
    line_id = placed["lines"][0]["id"]

    res = client.patch(f"/v1/orders/lines/{line_id}/status", json={"status": "shipped", "actor": "ops"})
    assert res.status_code == 200
    assert res.json()["status"] == "shipped"
    assert res.json()["asset"] == {"kind": "code", "code": "S1"}

    res = client.patch(f"/v1/orders/lines/{line_id}/status", json={"status": "pending"})
    assert res.status_code == 409

    res = client.patch("/v1/orders/lines/99999/status", json={"status": "shipped"})
    assert res.status_code == 404


def test_product_overview(client, stored_product):
    p = stored_product(name="Gift Card", items=[{"code": "G1"}, {"code": "G2"}])
    client.post("/v1/orders", json=_payload((p, 1)))

    res = client.get(f"/v1/products/{p}/overview")
    assert res.status_code == 200
    body = res.json()
    assert body["stock"] == 1
    assert body["remaining"] == [{"kind": "code", "code": "G2"}]
    assert [s["asset"]["code"] for s in body["sold"]] == ["G1"]
    assert body["customers"][0]["email"] == "carol@example.com"

    assert client.get(f"/v1/products/{p + 100}/overview").status_code == 404


def test_unit_price_must_fit_stored_precision(client, stored_product):
    p = stored_product(items=[{"code": "P1"}])
    body = _payload((p, 1))

    body["items"][0]["unit_price"] = "100000000.00"
    assert client.post("/v1/orders", json=body).status_code == 422

    body["items"][0]["unit_price"] = "1.999"
    assert client.post("/v1/orders", json=body).status_code == 422


def test_order_number_reused_by_other_customer_is_409(client, stored_product):
    p = stored_product(items=[{"code": "MINE"}, {"code": "SPARE"}])
    client.post("/v1/orders", json=_payload((p, 1), order_number="ORD-SHARED"))

    res = client.post("/v1/orders", json=_payload((p, 1), email="mallory@example.com", order_number="ORD-SHARED"))

    assert res.status_code == 409
    assert res.json()["kind"] == "OrderNumberConflict"
    assert "lines" not in res.json()


def test_create_app_does_not_touch_logging(database, settings):
    root = logging.getLogger()
    handlers = list(root.handlers)

    create_app(settings=settings, database=database)

    assert root.handlers == handlers
