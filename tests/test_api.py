"""
HTTP 層のテスト。オーケストレーターの依存を fakes で組み立てたものに差し替える。
lifespan は起動しない（TestClient をコンテキストマネージャとして使わない）。
"""

import pytest
from fastapi.testclient import TestClient

from services.order.app.main import app, get_orchestrator


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def create(client, user_id="u1", items=None):
    items = items or [{"product_id": "p1", "quantity": 2}]
    return client.post("/api/orders", json={"user_id": user_id, "items": items})


def test_create_order(client, redis):
    resp = create(client)

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "PENDING"
    assert body["total_amount"] == "19.98"
    assert body["items"][0]["price"] == "9.99"
    assert body["items"][0]["product_name"] == "Coffee Beans"
    assert len(redis.published) == 1


def test_create_order_unknown_user(client, store):
    resp = create(client, user_id="ghost")

    assert resp.status_code == 422
    assert resp.json() == {"error": "USER_NOT_FOUND", "message": "User not found: ghost"}
    assert store.orders == {}


def test_create_order_unavailable_product(client, catalog):
    catalog.unavailable.add("p1")

    resp = create(client)

    assert resp.status_code == 503
    assert resp.json()["error"] == "PRODUCT_UNAVAILABLE"


def test_create_order_invalid_quantity(client):
    resp = create(client, items=[{"product_id": "p1", "quantity": 0}])
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_sub_cent_price_is_validation_error(client, store):
    resp = create(client, items=[{"product_id": "p1", "quantity": 1000, "price": "1.005"}])
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"
    assert store.orders == {}


def test_malformed_body_is_validation_error(client):
    resp = client.post("/api/orders", json={"items": "nope"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_get_order(client):
    order_id = create(client).json()["id"]

    assert client.get(f"/api/orders/{order_id}").json()["id"] == order_id

    missing = client.get("/api/orders/missing")
    assert missing.status_code == 404
    assert missing.json()["error"] == "ORDER_NOT_FOUND"


def test_status_lifecycle(client):
    order_id = create(client).json()["id"]

    resp = client.put(f"/api/orders/{order_id}/status", json={"status": "confirmed"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "CONFIRMED"

    resp = client.put(f"/api/orders/{order_id}/status", json={"status": "DELIVERED"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "ILLEGAL_TRANSITION"


def test_unknown_status_value(client):
    order_id = create(client).json()["id"]
    resp = client.put(f"/api/orders/{order_id}/status", json={"status": "lost"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_cancel_and_delete(client, store):
    order_id = create(client).json()["id"]

    resp = client.put(f"/api/orders/{order_id}/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "CANCELLED"

    resp = client.delete(f"/api/orders/{order_id}")
    assert resp.status_code == 200
    assert order_id not in store.orders


def test_delete_delivered_order_is_refused(client):
    order_id = create(client).json()["id"]
    for status in ("CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"):
        client.put(f"/api/orders/{order_id}/status", json={"status": status})

    resp = client.delete(f"/api/orders/{order_id}")

    assert resp.status_code == 409
    assert resp.json()["error"] == "ILLEGAL_DELETION"


def test_listings(client):
    first = create(client).json()["id"]
    second = create(client, user_id="u2", items=[{"product_id": "p2", "quantity": 1}]).json()["id"]
    client.put(f"/api/orders/{second}/status", json={"status": "CONFIRMED"})

    assert {o["id"] for o in client.get("/api/orders").json()} == {first, second}
    assert [o["id"] for o in client.get("/api/orders/user/u2").json()] == [second]
    assert [o["id"] for o in client.get("/api/orders/status/pending").json()] == [first]
    assert [o["id"] for o in client.get("/api/orders/product/p2").json()] == [second]
    assert client.get("/api/orders/status/bogus").status_code == 400


def test_stats(client):
    create(client)
    order_id = create(client).json()["id"]
    client.put(f"/api/orders/{order_id}/cancel")

    stats = client.get("/api/orders/stats").json()

    assert stats["total_orders"] == 2
    assert stats["pending_orders"] == 1
    assert stats["cancelled_orders"] == 1


def test_search_period(client):
    order_id = create(client).json()["id"]

    resp = client.get(
        "/api/orders/search/period",
        params={"start": "2000-01-01T00:00:00Z", "end": "2999-01-01T00:00:00Z"},
    )
    assert [o["id"] for o in resp.json()] == [order_id]

    inverted = client.get(
        "/api/orders/search/period",
        params={"start": "2999-01-01T00:00:00Z", "end": "2000-01-01T00:00:00Z"},
    )
    assert inverted.status_code == 400


def test_unexpected_errors_are_generic(client, orchestrator):
    async def explode():
        raise RuntimeError("database password is hunter2")

    orchestrator.list_orders = explode

    resp = client.get("/api/orders")

    assert resp.status_code == 500
    assert resp.json() == {"error": "INTERNAL_ERROR", "message": "Internal server error"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "order-service"}
