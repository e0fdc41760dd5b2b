from decimal import Decimal

from app.data.models import IdempotencyKeyModel, StockReservationModel
from app.utils.time import utcnow

HEADERS = {"X-User-Id": "1"}


def _body(cart, address, **overrides):
    body = {
        "cart_id": cart.id,
        "shipping_address_id": address.id,
        "billing_address_id": address.id,
        "payment_method": "CREDIT_CARD",
    }
    body.update(overrides)
    return body


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_checkout_success_and_replay(client, cart, address):
    headers = {**HEADERS, "X-Idempotency-Key": "abc-123"}

    first = client.post("/checkout", json=_body(cart, address), headers=headers)
    second = client.post("/checkout", json=_body(cart, address), headers=headers)

    assert first.status_code == 200
    data = first.json()
    assert data["success"] is True
    assert data["idempotent"] is False
    assert data["order_number"].startswith("ORD")
    assert data["stock_issues"] == []

    assert second.status_code == 200
    assert second.json()["idempotent"] is True
    assert second.json()["order_id"] == data["order_id"]


def test_checkout_requires_known_user(client, cart, address):
    assert client.post("/checkout", json=_body(cart, address)).status_code == 401
    assert client.post("/checkout", json=_body(cart, address), headers={"X-User-Id": "77"}).status_code == 401
    assert client.post("/checkout", json=_body(cart, address), headers={"X-User-Id": "abc"}).status_code == 401


def test_checkout_missing_fields_is_400(client, user):
    response = client.post("/checkout", json={"cart_id": 1}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_checkout_error_codes(client, cart, address, make_cart):
    not_found = client.post("/checkout", json=_body(cart, address, cart_id=999), headers=HEADERS)
    assert not_found.status_code == 404
    assert not_found.json()["detail"]["code"] == "NOT_FOUND"

    empty = make_cart([])
    response = client.post("/checkout", json=_body(cart, address, cart_id=empty.id), headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "EMPTY_CART"

    coupon = client.post("/checkout", json=_body(cart, address, coupon_code="NOPE"), headers=HEADERS)
    assert coupon.status_code == 400
    assert coupon.json()["detail"] == {
        "code": "INVALID_COUPON",
        "message": "Coupon not found or not assigned to you",
        "retryable": False,
    }


def test_checkout_in_flight_key_is_409(client, cart, address, db_session, user):
    db_session.add(
        IdempotencyKeyModel(key="busy", user_id=user.id, status="IN_PROGRESS", created_at=utcnow(), updated_at=utcnow())
    )
    db_session.commit()

    response = client.post("/checkout", json=_body(cart, address), headers={**HEADERS, "X-Idempotency-Key": "busy"})

    assert response.status_code == 409
    assert response.json()["detail"]["retryable"] is True


def test_order_details_and_timeline(client, cart, address, other_user):
    order_id = client.post("/checkout", json=_body(cart, address), headers=HEADERS).json()["order_id"]

    order = client.get(f"/orders/{order_id}", headers=HEADERS)
    assert order.status_code == 200
    data = order.json()
    assert Decimal(data["total"]) == Decimal("856.00")
    assert data["payment"]["status"] == "COMPLETED"
    assert [t["status"] for t in data["timeline"]] == ["PENDING"]
    assert len(data["items"]) == 2

    timeline = client.get(f"/orders/{order_id}/timeline", headers=HEADERS)
    assert timeline.json()[0]["description"] == "Order created, awaiting payment."

    assert client.get(f"/orders/{order_id}", headers={"X-User-Id": "2"}).status_code == 403
    assert client.get("/orders/999", headers=HEADERS).status_code == 404


def test_cart_flow(client, db_session, user, variants):
    created = client.post("/carts/", json={}, headers=HEADERS)
    assert created.status_code == 200
    cart_id = created.json()["cart_id"]

    added = client.post(f"/carts/{cart_id}/items", json={"variant_id": 10, "quantity": 2}, headers=HEADERS)
    assert added.status_code == 200
    cart = added.json()
    assert cart["version"] == 2
    assert Decimal(cart["total"]) == Decimal("1000.00")
    item = cart["items"][0]
    assert db_session.get(StockReservationModel, item["stock_reservation_id"]).status == "ACTIVE"

    too_many = client.post(f"/carts/{cart_id}/items", json={"variant_id": 10, "quantity": 4}, headers=HEADERS)
    assert too_many.status_code == 400
    assert too_many.json()["detail"]["code"] == "INSUFFICIENT_STOCK"

    removed = client.delete(f"/carts/{cart_id}/items/{item['item_id']}", headers=HEADERS)
    assert removed.status_code == 200
    assert removed.json()["items"] == []
    db_session.expire_all()
    assert db_session.get(StockReservationModel, item["stock_reservation_id"]).status == "CANCELLED"

    assert client.get(f"/carts/{cart_id}", headers={"X-User-Id": "3"}).status_code == 401
