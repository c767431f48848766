from checkout.models import Order
from conftest import INLINE_ADDRESS, TestingSessionLocal, add_product, auth_headers

ADMIN = auth_headers(99, is_admin=True)


def place_order(client):
    product_id = add_product("watch", "150.00", 3)
    response = client.post(
        "/orders",
        json={
            "shipping_address": INLINE_ADDRESS,
            "billing_address": {"same_as_shipping": True},
            "items": [{"product_id": product_id, "quantity": 1}],
        },
        headers=auth_headers(1),
    )
    return response.json()["order_id"]


def set_status(client, order_id, status, **extra):
    return client.put(f"/orders/{order_id}/status", json={"status": status, **extra}, headers=ADMIN)


def test_happy_path_through_delivery(client):
    order_id = place_order(client)

    assert set_status(client, order_id, "processing").status_code == 200
    shipped = set_status(client, order_id, "shipped", tracking_number="1Z999AA1")
    assert shipped.status_code == 200
    assert shipped.json()["tracking_number"] == "1Z999AA1"
    delivered = set_status(client, order_id, "delivered")
    assert delivered.status_code == 200
    assert delivered.json()["status"] == "delivered"


def test_tracking_number_only_recorded_when_shipping(client):
    order_id = place_order(client)

    response = set_status(client, order_id, "processing", tracking_number="IGNORED")

    assert response.status_code == 200
    assert response.json()["tracking_number"] is None


def test_illegal_transition_is_rejected(client):
    order_id = place_order(client)

    response = set_status(client, order_id, "delivered")

    assert response.status_code == 400
    assert "pending_payment" in response.json()["detail"]
    db = TestingSessionLocal()
    assert db.get(Order, order_id).status == "pending_payment"
    db.close()


def test_terminal_status_accepts_nothing(client):
    order_id = place_order(client)
    assert set_status(client, order_id, "cancelled").status_code == 200

    assert set_status(client, order_id, "processing").status_code == 400
    assert set_status(client, order_id, "refunded").status_code == 400


def test_unknown_status_value(client):
    order_id = place_order(client)

    assert set_status(client, order_id, "lost_in_transit").status_code == 400


def test_unknown_order(client):
    assert set_status(client, 4242, "processing").status_code == 404


def test_status_update_requires_admin(client):
    order_id = place_order(client)

    response = client.put(
        f"/orders/{order_id}/status",
        json={"status": "processing"},
        headers=auth_headers(1),
    )

    assert response.status_code == 403
