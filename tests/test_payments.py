from decimal import Decimal

import pytest

from checkout.errors import NotFound, ValidationError
from checkout.models import Order
from checkout.payments import PaymentLedger
from conftest import INLINE_ADDRESS, TestingSessionLocal, add_address, add_product, auth_headers


def place_order(client, user_id=1, quantity=1):
    product_id = add_product(f"item-{user_id}-{quantity}", "10.00", 10)
    response = client.post(
        "/orders",
        json={
            "shipping_address": INLINE_ADDRESS,
            "billing_address": {"same_as_shipping": True},
            "items": [{"product_id": product_id, "quantity": quantity}],
        },
        headers=auth_headers(user_id),
    )
    assert response.status_code == 201
    return response.json()["order_id"]


def order_status(order_id):
    db = TestingSessionLocal()
    status = db.get(Order, order_id).status
    db.close()
    return status


def test_record_succeeded_payment_advances_order(client):
    order_id = place_order(client)

    response = client.post(
        f"/orders/{order_id}/payments",
        json={"amount": "10.00", "payment_method": "card", "transaction_id": "TX-1", "status": "succeeded"},
        headers=auth_headers(1),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "succeeded"
    assert data["order_id"] == order_id
    assert Decimal(data["amount"]) == Decimal("10.00")
    assert order_status(order_id) == "processing"


def test_record_failed_payment_keeps_order_pending(client):
    order_id = place_order(client)

    response = client.post(
        f"/orders/{order_id}/payments",
        json={"amount": "10.00", "payment_method": "card", "transaction_id": "TX-2", "status": "failed"},
        headers=auth_headers(1),
    )

    assert response.status_code == 201
    assert order_status(order_id) == "pending_payment"


def test_payment_for_unknown_order(client):
    response = client.post(
        "/orders/999/payments",
        json={"amount": "10.00", "payment_method": "card", "transaction_id": "TX-3", "status": "pending"},
        headers=auth_headers(1, is_admin=True),
    )

    assert response.status_code == 404


def test_payment_on_someone_elses_order_is_forbidden(client):
    order_id = place_order(client, user_id=1)

    response = client.post(
        f"/orders/{order_id}/payments",
        json={"amount": "10.00", "payment_method": "card", "transaction_id": "TX-4", "status": "succeeded"},
        headers=auth_headers(2),
    )

    assert response.status_code == 403
    assert order_status(order_id) == "pending_payment"


def test_payment_requires_all_fields(client):
    order_id = place_order(client)

    response = client.post(
        f"/orders/{order_id}/payments",
        json={"amount": "10.00", "status": "succeeded"},
        headers=auth_headers(1),
    )

    assert response.status_code == 400


def test_list_and_read_payments(client):
    order_id = place_order(client)
    for tx in ("TX-A", "TX-B"):
        client.post(
            f"/orders/{order_id}/payments",
            json={"amount": "5.00", "payment_method": "card", "transaction_id": tx, "status": "pending"},
            headers=auth_headers(1),
        )

    listed = client.get(f"/orders/{order_id}/payments", headers=auth_headers(1))
    assert listed.status_code == 200
    assert [p["transaction_id"] for p in listed.json()] == ["TX-B", "TX-A"]

    payment_id = listed.json()[0]["id"]
    single = client.get(f"/orders/{order_id}/payments/{payment_id}", headers=auth_headers(1))
    assert single.status_code == 200
    assert single.json()["transaction_id"] == "TX-B"

    missing = client.get(f"/orders/{order_id}/payments/9999", headers=auth_headers(1))
    assert missing.status_code == 404


def test_ledger_rejects_duplicate_transaction(db):
    shipping = add_address(user_id=1)
    order = Order(user_id=1, status="pending_payment", total_amount=Decimal("10.00"),
                  shipping_address_id=shipping, billing_address_id=shipping)
    db.add(order)
    db.commit()
    ledger = PaymentLedger(db)
    ledger.record_payment(order.id, Decimal("10.00"), "card", "TX-DUP", "pending")

    with pytest.raises(ValidationError):
        ledger.record_payment(order.id, Decimal("10.00"), "card", "TX-DUP", "succeeded")


def test_ledger_turns_unique_violation_into_validation_error(db, mocker):
    """A concurrent writer can record the same transaction between our lookup and insert."""
    shipping = add_address(user_id=1)
    order = Order(user_id=1, status="pending_payment", total_amount=Decimal("10.00"),
                  shipping_address_id=shipping, billing_address_id=shipping)
    db.add(order)
    db.commit()
    order_id = order.id
    ledger = PaymentLedger(db)
    ledger.record_payment(order_id, Decimal("10.00"), "card", "TX-RACE", "pending")
    db.commit()
    mocker.patch.object(PaymentLedger, "find_by_transaction", return_value=None)

    with pytest.raises(ValidationError, match="TX-RACE"):
        ledger.record_payment(order_id, Decimal("10.00"), "card", "TX-RACE", "succeeded")

    db.rollback()
    assert order_status(order_id) == "pending_payment"


def test_racing_duplicate_payment_is_a_client_error(client, mocker):
    order_id = place_order(client)
    body = {"amount": "10.00", "payment_method": "card", "transaction_id": "TX-RACE-2", "status": "pending"}
    assert client.post(f"/orders/{order_id}/payments", json=body, headers=auth_headers(1)).status_code == 201
    mocker.patch.object(PaymentLedger, "find_by_transaction", return_value=None)

    response = client.post(f"/orders/{order_id}/payments", json=body, headers=auth_headers(1))

    assert response.status_code == 400
    assert response.json()["detail"] == "Transaction TX-RACE-2 has already been recorded."


def test_ledger_requires_existing_order(db):
    with pytest.raises(NotFound):
        PaymentLedger(db).record_payment(42, Decimal("1.00"), "card", "TX-X", "pending")


def test_ledger_requires_payment_method(db):
    with pytest.raises(ValidationError):
        PaymentLedger(db).record_payment(42, Decimal("1.00"), "", "TX-X", "pending")


def test_read_order_with_items_and_payments(client):
    order_id = place_order(client, quantity=2)
    client.post(
        f"/orders/{order_id}/payments",
        json={"amount": "20.00", "payment_method": "card", "transaction_id": "TX-R", "status": "succeeded"},
        headers=auth_headers(1),
    )

    response = client.get(f"/orders/{order_id}", headers=auth_headers(1))

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "processing"
    assert Decimal(data["total_amount"]) == Decimal("20.00")
    assert [(i["quantity"], Decimal(i["price_at_purchase"])) for i in data["items"]] == [(2, Decimal("10.00"))]
    assert [p["transaction_id"] for p in data["payments"]] == ["TX-R"]

    assert client.get(f"/orders/{order_id}", headers=auth_headers(2)).status_code == 403
    assert client.get(f"/orders/{order_id}", headers=auth_headers(9, is_admin=True)).status_code == 200
    assert client.get(f"/orders/{order_id}").status_code == 400
