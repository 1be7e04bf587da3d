import re
from datetime import datetime, timezone

import pytest

from bikerhub.errors import AppError
from bikerhub.services.orders import generate_order_number, resolve_discount
from tests.conftest import ADDRESS, auth_headers, register, run


def place(client, headers, product_id, quantity=2, **extra):
    payload = {
        "items": [{"product": product_id, "quantity": quantity}],
        "payment_method": "credit_card",
        "billing_address": ADDRESS,
        **extra,
    }
    return client.post("/api/orders", json=payload, headers=headers)


@pytest.fixture
def order(client, user, product):
    resp = place(client, user["headers"], product["id"])
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_resolve_discount():
    assert resolve_discount(None, 100.0).amount == 0
    percent = resolve_discount(" biker10 ", 250.0)
    assert (percent.code, percent.type, percent.amount) == ("BIKER10", "percentage", 25.0)
    assert resolve_discount("WELCOME25", 10.0).amount == 25.0
    with pytest.raises(AppError):
        resolve_discount("FREEBIKE", 100.0)


def test_generate_order_number(db):
    now = datetime(2024, 3, 9, 15, 30)
    assert run(generate_order_number(now)) == "BH202403090001"
    assert run(generate_order_number(now, offset=2)) == "BH202403090003"


def test_place_order(client, user, product, order):
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    assert re.fullmatch(r"BH\d{12}", order["order_number"])
    assert order["order_number"] == f"BH{today}0001"
    assert order["customer"] == user["user"]["id"]
    assert order["items"][0]["price"] == 1000.0
    assert order["items"][0]["total"] == 2000.0
    assert order["items"][0]["seller"] == user["user"]["id"]
    assert order["subtotal"] == 2000.0
    assert order["shipping"]["cost"] == 25.0
    assert order["total"] == 2025.0
    assert order["shipping_address"] == order["billing_address"]
    assert [e["status"] for e in order["status_history"]] == ["pending"]


def test_place_order_decrements_stock(client, product, order):
    data = client.get(f"/api/products/{product['id']}").json()["data"]
    assert data["stock"]["quantity"] == 8
    assert data["sold_count"] == 2


def test_order_numbers_are_sequential(client, user, product, order):
    second = place(client, user["headers"], product["id"], quantity=1).json()["data"]
    assert second["order_number"][-4:] == "0002"


def test_place_order_with_discount_and_pickup(client, user, product):
    resp = place(client, user["headers"], product["id"], quantity=1, discount_code="BIKER10", shipping_method="pickup")
    data = resp.json()["data"]
    assert data["discount"] == {"amount": 100.0, "code": "BIKER10", "type": "percentage"}
    assert data["shipping"]["cost"] == 0
    assert data["total"] == 900.0


def test_place_order_invalid_discount(client, user, product):
    resp = place(client, user["headers"], product["id"], discount_code="NOPE")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid discount code: NOPE"


def test_place_order_insufficient_stock(client, user, product):
    resp = place(client, user["headers"], product["id"], quantity=11)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Insufficient stock for Trail Blazer 29"


def test_duplicate_lines_are_merged_before_stock_check(client, user, product):
    payload = {
        "items": [{"product": product["id"], "quantity": 6}, {"product": product["id"], "quantity": 6}],
        "payment_method": "paypal",
        "billing_address": ADDRESS,
    }
    resp = client.post("/api/orders", json=payload, headers=user["headers"])
    assert resp.status_code == 400


def test_place_order_empty_cart(client, user):
    resp = client.post(
        "/api/orders",
        json={"items": [], "payment_method": "cash", "billing_address": ADDRESS},
        headers=user["headers"],
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation errors"


def test_order_visibility(client, user, admin, order):
    url = f"/api/orders/{order['id']}"
    stranger = register(client, username="stranger", email="stranger@bikerhub.com")

    assert client.get(url, headers=user["headers"]).status_code == 200
    assert client.get(url, headers=admin["headers"]).status_code == 200
    assert client.get(url, headers=auth_headers(stranger["token"])).status_code == 403


def test_list_orders(client, user, admin, order):
    stranger = register(client, username="stranger", email="stranger@bikerhub.com")

    mine = client.get("/api/orders", headers=user["headers"]).json()
    assert mine["pagination"]["total"] == 1
    assert client.get("/api/orders", headers=auth_headers(stranger["token"])).json()["data"] == []
    assert client.get("/api/orders", headers=admin["headers"]).json()["pagination"]["total"] == 1

    filtered = client.get("/api/orders", params={"status": "delivered"}, headers=admin["headers"]).json()
    assert filtered["data"] == []


def test_seller_orders(client, user, order):
    data = client.get("/api/orders/seller", headers=user["headers"]).json()["data"]
    assert [o["order_number"] for o in data] == [order["order_number"]]


def test_check_discount_code(client):
    resp = client.post("/api/orders/discount", json={"code": "ride15", "subtotal": 200})
    assert resp.json()["data"] == {"valid": True, "code": "RIDE15", "type": "percentage", "value": 15, "amount": 30.0}
    invalid = client.post("/api/orders/discount", json={"code": "bogus"}).json()["data"]
    assert invalid["valid"] is False


def test_cancel_order_restocks(client, user, product, order):
    resp = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=user["headers"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "cancelled"
    assert data["cancellation"]["reason"] == "Changed my mind"
    assert [e["status"] for e in data["status_history"]] == ["pending", "cancelled"]

    restocked = client.get(f"/api/products/{product['id']}").json()["data"]
    assert restocked["stock"]["quantity"] == 10
    assert restocked["sold_count"] == 0


def test_cancel_order_not_allowed_after_shipping(client, user, admin, order):
    client.patch(f"/api/orders/{order['id']}/status", json={"status": "shipped"}, headers=admin["headers"])
    resp = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "Too late"}, headers=user["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Order cannot be cancelled in its current status"


def test_update_status_requires_staff(client, user, order):
    resp = client.patch(f"/api/orders/{order['id']}/status", json={"status": "shipped"}, headers=user["headers"])
    assert resp.status_code == 403


def test_update_status_records_history(client, admin, order):
    url = f"/api/orders/{order['id']}/status"
    client.patch(url, json={"status": "confirmed"}, headers=admin["headers"])
    resp = client.patch(
        url,
        json={"status": "shipped", "note": "Handed to carrier", "tracking_number": "1Z999", "carrier": "UPS"},
        headers=admin["headers"],
    )
    data = resp.json()["data"]
    assert data["shipping"]["tracking_number"] == "1Z999"
    assert [e["status"] for e in data["status_history"]] == ["pending", "confirmed", "shipped"]
    assert data["status_history"][-1]["note"] == "Handed to carrier"
    assert data["status_history"][-1]["updated_by"] == admin["user"]["id"]


def test_refund(client, user, admin, order):
    url = f"/api/orders/{order['id']}"
    assert client.post(f"{url}/refund", json={"amount": 100, "reason": "Damaged"}, headers=admin["headers"]).status_code == 400

    client.patch(f"{url}/status", json={"status": "delivered"}, headers=admin["headers"])
    too_much = client.post(f"{url}/refund", json={"amount": 5000, "reason": "Damaged"}, headers=admin["headers"])
    assert too_much.status_code == 400

    resp = client.post(f"{url}/refund", json={"amount": 100, "reason": "Damaged"}, headers=admin["headers"])
    data = resp.json()["data"]
    assert data["status"] == "refunded"
    assert data["payment"]["status"] == "refunded"
    assert data["refund"]["amount"] == 100


def test_order_stats(client, user, admin, product, order):
    place(client, user["headers"], product["id"], quantity=1)
    client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=user["headers"])

    stats = client.get("/api/orders/stats", headers=user["headers"]).json()["data"]
    assert stats["total_orders"] == 2
    assert stats["pending_orders"] == 1
    assert stats["cancelled_orders"] == 1
    assert stats["total_revenue"] == 3050.0
    assert stats["average_order_value"] == 1525.0

    stranger = register(client, username="stranger", email="stranger@bikerhub.com")
    assert client.get("/api/orders/stats", headers=auth_headers(stranger["token"])).json()["data"]["total_orders"] == 0


def test_cancelled_order_cannot_be_reopened(client, user, admin, product, order):
    url = f"/api/orders/{order['id']}"
    assert client.post(f"{url}/cancel", json={"reason": "Changed my mind"}, headers=user["headers"]).status_code == 200

    reopen = client.patch(f"{url}/status", json={"status": "confirmed"}, headers=admin["headers"])
    assert reopen.status_code == 400
    again = client.post(f"{url}/cancel", json={"reason": "Twice"}, headers=user["headers"])
    assert again.status_code == 400

    data = client.get(url, headers=user["headers"]).json()["data"]
    assert data["status"] == "cancelled"
    stock = client.get(f"/api/products/{product['id']}").json()["data"]["stock"]["quantity"]
    assert stock == 10
