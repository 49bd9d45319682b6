import pytest
from fastapi.testclient import TestClient

from app.auth import create_token
from app.main import create_app

CUSTOMER = "+15557770000"
BUSINESS_NUMBER = "+15550001111"


@pytest.fixture
def client(services, cfg):
    with TestClient(create_app(services=services, cfg=cfg)) as c:
        yield c


def _auth(business_id):
    return {"Authorization": f"Bearer {create_token(business_id)}"}


def _web_order(client, text="2 coffee for Sam"):
    r = client.post("/r/demo-cafe/chat", json={"message": text})
    assert r.status_code == 200
    return r.json()


def test_root(client):
    assert client.get("/").json() == {"ok": True, "service": "text-order-intake"}


def test_session_sweeper_runs_for_app_lifetime(services, cfg):
    app = create_app(services=services, cfg=cfg)
    with TestClient(app):
        sweeper = app.state.session_sweeper
        assert not sweeper.done()
    assert sweeper.cancelled()


# -------------------
# SMS channel
# -------------------
def test_sms_webhook_conversation(client):
    sms = {"Body": "2 coffee, 1 sandwich", "From": CUSTOMER, "To": BUSINESS_NUMBER}
    r = client.post("/sms/webhook", data=sms)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/xml")
    assert "<Message>What's your name?</Message>" in r.text

    r = client.post("/sms/webhook", data={**sms, "Body": "Sam"})
    assert "Order ready for payment:" in r.text
    assert "Total: $17.99" in r.text


def test_sms_to_unknown_number_gets_empty_reply(client):
    r = client.post("/sms/webhook", data={"Body": "2 coffee", "From": CUSTOMER, "To": "+19999999999"})
    assert r.status_code == 200
    assert "<Message>" not in r.text


# -------------------
# Web chat channel
# -------------------
def test_web_chat_uses_guest_cookie_identity(client):
    first = _web_order(client, "1 latte")
    assert first["reply"] == "What's your name?"
    guest_id = client.cookies.get("guest_id")
    assert guest_id

    second = _web_order(client, "Sam")
    assert second["payload"]["customerPhone"] == f"web:{guest_id}"
    assert second["payload"]["customerName"] == "Sam"


def test_web_chat_unknown_business(client):
    r = client.post("/r/nowhere/chat", json={"message": "2 coffee"})
    assert r.status_code == 404


def test_menu_and_health(client):
    menu = client.get("/r/demo-cafe/menu").json()
    assert menu["business"] == "Demo Cafe"
    assert {"name": "coffee", "price": 4.5, "stock": 50} in menu["items"]

    assert client.get("/r/Demo-Cafe/health").json() == {"ok": True, "business": "demo-cafe"}
    assert client.get("/r/nowhere/health").status_code == 404


# -------------------
# Payments
# -------------------
def test_payment_confirmation(client, notifier):
    order = _web_order(client)["payload"]

    r = client.post("/payments/confirm", json={"orderId": order["id"], "amountPaid": 9.0})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "orderId": order["id"], "status": "paid", "changed": True}
    assert client.get(f"/orders/{order['id']}", headers=_auth("demo-cafe")).json()["status"] == "paid"
    assert any(text.startswith("🔔 NEW PAID ORDER") for text in notifier.to(BUSINESS_NUMBER))

    again = client.post("/payments/confirm", json={"orderId": order["id"]})
    assert again.json()["changed"] is False


def test_payment_errors(client):
    order = _web_order(client)["payload"]
    assert client.post("/payments/confirm", json={"orderId": order["id"], "amountPaid": 1}).status_code == 400
    assert client.post("/payments/confirm", json={"orderId": "missing"}).status_code == 404
    assert client.get("/orders/missing", headers=_auth("demo-cafe")).status_code == 404


def test_checkout_summary_is_public_without_contact_details(client):
    order = _web_order(client)["payload"]

    r = client.get(order["paymentLink"].replace("https://orders.test", ""))
    assert r.status_code == 200
    assert r.json() == {
        "orderId": order["id"],
        "business": "Demo Cafe",
        "currency": "USD",
        "items": [{"name": "coffee", "quantity": 2, "price": 4.5}],
        "total": 9.0,
        "status": "awaiting_payment",
        "paid": False,
    }
    assert client.get("/pay/missing").status_code == 404


def test_order_details_require_the_owner(client):
    order = _web_order(client)["payload"]
    url = f"/orders/{order['id']}"

    assert client.get(url).status_code == 401
    assert client.get(url, headers=_auth("other-shop")).status_code == 403
    assert client.get(url, headers=_auth("demo-cafe")).json()["customerPhone"] == order["customerPhone"]


def test_payment_secret_required_when_configured(services, cfg):
    cfg = cfg.model_copy(update={"payment_webhook_secret": "s3cret"})
    with TestClient(create_app(services=services, cfg=cfg)) as client:
        order = _web_order(client)["payload"]
        body = {"orderId": order["id"]}

        assert client.post("/payments/confirm", json=body).status_code == 401
        r = client.post("/payments/confirm", json=body, headers={"X-Payment-Secret": "s3cret"})
        assert r.status_code == 200


# -------------------
# Merchant side
# -------------------
def test_status_update_requires_owner(client):
    order = _web_order(client)["payload"]
    url = f"/orders/{order['id']}/status"

    assert client.put(url, json={"status": "paid"}).status_code == 401
    assert client.put(url, json={"status": "paid"}, headers=_auth("other-shop")).status_code == 403
    assert client.put(url, json={"status": "paid"}, headers={"Authorization": "Bearer junk"}).status_code == 401


def test_status_update_flow(client, notifier):
    order = _web_order(client)["payload"]
    url = f"/orders/{order['id']}/status"
    headers = _auth("demo-cafe")

    assert client.put(url, json={"status": "complete"}, headers=headers).status_code == 409
    assert client.put(url, json={"status": "paid"}, headers=headers).status_code == 200

    r = client.put(url, json={"status": "complete"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "complete"
    assert "completedAt" in r.json()["order"]

    assert client.put(url, json={"status": "preparing"}, headers=headers).status_code == 409
    assert client.put(url, json={"status": "cooking"}, headers=headers).status_code == 422


def test_list_business_orders(client):
    first = _web_order(client)["payload"]
    second = _web_order(client, "1 latte for Ana")["payload"]

    r = client.get("/business/demo-cafe/orders", headers=_auth("demo-cafe"))
    assert r.status_code == 200
    assert [o["id"] for o in r.json()["orders"]] == [second["id"], first["id"]]

    assert client.get("/business/demo-cafe/orders", headers=_auth("other-shop")).status_code == 403


def test_signup_and_login(client):
    signup = {
        "business_id": "New-Diner",
        "name": "New Diner",
        "email": "owner@newdiner.com",
        "password": "pw-123456",
        "menu": {"pancakes": 7.5},
        "inventory": {"pancakes": 12},
    }
    r = client.post("/auth/signup", json=signup)
    assert r.json() == {"ok": True, "businessId": "new-diner"}
    assert client.post("/auth/signup", json=signup).status_code == 400

    assert client.post("/auth/login", json={"email": "owner@newdiner.com", "password": "nope"}).status_code == 401
    token = client.post("/auth/login", json={"email": "owner@newdiner.com", "password": "pw-123456"}).json()["token"]

    r = client.get("/business/new-diner/orders", headers={"Authorization": f"Bearer {token}"})
    assert r.json() == {"orders": []}
    assert client.get("/r/new-diner/menu").json()["items"] == [{"name": "pancakes", "price": 7.5, "stock": 12}]
