import pytest
from fastapi.testclient import TestClient

from storefront_server.http_server import app


@pytest.fixture
def client(storefront):
    app.state.storefront = storefront
    with TestClient(app) as client:
        yield client
    app.state.storefront = None


def login(client):
    response = client.post("/auth/login", json={"email": "ada@example.com", "password": "secret"})
    assert response.json()["success"] is True


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "authenticated": False}


def test_failed_login_reports_failure(client):
    response = client.post("/auth/login", json={"email": "ada@example.com", "password": "nope"})
    assert response.status_code == 200
    assert response.json()["success"] is False
    assert client.get("/auth/status").json()["authenticated"] is False


def test_product_search(client):
    data = client.get("/products", params={"q": "GEAR"}).json()
    assert [p["name"] for p in data["products"]] == ["Gadget", "Gizmo"]


def test_cart_round_trip(client):
    assert client.post("/cart/add", json={"product_id": "2", "quantity": 2}).json()["success"]
    client.post("/cart/update", json={"product_id": "2", "quantity": 3})

    data = client.get("/cart").json()
    assert data["cart"]["item_count"] == 3
    assert data["summary"]["subtotal"] == "106.5"
    assert data["summary"]["shipping"] == "0"

    client.post("/cart/remove", json={"product_id": "2"})
    assert client.get("/cart").json()["cart"]["items"] == []


def test_unknown_product_is_404(client):
    assert client.post("/cart/add", json={"product_id": "404"}).status_code == 404


def test_forward_step_needs_preconditions(client):
    assert client.post("/checkout/step", json={"step": 2}).status_code == 400
    client.post("/cart/add", json={"product_id": "1"})
    response = client.post("/checkout/step", json={"step": 2})
    assert response.status_code == 200
    assert response.json()["step"] == 2


def test_place_order_requires_login(client):
    client.post("/cart/add", json={"product_id": "1"})
    response = client.post("/checkout/order")
    assert response.status_code == 401


def test_place_order_reports_missing_selection(client):
    login(client)
    client.post("/cart/add", json={"product_id": "1"})
    response = client.post("/checkout/order")
    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "missing_shipping_address"


def test_checkout_flow(client, record_store):
    login(client)
    client.post("/cart/add", json={"product_id": "1"})
    address = client.post("/addresses", json={
        "first_name": "Ada", "last_name": "Lovelace", "street": "12 Analytical St",
        "city": "London", "region": "LDN", "postal_code": "N1 9GU", "country": "UK",
    }).json()
    client.post("/payment-methods", json={"kind": "paypal", "email": "ada@example.com"})

    state = client.get("/checkout").json()
    assert state["shipping_address"]["id"] == address["id"]
    assert state["payment_method"]["kind"] == "paypal"
    assert state["can_proceed"] == {"2": True, "3": True, "4": True}

    order = client.post("/checkout/order").json()
    assert order["total"] == "31.69"
    assert order["payment_method_kind"] == "paypal"
    assert client.get("/checkout").json()["step"] == 4

    orders = client.get("/orders").json()
    assert orders["count"] == 1
    assert client.post(f"/orders/{order['id']}/cancel").json()["status"] == "cancelled"


def test_record_store_outage_is_502(client, record_store):
    login(client)
    record_store.fail.add(("POST", "addresses"))
    response = client.post("/addresses", json={
        "first_name": "A", "last_name": "B", "street": "s", "city": "c",
        "region": "r", "postal_code": "p", "country": "x",
    })
    assert response.status_code == 502


def test_orders_require_login(client):
    assert client.get("/orders").status_code == 401


def test_non_positive_quantity_is_rejected(client):
    response = client.post("/cart/add", json={"product_id": "1", "quantity": 0})
    assert response.status_code == 400
    assert client.get("/cart").json()["cart"]["items"] == []


def test_unreadable_order_response_is_502(client, record_store):
    login(client)
    client.post("/cart/add", json={"product_id": "1"})
    client.post("/addresses", json={
        "first_name": "A", "last_name": "B", "street": "s", "city": "c",
        "region": "r", "postal_code": "p", "country": "x",
    })
    client.post("/payment-methods", json={"kind": "paypal", "email": "ada@example.com"})
    record_store.empty.add(("POST", "orders"))

    assert client.post("/checkout/order").status_code == 502
    assert client.get("/checkout").json()["processing"] is False
