import json
from collections import defaultdict
from itertools import count

import httpx
import pytest

from storefront_server.config import Settings
from storefront_server.models import AuthCredentials, PaymentMethod, Product, ShippingAddress
from storefront_server.storage import MemoryStorage
from storefront_server.storefront import Storefront


class FakeRecordStore:
    """In-memory record store answering the same CRUD requests as the real one."""

    def __init__(self):
        self.collections = defaultdict(list)
        self.requests = []
        self.fail = set()
        # (method, collection) pairs answered with an empty 201 body
        self.empty = set()
        self._ids = count(100)

    def seed(self, collection, *records):
        for record in records:
            record = dict(record)
            record.setdefault("id", str(next(self._ids)))
            self.collections[collection].append(record)

    def find(self, collection, record_id):
        return next((r for r in self.collections[collection] if str(r["id"]) == str(record_id)), None)

    def handler(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.strip("/").split("/")
        collection = parts[0]
        record_id = parts[1] if len(parts) > 1 else None
        self.requests.append((request.method, request.url.path))

        if (request.method, collection) in self.fail:
            return httpx.Response(500, json={"error": "unavailable"})
        if (request.method, collection) in self.empty:
            return httpx.Response(201)

        records = self.collections[collection]

        if request.method == "GET":
            if record_id is not None:
                record = self.find(collection, record_id)
                if record is None:
                    return httpx.Response(404, json={})
                return httpx.Response(200, json=record)
            params = dict(request.url.params)
            matching = [r for r in records if all(str(r.get(k)) == v for k, v in params.items())]
            return httpx.Response(200, json=matching)

        if request.method == "POST":
            record = json.loads(request.content)
            record["id"] = str(next(self._ids))
            records.append(record)
            return httpx.Response(201, json=record)

        if request.method == "PATCH":
            record = self.find(collection, record_id)
            if record is None:
                return httpx.Response(404, json={})
            record.update(json.loads(request.content))
            return httpx.Response(200, json=record)

        if request.method == "DELETE":
            record = self.find(collection, record_id)
            if record is None:
                return httpx.Response(404, json={})
            records.remove(record)
            return httpx.Response(200, json={})

        return httpx.Response(405)

    def writes(self, collection):
        return [r for r in self.requests if r[0] != "GET" and r[1].startswith(f"/{collection}")]


PRODUCTS = [
    {"id": "1", "name": "Widget", "price": 20, "imageUrl": "widget.png", "category": "tools", "stock": 5},
    {"id": "2", "name": "Gadget", "price": 35.5, "imageUrl": "gadget.png", "category": "gear", "stock": 3},
    {"id": "3", "name": "Gizmo", "price": 100, "imageUrl": "gizmo.png", "category": "gear", "stock": 1},
]


@pytest.fixture
def record_store():
    store = FakeRecordStore()
    store.seed("products", *PRODUCTS)
    store.seed("users", {"id": "7", "name": "Ada", "email": "ada@example.com", "password": "secret"})
    store.seed("users", {"id": "8", "name": "Bob", "email": "bob@example.com", "password": "hunter2"})
    return store


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def storefront(record_store, storage):
    return Storefront(
        Settings(api_url="http://store.test"),
        storage=storage,
        transport=httpx.MockTransport(record_store.handler),
    )


@pytest.fixture
def products():
    return {p["id"]: Product.model_validate(p) for p in PRODUCTS}


@pytest.fixture
def ada():
    return AuthCredentials(email="ada@example.com", password="secret")


@pytest.fixture
def bob():
    return AuthCredentials(email="bob@example.com", password="hunter2")


@pytest.fixture
def address():
    return ShippingAddress(
        first_name="Ada",
        last_name="Lovelace",
        street="12 Analytical St",
        city="London",
        region="LDN",
        postal_code="N1 9GU",
        country="UK",
    )


@pytest.fixture
def card():
    return PaymentMethod(kind="credit_card", cardholder_name="Ada Lovelace", last4="4242", expiry_month=12, expiry_year=2030)
