import random
from decimal import Decimal

import httpx

from storefront_server.api_client import CatalogClient, RecordStoreClient
from storefront_server.cart import CartStore
from storefront_server.storage import MemoryStorage


def make_cart(storage=None):
    store = RecordStoreClient("http://store.test", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    return CartStore(store, CatalogClient(store), storage)


class TestCartMutations:
    def test_adding_same_product_twice_increments_quantity(self, products):
        cart = make_cart(MemoryStorage())
        cart.add_line(products["1"])
        cart.add_line(products["1"])

        assert len(cart.lines()) == 1
        assert cart.lines()[0].quantity == 2
        assert cart.cart_value() == Decimal("40")
        assert cart.total_item_count() == 2

    def test_each_mutation_produces_new_snapshot(self, products):
        cart = make_cart()
        cart.add_line(products["1"])
        before = cart.lines()
        cart.add_line(products["1"])
        after = cart.lines()

        assert before is not after
        assert before[0].quantity == 1

    def test_set_quantity_replaces(self, products):
        cart = make_cart()
        cart.add_line(products["2"])
        cart.set_quantity("2", 4)
        assert cart.lines()[0].quantity == 4
        assert cart.cart_value() == Decimal("142.0")

    def test_set_quantity_zero_or_negative_removes(self, products):
        cart = make_cart()
        cart.add_line(products["1"])
        cart.add_line(products["2"])
        cart.set_quantity("1", 0)
        cart.set_quantity("2", -3)
        assert cart.lines() == ()

    def test_set_quantity_of_missing_product_is_noop(self, products):
        cart = make_cart()
        cart.add_line(products["1"])
        cart.set_quantity("99", 5)
        assert [(l.product.id, l.quantity) for l in cart.lines()] == [("1", 1)]

    def test_remove_missing_line_is_not_an_error(self, products):
        cart = make_cart()
        cart.add_line(products["1"])
        cart.remove_line("99")
        cart.remove_line("1")
        cart.remove_line("1")
        assert cart.lines() == ()

    def test_clear(self, products):
        storage = MemoryStorage()
        cart = make_cart(storage)
        cart.add_line(products["1"])
        cart.clear()
        assert cart.lines() == ()
        assert storage.get(CartStore.STORAGE_KEY) == []

    def test_random_mutations_keep_lines_unique_and_positive(self, products):
        rng = random.Random(1234)
        cart = make_cart()
        ids = list(products)
        for _ in range(500):
            op = rng.choice(["add", "set", "remove"])
            product_id = rng.choice(ids)
            if op == "add":
                cart.add_line(products[product_id])
            elif op == "set":
                cart.set_quantity(product_id, rng.randint(-2, 6))
            else:
                cart.remove_line(product_id)

            seen = [line.product.id for line in cart.lines()]
            assert len(seen) == len(set(seen))
            assert all(line.quantity >= 1 for line in cart.lines())
            assert cart.cart_value() == sum(
                (line.quantity * line.product.price for line in cart.lines()), Decimal("0")
            )

    def test_derived_values_notify(self, products):
        cart = make_cart()
        counts = []
        cart.total_item_count.subscribe(lambda new, old: counts.append(new))
        cart.add_line(products["1"])
        cart.add_line(products["2"])
        cart.remove_line("1")
        assert counts == [1, 2, 1]


class TestLocalPersistence:
    def test_anonymous_mutations_are_written_locally(self, products):
        storage = MemoryStorage()
        cart = make_cart(storage)
        cart.add_line(products["1"])
        cart.add_line(products["3"])

        stored = storage.get(CartStore.STORAGE_KEY)
        assert [(entry["product"]["id"], entry["quantity"]) for entry in stored] == [("1", 1), ("3", 1)]

    def test_cart_is_restored_from_local_storage(self, products):
        storage = MemoryStorage()
        first = make_cart(storage)
        first.add_line(products["2"])
        first.add_line(products["2"])

        second = make_cart(storage)
        assert [(l.product.id, l.quantity) for l in second.lines()] == [("2", 2)]
        assert second.cart_value() == Decimal("71.0")

    def test_unreadable_stored_lines_are_dropped(self, products):
        storage = MemoryStorage({
            CartStore.STORAGE_KEY: [
                {"product": {"id": "1", "name": "Widget", "price": "20"}, "quantity": 1},
                {"product": {"id": "2"}, "quantity": 3},
                {"product": {"id": "1", "name": "Widget", "price": "20"}, "quantity": 2},
            ]
        })
        cart = make_cart(storage)
        assert [(l.product.id, l.quantity) for l in cart.lines()] == [("1", 3)]

    def test_without_storage_capability_nothing_is_persisted(self, products):
        cart = make_cart(None)
        cart.add_line(products["1"])
        assert cart.lines()[0].quantity == 1

    def test_snapshot(self, products):
        cart = make_cart()
        cart.add_line(products["1"])
        cart.add_line(products["2"])
        snapshot = cart.snapshot()
        assert snapshot.item_count == 2
        assert snapshot.total == Decimal("55.5")
        assert snapshot.items[1].subtotal == Decimal("35.5")
