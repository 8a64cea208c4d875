import asyncio
from decimal import Decimal

import httpx

from storefront_server.cart import CartStore
from storefront_server.config import Settings
from storefront_server.storefront import Storefront


def cart_contents(cart):
    return [(line.product.id, line.quantity) for line in cart.lines()]


def remote_items(record_store, owner_id):
    documents = [d for d in record_store.collections["cart"] if d["ownerId"] == owner_id]
    assert len(documents) == 1
    return [(item["productId"], item["quantity"]) for item in documents[0]["items"]]


class TestLogin:
    def test_anonymous_cart_migrates_to_empty_remote_cart(self, storefront, record_store, storage, products, ada):
        storefront.cart.add_line(products["1"])
        storefront.cart.add_line(products["2"])
        storefront.cart.add_line(products["2"])
        assert storage.get(CartStore.STORAGE_KEY)

        asyncio.run(storefront.login(ada))

        assert remote_items(record_store, "7") == [("1", 1), ("2", 2)]
        assert storage.get(CartStore.STORAGE_KEY) is None
        assert cart_contents(storefront.cart) == [("1", 1), ("2", 2)]
        assert storefront.cart.owner_id == "7"
        assert not storefront.cart.is_loading()

    def test_remote_cart_wins_without_merging(self, storefront, record_store, storage, products, ada):
        record_store.seed("cart", {"ownerId": "7", "items": [{"productId": "3", "quantity": 2}]})
        storefront.cart.add_line(products["1"])

        asyncio.run(storefront.login(ada))

        assert cart_contents(storefront.cart) == [("3", 2)]
        assert remote_items(record_store, "7") == [("3", 2)]
        assert storefront.cart.cart_value() == Decimal("200")

    def test_unresolvable_remote_lines_are_dropped(self, storefront, record_store, ada):
        record_store.seed("cart", {"ownerId": "7", "items": [
            {"productId": "404", "quantity": 1},
            {"productId": "2", "quantity": 1},
        ]})

        asyncio.run(storefront.login(ada))

        assert cart_contents(storefront.cart) == [("2", 1)]

    def test_remote_document_is_created_lazily(self, storefront, record_store, ada):
        assert record_store.collections["cart"] == []
        asyncio.run(storefront.login(ada))
        assert remote_items(record_store, "7") == []

    def test_fetch_failure_keeps_current_cart(self, storefront, record_store, storage, products, ada):
        storefront.cart.add_line(products["1"])
        record_store.fail.add(("GET", "cart"))

        asyncio.run(storefront.login(ada))

        assert cart_contents(storefront.cart) == [("1", 1)]
        assert storage.get(CartStore.STORAGE_KEY)
        assert not storefront.cart.is_loading()

    def test_mutation_during_migration_write_is_kept(self, record_store, storage, products, ada):
        gate = {}

        async def handler(request):
            if request.method == "PATCH" and "patch_started" not in gate:
                gate["patch_started"] = True
                gate["in_flight"].set()
                await gate["release"].wait()
            return record_store.handler(request)

        storefront = Storefront(
            Settings(api_url="http://store.test"),
            storage=storage,
            transport=httpx.MockTransport(handler),
        )

        async def scenario():
            gate["in_flight"] = asyncio.Event()
            gate["release"] = asyncio.Event()
            storefront.cart.add_line(products["1"])
            await storefront.auth.login(ada)
            await gate["in_flight"].wait()
            storefront.cart.add_line(products["2"])
            gate["release"].set()
            await storefront.cart.flush()

        asyncio.run(scenario())

        assert cart_contents(storefront.cart) == [("1", 1), ("2", 1)]
        assert remote_items(record_store, "7") == [("1", 1), ("2", 1)]
        assert storage.get(CartStore.STORAGE_KEY) is None

    def test_failed_migration_keeps_local_copy(self, storefront, record_store, storage, products, ada):
        storefront.cart.add_line(products["1"])
        record_store.fail.add(("PATCH", "cart"))

        asyncio.run(storefront.login(ada))

        assert cart_contents(storefront.cart) == [("1", 1)]
        assert storage.get(CartStore.STORAGE_KEY)

    def test_restored_session_reconciles_on_start(self, record_store, storage, products, ada):
        def build():
            return Storefront(
                Settings(api_url="http://store.test"),
                storage=storage,
                transport=httpx.MockTransport(record_store.handler),
            )

        first = build()
        asyncio.run(first.login(ada))
        record_store.collections["cart"][0]["items"] = [{"productId": "1", "quantity": 3}]

        second = build()
        assert second.auth.current_user().id == "7"
        assert second.cart.owner_id is None
        asyncio.run(second.start())
        assert second.cart.owner_id == "7"
        assert cart_contents(second.cart) == [("1", 3)]


class TestAuthenticatedMutations:
    def test_mutations_replace_remote_line_array(self, storefront, record_store, products, ada):
        async def scenario():
            await storefront.login(ada)
            storefront.cart.add_line(products["1"])
            storefront.cart.add_line(products["1"])
            storefront.cart.add_line(products["2"])
            storefront.cart.set_quantity("1", 5)
            await storefront.cart.flush()

        asyncio.run(scenario())

        assert remote_items(record_store, "7") == [("1", 5), ("2", 1)]
        assert all(method == "PATCH" for method, _ in record_store.writes("cart")[1:])

    def test_remote_write_failure_keeps_optimistic_state(self, storefront, record_store, products, ada):
        async def scenario():
            await storefront.login(ada)
            record_store.fail.add(("PATCH", "cart"))
            storefront.cart.add_line(products["2"])
            await storefront.cart.flush()
            assert cart_contents(storefront.cart) == [("2", 1)]
            assert remote_items(record_store, "7") == []

            record_store.fail.clear()
            storefront.cart.add_line(products["3"])
            await storefront.cart.flush()

        asyncio.run(scenario())

        assert remote_items(record_store, "7") == [("2", 1), ("3", 1)]

    def test_mutation_during_reconciliation_waits_for_it(self, storefront, record_store, storage, products, ada):
        async def scenario():
            await storefront.auth.login(ada)
            assert storefront.cart.is_loading()
            storefront.cart.add_line(products["1"])
            await storefront.cart.flush()

        asyncio.run(scenario())

        assert remote_items(record_store, "7") == [("1", 1)]
        assert storage.get(CartStore.STORAGE_KEY) is None
        assert not storefront.cart.is_loading()

    def test_authenticated_mutations_skip_local_storage(self, storefront, storage, products, ada):
        async def scenario():
            await storefront.login(ada)
            storefront.cart.add_line(products["1"])
            await storefront.cart.flush()

        asyncio.run(scenario())

        assert storage.get(CartStore.STORAGE_KEY) is None


class TestLogout:
    def test_logout_keeps_cart_and_switches_to_local(self, storefront, record_store, storage, products, ada):
        async def scenario():
            await storefront.login(ada)
            storefront.cart.add_line(products["1"])
            await storefront.cart.flush()
            storefront.logout()
            storefront.cart.add_line(products["2"])
            await storefront.cart.flush()

        asyncio.run(scenario())

        assert cart_contents(storefront.cart) == [("1", 1), ("2", 1)]
        assert remote_items(record_store, "7") == [("1", 1)]
        stored = storage.get(CartStore.STORAGE_KEY)
        assert [(e["product"]["id"], e["quantity"]) for e in stored] == [("1", 1), ("2", 1)]
        assert storefront.cart.owner_id is None

    def test_switching_users_does_not_leak_writes(self, storefront, record_store, products, ada, bob):
        record_store.seed("cart", {"ownerId": "8", "items": [{"productId": "3", "quantity": 1}]})

        async def scenario():
            await storefront.login(ada)
            storefront.cart.add_line(products["1"])
            await storefront.login(bob)
            await storefront.cart.flush()

        asyncio.run(scenario())

        assert remote_items(record_store, "8") == [("3", 1)]
        assert cart_contents(storefront.cart) == [("3", 1)]
