"""Async client for the storefront record store and catalog."""

import logging
from typing import Any, Optional

import httpx

from .exceptions import RecordStoreError
from .models import CartDocument, Product, ServerCartItem

logger = logging.getLogger(__name__)

CART = "cart"
ADDRESSES = "addresses"
PAYMENT_METHODS = "payment-methods"
ORDERS = "orders"
USERS = "users"


class RecordStoreClient:
    """
    CRUD client for the generic record store.

    Every collection is addressed as ``/{collection}`` and scoped to an owner
    through the ``ownerId`` query parameter.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the record store client.

        Args:
            base_url: Base URL of the record store
            timeout: Request timeout in seconds
            transport: Optional transport override (used for testing)
        """
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RecordStoreError(
                f"{method} {url} failed: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RecordStoreError(f"{method} {url} failed: {e}") from e

        if not response.content:
            return None
        return response.json()

    async def list_records(self, collection: str, owner_id: Optional[str] = None, **params: Any) -> list[dict]:
        """List records of a collection, optionally scoped to an owner."""
        if owner_id is not None:
            params["ownerId"] = owner_id
        data = await self.request("GET", f"/{collection}", params=params)
        return data or []

    async def get(self, collection: str, record_id: str) -> dict:
        return await self.request("GET", f"/{collection}/{record_id}")

    async def create(self, collection: str, record: dict) -> dict:
        return await self.request("POST", f"/{collection}", json=record)

    async def patch(self, collection: str, record_id: str, fields: dict) -> dict:
        return await self.request("PATCH", f"/{collection}/{record_id}", json=fields)

    async def delete(self, collection: str, record_id: str) -> None:
        await self.request("DELETE", f"/{collection}/{record_id}")

    # Cart documents

    async def get_cart_document(self, owner_id: str) -> CartDocument:
        """
        Fetch the cart document of an owner, creating an empty one if absent.
        """
        records = await self.list_records(CART, owner_id=owner_id)
        if records:
            return CartDocument.model_validate(records[0])

        logger.info(f"Creating cart document for owner {owner_id}")
        created = await self.create(CART, CartDocument(owner_id=owner_id).to_record(exclude={"id"}))
        return CartDocument.model_validate(created)

    async def replace_cart_items(self, document_id: str, items: list[ServerCartItem]) -> CartDocument:
        """Replace the whole line array of a cart document."""
        data = await self.patch(
            CART,
            document_id,
            {"items": [item.to_record() for item in items]},
        )
        return CartDocument.model_validate(data)

    async def close(self) -> None:
        await self.client.aclose()


class CatalogClient:
    """Read-only access to the product catalog."""

    def __init__(self, store: RecordStoreClient, path: str = "/products") -> None:
        self.store = store
        self.path = path.rstrip("/")

    async def list_products(self) -> list[Product]:
        data = await self.store.request("GET", self.path)
        return [Product.model_validate(item) for item in data or []]

    async def get_product(self, product_id: str) -> Product:
        data = await self.store.request("GET", f"{self.path}/{product_id}")
        return Product.model_validate(data)

    async def search_products(self, query: str) -> list[Product]:
        """Case-insensitive match on name and category."""
        needle = query.strip().lower()
        products = await self.list_products()
        if not needle:
            return products
        return [
            p for p in products
            if needle in p.name.lower() or (p.category and needle in p.category.lower())
        ]
