"""Order history of the current identity."""

import logging
from typing import Optional

from .api_client import ORDERS, CatalogClient, RecordStoreClient
from .auth import AuthManager
from .cart import CartStore
from .exceptions import NotAuthenticatedError, RecordStoreError, StorefrontError
from .models import Order, OrderStatus

logger = logging.getLogger(__name__)

# Orders past this point can no longer be cancelled
_FINAL_STATUSES = {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}


class OrderHistory:
    """Read and status operations on placed orders."""

    def __init__(self, store: RecordStoreClient, auth: AuthManager, catalog: CatalogClient, cart: CartStore) -> None:
        self.store = store
        self.auth = auth
        self.catalog = catalog
        self.cart = cart

    async def list_orders(self) -> list[Order]:
        """Orders of the current identity, newest first. Empty when anonymous or unreachable."""
        user = self.auth.current_user()
        if user is None:
            return []
        try:
            records = await self.store.list_records(ORDERS, owner_id=user.id)
        except RecordStoreError as e:
            logger.error(f"Failed to load orders: {e}")
            return []
        orders = [Order.model_validate(record) for record in records]
        return sorted(orders, key=lambda order: order.order_date, reverse=True)

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Fetch one order of the current identity, None if missing or not theirs."""
        user = self.auth.current_user()
        if user is None:
            raise NotAuthenticatedError()
        try:
            order = Order.model_validate(await self.store.get(ORDERS, order_id))
        except RecordStoreError as e:
            if e.status_code == 404:
                return None
            raise
        if order.owner_id != user.id:
            return None
        return order

    async def _patch_status(self, order_id: str, status: OrderStatus) -> Order:
        data = await self.store.patch(ORDERS, order_id, {"status": OrderStatus(status).value})
        return Order.model_validate(data)

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        """
        Set the status of an order of the current identity.

        Raises:
            StorefrontError: If the order is unknown or belongs to someone else
        """
        if await self.get_order(order_id) is None:
            raise StorefrontError(f"Order {order_id} not found")
        return await self._patch_status(order_id, status)

    async def cancel_order(self, order_id: str) -> Order:
        """
        Cancel an order that has not shipped yet.

        Raises:
            StorefrontError: If the order is unknown or can no longer be cancelled
        """
        order = await self.get_order(order_id)
        if order is None:
            raise StorefrontError(f"Order {order_id} not found")
        if order.status in _FINAL_STATUSES:
            raise StorefrontError(f"Order {order_id} is {order.status.value} and cannot be cancelled")
        logger.info(f"Cancelling order {order_id}")
        return await self._patch_status(order_id, OrderStatus.CANCELLED)

    async def reorder(self, order_id: str) -> int:
        """
        Put the items of a past order back into the cart.

        Items whose product is no longer in the catalog are skipped.

        Returns:
            Number of lines added or updated
        """
        order = await self.get_order(order_id)
        if order is None:
            raise StorefrontError(f"Order {order_id} not found")

        products = {product.id: product for product in await self.catalog.list_products()}
        count = 0
        for item in order.items:
            product = products.get(item.product_id)
            if product is None:
                continue
            current = self.cart.quantity_of(product.id)
            if current == 0:
                self.cart.add_line(product)
            self.cart.set_quantity(product.id, current + item.quantity)
            count += 1
        return count
