"""Cart store: the shopper's cart under local or remote persistence."""

import asyncio
import logging
from typing import Any, Coroutine, Iterable, Optional

from pydantic import ValidationError

from .api_client import CatalogClient, RecordStoreClient
from .exceptions import RecordStoreError
from .models import Cart, CartLine, Product, ServerCartItem, User
from .state import Computed, Signal
from .storage import LocalStorage
from .summary import cart_value, item_count

logger = logging.getLogger(__name__)


def _merge_lines(lines: Iterable[CartLine]) -> tuple[CartLine, ...]:
    """Collapse duplicate products into one line, keeping first-seen order."""
    merged: dict[str, CartLine] = {}
    for line in lines:
        existing = merged.get(line.product.id)
        if existing is None:
            merged[line.product.id] = line
        else:
            merged[line.product.id] = existing.model_copy(
                update={"quantity": existing.quantity + line.quantity}
            )
    return tuple(merged.values())


class CartStore:
    """
    Single source of truth for the cart contents.

    While anonymous, every mutation is written to local storage. While
    authenticated, every mutation triggers a full replace-write of the
    identity's remote cart document; the write is fire-and-forget and a
    failure is logged without rolling back the local state.

    On a none -> identity transition the remote document is fetched. A
    non-empty remote cart replaces the in-memory cart; an empty one is seeded
    from the anonymous cart, after which local storage is erased. The two
    carts are never merged.
    """

    STORAGE_KEY = "ecommerce-cart"

    def __init__(
        self,
        store: RecordStoreClient,
        catalog: CatalogClient,
        storage: Optional[LocalStorage] = None,
    ) -> None:
        """
        Initialize the cart store in anonymous mode.

        Args:
            store: Record store client holding cart documents
            catalog: Catalog used to resolve remote lines to products
            storage: Local storage capability, None in non-interactive contexts
        """
        self.store = store
        self.catalog = catalog
        self.storage = storage

        self._lines: Signal[tuple[CartLine, ...]] = Signal(self._load_local())
        self.lines = self._lines
        self.total_item_count = Computed(lambda: item_count(self._lines()), self._lines)
        self.cart_value = Computed(lambda: cart_value(self._lines()), self._lines)
        self.is_loading = Signal(False)

        self._owner_id: Optional[str] = None
        self._document_id: Optional[str] = None
        self._generation = 0
        self._reconciling: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        self._dirty = False

    @property
    def owner_id(self) -> Optional[str]:
        """Identity whose remote document receives writes, None when local."""
        return self._owner_id

    # Local persistence

    def _load_local(self) -> tuple[CartLine, ...]:
        if self.storage is None:
            return ()
        data = self.storage.get(self.STORAGE_KEY) or []
        lines = []
        for entry in data:
            try:
                lines.append(CartLine.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Dropping unreadable stored cart line: {e}")
        return _merge_lines(lines)

    def _save_local(self) -> None:
        if self.storage is None:
            return
        self.storage.set(self.STORAGE_KEY, [line.to_record() for line in self._lines()])

    # Mutations

    def _commit(self, lines: Iterable[CartLine]) -> None:
        self._lines.set(tuple(lines))
        self._persist()

    def add_line(self, product: Product) -> None:
        """Add one unit of a product, creating its line if needed."""
        lines = list(self._lines())
        for index, line in enumerate(lines):
            if line.product.id == product.id:
                lines[index] = line.model_copy(update={"quantity": line.quantity + 1})
                break
        else:
            lines.append(CartLine(product=product, quantity=1))
        self._commit(lines)

    def set_quantity(self, product_id: str, quantity: int) -> None:
        """Replace a line's quantity. A quantity of zero or less removes the line."""
        if quantity <= 0:
            self.remove_line(product_id)
            return

        lines = list(self._lines())
        for index, line in enumerate(lines):
            if line.product.id == product_id:
                if line.quantity == quantity:
                    return
                lines[index] = line.model_copy(update={"quantity": quantity})
                self._commit(lines)
                return

    def remove_line(self, product_id: str) -> None:
        lines = self._lines()
        remaining = [line for line in lines if line.product.id != product_id]
        if len(remaining) != len(lines):
            self._commit(remaining)

    def clear(self) -> None:
        self._commit(())

    def quantity_of(self, product_id: str) -> int:
        return next((line.quantity for line in self._lines() if line.product.id == product_id), 0)

    def contains(self, product_id: str) -> bool:
        return self.quantity_of(product_id) > 0

    def snapshot(self) -> Cart:
        """Current cart as a read model."""
        return Cart(
            items=list(self._lines()),
            total=self.cart_value(),
            item_count=self.total_item_count(),
        )

    # Persistence scheduling

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, remote cart write deferred")
            return None

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _persist(self) -> None:
        if self._owner_id is None:
            self._save_local()
            return
        self._dirty = True
        self._schedule(self._write_remote(self._owner_id, self._generation))

    async def _write_remote(self, owner_id: str, generation: int) -> None:
        if self._reconciling is not None and not self._reconciling.done():
            await asyncio.wait([self._reconciling])

        if generation != self._generation:
            logger.debug(f"Skipping cart write for stale identity {owner_id}")
            return

        # Always the full current snapshot, so concurrent writes converge
        # on the last one issued.
        items = [
            ServerCartItem(product_id=line.product.id, quantity=line.quantity)
            for line in self._lines()
        ]
        try:
            if self._document_id is None:
                document = await self.store.get_cart_document(owner_id)
                if generation != self._generation:
                    return
                self._document_id = document.id
            await self.store.replace_cart_items(self._document_id, items)
            self._dirty = False
        except RecordStoreError as e:
            logger.error(f"Remote cart write failed for {owner_id}: {e}")

    async def flush(self) -> None:
        """Wait for every in-flight reconciliation and cart write."""
        if self._dirty and not self._pending and self._owner_id is not None:
            self._schedule(self._write_remote(self._owner_id, self._generation))
        while self._pending:
            await asyncio.wait(list(self._pending))

    # Identity transitions

    def handle_login(self, user: User) -> Optional[asyncio.Task]:
        """
        Switch to remote persistence for ``user`` and start reconciliation.

        Invoked once per none -> identity edge. The mode switch happens
        immediately so that later mutation writes target the new identity,
        and those writes wait for the reconciliation to finish.
        """
        self._generation += 1
        self._owner_id = user.id
        self._document_id = None
        self._dirty = False
        self.is_loading.set(True)
        self._reconciling = self._schedule(self._reconcile(user.id, self._generation))
        if self._reconciling is None:
            self.is_loading.set(False)
        return self._reconciling

    def handle_logout(self, user: User) -> None:
        """
        Switch back to local persistence.

        The in-memory cart is kept for the rest of the session and written to
        local storage on its next mutation.
        """
        logger.info(f"Cart switched to local persistence after logout of {user.id}")
        self._generation += 1
        self._owner_id = None
        self._document_id = None
        self._reconciling = None
        self._dirty = False
        self.is_loading.set(False)

    async def wait_reconciled(self) -> None:
        if self._reconciling is not None and not self._reconciling.done():
            await asyncio.wait([self._reconciling])

    async def _resolve(self, items: list[ServerCartItem]) -> list[CartLine]:
        """Resolve remote lines against the catalog, dropping unknown products."""
        products = {product.id: product for product in await self.catalog.list_products()}
        lines = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                logger.debug(f"Dropping cart line for unknown product {item.product_id}")
                continue
            lines.append(CartLine(product=product, quantity=item.quantity))
        return lines

    async def _reconcile(self, owner_id: str, generation: int) -> None:
        try:
            document = await self.store.get_cart_document(owner_id)
            if generation != self._generation:
                return

            if document.items:
                lines = await self._resolve(document.items)
                if generation != self._generation:
                    return
                self._document_id = document.id
                self._lines.set(_merge_lines(lines))
                logger.info(f"Loaded remote cart for {owner_id} ({len(lines)} line(s))")
                return

            # Remote cart is empty: the anonymous cart becomes the seed
            seed = self._lines()
            if seed:
                await self.store.replace_cart_items(
                    document.id,
                    [ServerCartItem(product_id=line.product.id, quantity=line.quantity) for line in seed],
                )
                if generation != self._generation:
                    return
            # Mutations made while the seed was being written stay in memory
            # and are sent by their own queued writes.
            self._document_id = document.id
            if self.storage is not None:
                self.storage.remove(self.STORAGE_KEY)
            logger.info(f"Migrated anonymous cart to {owner_id} ({len(seed)} line(s))")

        except RecordStoreError as e:
            logger.error(f"Could not reconcile remote cart for {owner_id}, keeping current cart: {e}")
        finally:
            if generation == self._generation:
                self.is_loading.set(False)
