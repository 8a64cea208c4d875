"""Composition root wiring the storefront components together."""

import logging
from typing import Optional

import httpx

from .api_client import CatalogClient, RecordStoreClient
from .auth import AuthManager
from .cart import CartStore
from .checkout import CheckoutOrchestrator, OrderSubmission
from .config import Settings
from .exceptions import StorefrontError
from .models import AuthCredentials, Product, User
from .orders import OrderHistory
from .repository import CheckoutRepository
from .storage import JsonFileStorage, LocalStorage

logger = logging.getLogger(__name__)


class Storefront:
    """
    All storefront components for one shopper.

    Identity transitions are routed here: the cart store reacts first, so
    its persistence mode is switched before anything else can mutate the
    cart, then checkout state and cached collections follow.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        storage: Optional[LocalStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the storefront.

        Args:
            settings: Runtime settings (defaults to the built-in defaults)
            storage: Local storage capability, None in non-interactive contexts
            transport: Optional httpx transport override (used for testing)
        """
        self.settings = settings or Settings()
        self.store = RecordStoreClient(self.settings.api_url, self.settings.timeout, transport)
        self.catalog = CatalogClient(self.store, self.settings.catalog_path)
        self.auth = AuthManager(self.store, storage)
        self.cart = CartStore(self.store, self.catalog, storage)
        self.checkout = CheckoutOrchestrator(self.cart)
        self.repository = CheckoutRepository(self.store, self.auth, self.checkout)
        self.submission = OrderSubmission(self.store, self.auth, self.cart, self.checkout)
        self.orders = OrderHistory(self.store, self.auth, self.catalog, self.cart)

        self.auth.on_login(self._on_login)
        self.auth.on_logout(self._on_logout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Storefront":
        """Storefront with file-backed local storage."""
        return cls(settings, storage=JsonFileStorage(settings.storage_file))

    def _on_login(self, user: User) -> None:
        self.cart.handle_login(user)

    def _on_logout(self, user: User) -> None:
        self.cart.handle_logout(user)
        self.checkout.reset()
        self.repository.clear()

    async def start(self) -> None:
        """Adopt a restored session as a fresh none -> identity transition."""
        user = self.auth.current_user()
        if user is not None:
            self.cart.handle_login(user)
            await self.cart.wait_reconciled()
            await self.refresh_collections()

    async def refresh_collections(self) -> None:
        await self.repository.refresh_addresses()
        await self.repository.refresh_payment_methods()

    async def login(self, credentials: AuthCredentials) -> User:
        """Log in and wait until the cart has been reconciled."""
        user = await self.auth.login(credentials)
        await self.cart.wait_reconciled()
        await self.refresh_collections()
        return user

    def logout(self) -> None:
        self.auth.logout()

    async def add_to_cart(self, product_id: str, quantity: int = 1) -> Product:
        """
        Resolve a product and add ``quantity`` units of it to the cart.

        Raises:
            StorefrontError: If ``quantity`` is less than one
        """
        if quantity < 1:
            raise StorefrontError(f"Quantity must be at least 1, got {quantity}")
        product = await self.catalog.get_product(product_id)
        self.cart.add_line(product)
        if quantity > 1:
            self.cart.set_quantity(product.id, self.cart.quantity_of(product.id) + quantity - 1)
        return product

    async def close(self) -> None:
        await self.cart.flush()
        await self.store.close()
