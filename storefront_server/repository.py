"""Cached collections of saved addresses and payment methods."""

import logging
from typing import Generic, Optional, TypeVar, Union

from .api_client import ADDRESSES, PAYMENT_METHODS, RecordStoreClient
from .auth import AuthManager
from .checkout import CheckoutOrchestrator, Selection
from .exceptions import NotAuthenticatedError, RecordStoreError
from .models import PaymentMethod, RecordModel, ShippingAddress
from .state import Signal

logger = logging.getLogger(__name__)

R = TypeVar("R", ShippingAddress, PaymentMethod)


class CachedCollection(Generic[R]):
    """
    Owner-scoped records of one collection, mirrored in memory.

    The cache is replaced wholesale by ``refresh()`` and patched locally
    after each successful write. When the cache becomes non-empty and
    nothing is selected yet, its first entry becomes the selection; this is
    applied once per checkout session.
    """

    def __init__(
        self,
        store: RecordStoreClient,
        auth: AuthManager,
        collection: str,
        model: type[R],
        selection: Selection[R],
    ) -> None:
        self.store = store
        self.auth = auth
        self.collection = collection
        self.model = model
        self.selection = selection
        self.items: Signal[tuple[R, ...]] = Signal(())
        self._default_applied = False
        self.items.subscribe(lambda new, old: self._apply_default())

    def __call__(self) -> list[R]:
        return list(self.items())

    def rearm(self) -> None:
        """Allow the default selection again, e.g. for a new checkout session."""
        self._default_applied = False

    def _apply_default(self) -> None:
        items = self.items()
        if items and self.selection.get() is None and not self._default_applied:
            self.selection.set(items[0])
            self._default_applied = True

    def _owner_id(self) -> str:
        user = self.auth.current_user()
        if user is None:
            raise NotAuthenticatedError()
        return user.id

    def clear(self) -> None:
        self.items.set(())
        self._default_applied = False

    async def refresh(self) -> list[R]:
        """
        Reload the collection for the current identity.

        Read failures keep the previously cached records.
        """
        user = self.auth.current_user()
        if user is None:
            self.clear()
            return []

        try:
            records = await self.store.list_records(self.collection, owner_id=user.id)
        except RecordStoreError as e:
            logger.error(f"Failed to load {self.collection}: {e}")
            return self()

        self.items.set(tuple(self.model.model_validate(record) for record in records))
        self._apply_default()
        return self()

    async def add(self, record: R) -> R:
        """Create a record owned by the current identity and cache it."""
        owner_id = self._owner_id()
        payload = record.model_copy(update={"owner_id": owner_id}).to_record(exclude={"id"})
        saved = self.model.model_validate(await self.store.create(self.collection, payload))
        self.items.set(self.items() + (saved,))
        logger.info(f"Added {self.collection} record {saved.id}")
        return saved

    async def update(self, record_id: str, record: Union[R, dict]) -> R:
        """Submit a partial update and patch the cache and selection."""
        self._owner_id()
        if isinstance(record, RecordModel):
            fields = record.to_record(exclude={"id", "owner_id"})
        else:
            fields = dict(record)
        saved = self.model.model_validate(await self.store.patch(self.collection, record_id, fields))

        self.items.set(tuple(saved if item.id == record_id else item for item in self.items()))
        selected = self.selection.get()
        if selected is not None and selected.id == record_id:
            self.selection.set(saved)
        return saved

    async def remove(self, record_id: str) -> None:
        """
        Delete a record.

        If it was selected the selection is cleared and falls back to the
        first remaining record, if any.
        """
        self._owner_id()
        await self.store.delete(self.collection, record_id)

        remaining = tuple(item for item in self.items() if item.id != record_id)
        self.items.set(remaining)
        selected = self.selection.get()
        if selected is not None and selected.id == record_id:
            self.selection.clear()
            if remaining:
                self.selection.set(remaining[0])

    def find(self, record_id: str) -> Optional[R]:
        return next((item for item in self.items() if item.id == record_id), None)


class CheckoutRepository:
    """Saved shipping addresses and payment methods of the current identity."""

    def __init__(self, store: RecordStoreClient, auth: AuthManager, checkout: CheckoutOrchestrator) -> None:
        self.addresses: CachedCollection[ShippingAddress] = CachedCollection(
            store, auth, ADDRESSES, ShippingAddress, checkout.shipping_selection
        )
        self.payment_methods: CachedCollection[PaymentMethod] = CachedCollection(
            store, auth, PAYMENT_METHODS, PaymentMethod, checkout.payment_selection
        )
        checkout.session.subscribe(lambda new, old: self.rearm())

    def rearm(self) -> None:
        self.addresses.rearm()
        self.payment_methods.rearm()

    def clear(self) -> None:
        self.addresses.clear()
        self.payment_methods.clear()

    async def refresh_addresses(self) -> list[ShippingAddress]:
        return await self.addresses.refresh()

    async def add_address(self, address: ShippingAddress) -> ShippingAddress:
        return await self.addresses.add(address)

    async def update_address(self, address_id: str, address: Union[ShippingAddress, dict]) -> ShippingAddress:
        return await self.addresses.update(address_id, address)

    async def remove_address(self, address_id: str) -> None:
        await self.addresses.remove(address_id)

    async def refresh_payment_methods(self) -> list[PaymentMethod]:
        return await self.payment_methods.refresh()

    async def add_payment_method(self, payment: PaymentMethod) -> PaymentMethod:
        return await self.payment_methods.add(payment)

    async def update_payment_method(self, payment_id: str, payment: Union[PaymentMethod, dict]) -> PaymentMethod:
        return await self.payment_methods.update(payment_id, payment)

    async def remove_payment_method(self, payment_id: str) -> None:
        await self.payment_methods.remove(payment_id)
