"""Checkout step state machine and order submission."""

import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, Optional, TypeVar

from pydantic import ValidationError

from .api_client import ORDERS, RecordStoreClient
from .auth import AuthManager
from .cart import CartStore
from .exceptions import (
    EmptyCartError,
    MissingPaymentMethodError,
    MissingShippingAddressError,
    NotAuthenticatedError,
    OrderInProgressError,
    RecordStoreError,
)
from .models import (
    CheckoutStep,
    CheckoutSummary,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    ShippingAddress,
)
from .state import Computed, Signal
from .summary import calculate_summary, round_summary

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Selection(Generic[T]):
    """Read/write handle on one of the checkout selections."""

    get: Callable[[], Optional[T]]
    set: Callable[[T], None]
    clear: Callable[[], None]


class CheckoutOrchestrator:
    """
    Checkout session state: Shipping -> Payment -> Review -> Success.

    Selecting an address or payment method never advances the step. The
    Success step is entered only once an order has been placed, and is left
    only through ``reset()``.
    """

    def __init__(self, cart: CartStore) -> None:
        self.cart = cart

        self.step: Signal[CheckoutStep] = Signal(CheckoutStep.SHIPPING)
        self.shipping_address: Signal[Optional[ShippingAddress]] = Signal(None)
        self.payment_method: Signal[Optional[PaymentMethod]] = Signal(None)
        self.processing = Signal(False)
        self.last_order: Signal[Optional[Order]] = Signal(None)
        # Bumped every time a new checkout session begins
        self.session = Signal(0)

        self.summary: Computed[CheckoutSummary] = Computed(
            lambda: calculate_summary(cart.cart_value(), cart.total_item_count()),
            cart.cart_value,
            cart.total_item_count,
        )

    @property
    def current_step(self) -> CheckoutStep:
        return self.step()

    # Navigation

    def go_to_step(self, step: int) -> bool:
        """
        Jump to a step without checking preconditions.

        Returns:
            True if the step was changed or already current
        """
        if not CheckoutStep.SHIPPING <= step <= CheckoutStep.SUCCESS:
            return False

        target = CheckoutStep(step)
        current = self.step()
        if current == CheckoutStep.SUCCESS and target != CheckoutStep.SUCCESS:
            logger.warning("Checkout already completed, reset() before starting again")
            return False
        if target == CheckoutStep.SUCCESS and self.last_order() is None:
            logger.warning("Success step requires a placed order")
            return False

        self.step.set(target)
        return True

    def next_step(self) -> bool:
        return self.go_to_step(min(self.step() + 1, CheckoutStep.SUCCESS))

    def previous_step(self) -> bool:
        return self.go_to_step(max(self.step() - 1, CheckoutStep.SHIPPING))

    def can_proceed_to_step(self, step: int) -> bool:
        if step == CheckoutStep.PAYMENT:
            return self.cart.total_item_count() > 0
        if step == CheckoutStep.REVIEW:
            return self.shipping_address() is not None
        if step == CheckoutStep.SUCCESS:
            return self.shipping_address() is not None and self.payment_method() is not None
        return True

    # Selections

    def set_shipping_address(self, address: ShippingAddress) -> None:
        self.shipping_address.set(address)

    def clear_shipping_address(self) -> None:
        self.shipping_address.set(None)

    def set_payment_method(self, payment: PaymentMethod) -> None:
        self.payment_method.set(payment)

    def clear_payment_method(self) -> None:
        self.payment_method.set(None)

    @property
    def shipping_selection(self) -> Selection[ShippingAddress]:
        return Selection(self.shipping_address.get, self.set_shipping_address, self.clear_shipping_address)

    @property
    def payment_selection(self) -> Selection[PaymentMethod]:
        return Selection(self.payment_method.get, self.set_payment_method, self.clear_payment_method)

    # Session lifecycle

    def begin_processing(self) -> None:
        self.processing.set(True)

    def end_processing(self) -> None:
        self.processing.set(False)

    def complete(self, order: Order) -> None:
        """Record a placed order and show the Success step."""
        self.shipping_address.set(None)
        self.payment_method.set(None)
        self.processing.set(False)
        self.last_order.set(order)
        self.step.set(CheckoutStep.SUCCESS)
        self.session.update(lambda n: n + 1)

    def reset(self) -> None:
        """Abandon or restart checkout."""
        self.step.set(CheckoutStep.SHIPPING)
        self.shipping_address.set(None)
        self.payment_method.set(None)
        self.processing.set(False)
        self.last_order.set(None)
        self.session.update(lambda n: n + 1)


def generate_tracking_number() -> str:
    """Time-derived prefix plus a short random suffix. Display-unique only."""
    millis = str(int(time.time() * 1000))[-8:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"TN{millis}{suffix}"


class OrderSubmission:
    """Turns the current cart and selections into a placed order."""

    def __init__(
        self,
        store: RecordStoreClient,
        auth: AuthManager,
        cart: CartStore,
        checkout: CheckoutOrchestrator,
    ) -> None:
        self.store = store
        self.auth = auth
        self.cart = cart
        self.checkout = checkout
        # (fingerprint, tracking number) of the last failed attempt
        self._retry: Optional[tuple[tuple, str]] = None

    @property
    def is_processing(self) -> bool:
        return self.checkout.processing()

    @property
    def last_order(self) -> Optional[Order]:
        return self.checkout.last_order()

    def check_preconditions(self) -> None:
        """
        Raise the first failing checkout precondition, if any.

        Checked in order: identity, shipping address, payment method, cart.
        """
        if self.auth.current_user() is None:
            raise NotAuthenticatedError()
        if self.checkout.shipping_address() is None:
            raise MissingShippingAddressError()
        if self.checkout.payment_method() is None:
            raise MissingPaymentMethodError()
        if not self.cart.lines():
            raise EmptyCartError()

    def build_order(self) -> Order:
        """Snapshot the cart and selections into an unsaved order."""
        self.check_preconditions()
        user = self.auth.current_user()
        address = self.checkout.shipping_address()
        payment = self.checkout.payment_method()

        items = [
            OrderItem(
                product_id=line.product.id,
                product_name=line.product.name,
                quantity=line.quantity,
                price=line.product.price,
                image_url=line.product.image_url,
            )
            for line in self.cart.lines()
        ]
        summary = round_summary(calculate_summary(self.cart.cart_value(), self.cart.total_item_count()))

        fingerprint = (
            user.id,
            tuple((item.product_id, item.quantity, item.price) for item in items),
            address.display(),
            payment.kind,
            payment.id,
        )
        if self._retry is not None and self._retry[0] == fingerprint:
            tracking_number = self._retry[1]
        else:
            tracking_number = generate_tracking_number()
        self._retry = (fingerprint, tracking_number)

        return Order(
            owner_id=user.id,
            items=items,
            subtotal=summary.subtotal,
            shipping=summary.shipping,
            tax=summary.tax,
            total=summary.total,
            status=OrderStatus.PENDING,
            order_date=datetime.now(timezone.utc),
            shipping_address=address.display(),
            payment_method_kind=payment.kind,
            tracking_number=tracking_number,
        )

    async def submit(self) -> Order:
        """
        Place the order.

        On success the cart is cleared and the checkout shows the Success
        step. On failure nothing but the processing flag is touched, so the
        same submission can be retried.

        Raises:
            OrderInProgressError: If a submission is already in flight
            CheckoutPreconditionError: If a precondition is not met
            RecordStoreError: If the order could not be created
        """
        if self.checkout.processing():
            raise OrderInProgressError("An order is already being placed")

        order = self.build_order()
        self.checkout.begin_processing()
        placed: Optional[Order] = None
        try:
            created = await self.store.create(ORDERS, order.to_record(exclude={"id"}))
            try:
                placed = Order.model_validate(created)
            except ValidationError as e:
                raise RecordStoreError(f"Unexpected response when placing order: {e}") from e
        except RecordStoreError as e:
            logger.error(f"Failed to place order {order.tracking_number}: {e}")
            raise
        finally:
            if placed is None:
                self.checkout.end_processing()

        self._retry = None
        self.cart.clear()
        self.checkout.complete(placed)
        logger.info(f"Order placed successfully: {placed.id} ({placed.tracking_number})")
        return placed
