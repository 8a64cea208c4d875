"""Storefront error taxonomy."""

from enum import Enum
from typing import Optional


class StorefrontError(Exception):
    """Base class for storefront errors."""


class AuthenticationError(StorefrontError):
    """Invalid credentials or a rejected registration."""


class CheckoutErrorKind(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    MISSING_SHIPPING_ADDRESS = "missing_shipping_address"
    MISSING_PAYMENT_METHOD = "missing_payment_method"
    EMPTY_CART = "empty_cart"


class CheckoutPreconditionError(StorefrontError):
    """A checkout precondition is not met. Never reaches the network."""

    kind: Optional[CheckoutErrorKind] = None

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    default_message = "Missing required checkout information"


class NotAuthenticatedError(CheckoutPreconditionError):
    kind = CheckoutErrorKind.NOT_AUTHENTICATED
    default_message = "Not authenticated. Please login first."


class MissingShippingAddressError(CheckoutPreconditionError):
    kind = CheckoutErrorKind.MISSING_SHIPPING_ADDRESS
    default_message = "No shipping address selected"


class MissingPaymentMethodError(CheckoutPreconditionError):
    kind = CheckoutErrorKind.MISSING_PAYMENT_METHOD
    default_message = "No payment method selected"


class EmptyCartError(CheckoutPreconditionError):
    kind = CheckoutErrorKind.EMPTY_CART
    default_message = "Your cart is empty"


class OrderInProgressError(StorefrontError):
    """An order submission is already in flight."""


class RecordStoreError(StorefrontError):
    """A request to the record store failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
