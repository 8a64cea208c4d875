"""Storefront MCP Server - cart, checkout and orders for a record-store backed shop."""

from .cart import CartStore
from .checkout import CheckoutOrchestrator, OrderSubmission
from .repository import CheckoutRepository
from .storefront import Storefront

__version__ = "0.1.0"

__all__ = [
    "CartStore",
    "CheckoutOrchestrator",
    "CheckoutRepository",
    "OrderSubmission",
    "Storefront",
]
