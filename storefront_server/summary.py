"""Monetary summary calculation."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from .models import CartLine, CheckoutSummary

FREE_SHIPPING_THRESHOLD = Decimal("100.00")
FLAT_SHIPPING_FEE = Decimal("9.99")
TAX_RATE = Decimal("0.085")

CENT = Decimal("0.01")


def cart_value(lines: Iterable[CartLine]) -> Decimal:
    """Sum of quantity times unit price over all lines."""
    return sum((line.product.price * line.quantity for line in lines), Decimal("0"))


def item_count(lines: Iterable[CartLine]) -> int:
    return sum(line.quantity for line in lines)


def calculate_shipping(subtotal: Decimal) -> Decimal:
    # Free shipping at or above the threshold
    return Decimal("0") if subtotal >= FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_FEE


def calculate_tax(subtotal: Decimal) -> Decimal:
    return subtotal * TAX_RATE


def calculate_summary(subtotal: Decimal, count: int = 0) -> CheckoutSummary:
    """
    Build an unrounded summary for display.

    Args:
        subtotal: Current cart value
        count: Total number of items in the cart
    """
    shipping = calculate_shipping(subtotal)
    tax = calculate_tax(subtotal)
    return CheckoutSummary(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
        item_count=count,
    )


def summarize(lines: Iterable[CartLine]) -> CheckoutSummary:
    lines = list(lines)
    return calculate_summary(cart_value(lines), item_count(lines))


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_summary(summary: CheckoutSummary) -> CheckoutSummary:
    """
    Round each component to cents and derive the total from the rounded parts.

    The total of the result is exactly ``subtotal + shipping + tax``.
    """
    subtotal = round_money(summary.subtotal)
    shipping = round_money(summary.shipping)
    tax = round_money(summary.tax)
    return CheckoutSummary(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
        item_count=summary.item_count,
    )
