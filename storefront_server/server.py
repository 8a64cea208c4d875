"""MCP Server for the storefront."""

import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .config import Settings
from .exceptions import AuthenticationError, CheckoutPreconditionError, RecordStoreError, StorefrontError
from .models import AuthCredentials, CheckoutStep, PaymentMethod, ShippingAddress
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-mcp-server")

# Initialize server
app = Server("storefront-mcp-server")

# Global state
storefront: Storefront
credentials: Optional[AuthCredentials] = None

NOT_AUTHENTICATED = "Error: Not authenticated. Please login with storefront_login or configure STOREFRONT_EMAIL and STOREFRONT_PASSWORD."

STEP_NAMES = {
    CheckoutStep.SHIPPING: "Shipping",
    CheckoutStep.PAYMENT: "Payment",
    CheckoutStep.REVIEW: "Review",
    CheckoutStep.SUCCESS: "Success",
}

_EMPTY = {"type": "object", "properties": {}}


async def ensure_authenticated() -> bool:
    """Ensure a user is logged in, auto-login if credentials are available."""
    if storefront.auth.is_authenticated():
        return True

    if credentials:
        try:
            logger.info("Auto-logging in with configured credentials...")
            await storefront.login(credentials)
            logger.info("Auto-login successful")
            return True
        except StorefrontError as e:
            logger.error(f"Auto-login error: {e}")

    return False


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def format_cart() -> str:
    cart = storefront.cart.snapshot()
    if not cart.items:
        return "Your cart is empty"

    result_lines = [f"Shopping Cart ({cart.item_count} items):\n"]
    for i, line in enumerate(cart.items, 1):
        result_lines.append(f"\n{i}. {line.product.name}")
        result_lines.append(f"   Product ID: {line.product.id}")
        result_lines.append(f"   Price: ${line.product.price}")
        result_lines.append(f"   Quantity: {line.quantity}")
        result_lines.append(f"   Subtotal: ${line.subtotal}")

    summary = storefront.checkout.summary()
    result_lines.append(f"\n{'='*50}")
    result_lines.append(f"Subtotal: ${summary.subtotal:.2f}")
    result_lines.append(f"Shipping: ${summary.shipping:.2f}")
    result_lines.append(f"Tax: ${summary.tax:.2f}")
    result_lines.append(f"Total: ${summary.total:.2f}")
    return "\n".join(result_lines)


def format_checkout_status() -> str:
    checkout = storefront.checkout
    step = checkout.current_step
    address = checkout.shipping_address()
    payment = checkout.payment_method()

    result_lines = [f"Checkout step {int(step)}: {STEP_NAMES[step]}"]
    result_lines.append(f"Shipping address: {address.display() if address else 'not selected'}")
    result_lines.append(f"Payment method: {payment.label if payment else 'not selected'}")
    result_lines.append(f"Items: {checkout.summary().item_count}")
    for target in (CheckoutStep.PAYMENT, CheckoutStep.REVIEW, CheckoutStep.SUCCESS):
        ready = "yes" if checkout.can_proceed_to_step(target) else "no"
        result_lines.append(f"Can proceed to {STEP_NAMES[target]}: {ready}")
    if checkout.last_order():
        order = checkout.last_order()
        result_lines.append(f"Last order: #{order.id} (tracking {order.tracking_number})")
    return "\n".join(result_lines)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    resources = [
        Resource(
            uri=AnyUrl("storefront://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        ),
    ]

    if storefront.auth.is_authenticated():
        resources.append(
            Resource(
                uri=AnyUrl("storefront://orders"),
                name="Orders",
                mimeType="application/json",
                description="User's orders",
            )
        )

    return resources


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "storefront://cart":
        return storefront.cart.snapshot().model_dump_json(indent=2)

    elif uri_str == "storefront://orders":
        if not storefront.auth.is_authenticated():
            return "Error: Not authenticated. Please login first."

        orders = await storefront.orders.list_orders()
        result = [order.model_dump(mode="json") for order in orders]
        return json.dumps(result, indent=2)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="storefront_login",
            description="Login to the storefront. Uses credentials from environment (STOREFRONT_EMAIL, STOREFRONT_PASSWORD) if not provided.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "User email address"},
                    "password": {"type": "string", "description": "User password"},
                },
            },
        ),
        Tool(
            name="storefront_logout",
            description="Logout. The cart is kept locally for the rest of the session.",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_search_products",
            description="Search the catalog by product name or category",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Product name or search term"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="storefront_add_to_cart",
            description="Add a product to the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to add to cart"},
                    "quantity": {
                        "type": "integer",
                        "description": "Quantity to add (default: 1)",
                        "default": 1,
                    },
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_update_cart_quantity",
            description="Set the quantity of a product in the cart. A quantity of 0 removes it.",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to update"},
                    "quantity": {"type": "integer", "description": "New quantity to set"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="storefront_remove_from_cart",
            description="Remove a product from the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to remove from cart"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_clear_cart",
            description="Remove everything from the shopping cart",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_get_cart",
            description="Get current shopping cart contents with totals",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_list_addresses",
            description="List saved shipping addresses",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_add_address",
            description="Save a new shipping address",
            inputSchema={
                "type": "object",
                "properties": {
                    "first_name": {"type": "string"},
                    "last_name": {"type": "string"},
                    "street": {"type": "string"},
                    "city": {"type": "string"},
                    "region": {"type": "string", "description": "State or region"},
                    "postal_code": {"type": "string"},
                    "country": {"type": "string"},
                    "phone": {"type": "string"},
                },
                "required": ["first_name", "last_name", "street", "city", "region", "postal_code", "country"],
            },
        ),
        Tool(
            name="storefront_remove_address",
            description="Delete a saved shipping address",
            inputSchema={
                "type": "object",
                "properties": {"address_id": {"type": "string"}},
                "required": ["address_id"],
            },
        ),
        Tool(
            name="storefront_list_payment_methods",
            description="List saved payment methods",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_add_payment_method",
            description="Save a new payment method. Cards need cardholder and card number, wallets an email.",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": {
                        "type": "string",
                        "description": "credit_card, debit_card or paypal",
                        "default": "credit_card",
                    },
                    "cardholder_name": {"type": "string"},
                    "card_number": {"type": "string", "description": "Only the last 4 digits are stored"},
                    "expiry_month": {"type": "integer"},
                    "expiry_year": {"type": "integer"},
                    "email": {"type": "string"},
                },
            },
        ),
        Tool(
            name="storefront_remove_payment_method",
            description="Delete a saved payment method",
            inputSchema={
                "type": "object",
                "properties": {"payment_id": {"type": "string"}},
                "required": ["payment_id"],
            },
        ),
        Tool(
            name="storefront_checkout_status",
            description="Show the checkout step, selections and which steps can be reached",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_select_address",
            description="Use a saved address for shipping",
            inputSchema={
                "type": "object",
                "properties": {"address_id": {"type": "string"}},
                "required": ["address_id"],
            },
        ),
        Tool(
            name="storefront_select_payment_method",
            description="Use a saved payment method",
            inputSchema={
                "type": "object",
                "properties": {"payment_id": {"type": "string"}},
                "required": ["payment_id"],
            },
        ),
        Tool(
            name="storefront_checkout_step",
            description="Move through checkout: next, previous, reset, or a step number (1-3)",
            inputSchema={
                "type": "object",
                "properties": {
                    "action": {"type": "string", "description": "next, previous, reset or 1, 2, 3"},
                },
                "required": ["action"],
            },
        ),
        Tool(
            name="storefront_place_order",
            description="Place the order with the selected address and payment method",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_get_orders",
            description="Get user's orders",
            inputSchema=_EMPTY,
        ),
        Tool(
            name="storefront_cancel_order",
            description="Cancel an order that has not shipped yet",
            inputSchema={
                "type": "object",
                "properties": {"order_id": {"type": "string"}},
                "required": ["order_id"],
            },
        ),
    ]


def build_payment_method(arguments: dict) -> PaymentMethod:
    card_number = arguments.get("card_number") or ""
    return PaymentMethod(
        kind=arguments.get("kind", "credit_card"),
        cardholder_name=arguments.get("cardholder_name"),
        last4=card_number[-4:] if card_number else None,
        expiry_month=arguments.get("expiry_month"),
        expiry_year=arguments.get("expiry_year"),
        email=arguments.get("email"),
    )


def move_checkout(action: str) -> str:
    checkout = storefront.checkout
    if action == "reset":
        checkout.reset()
        return "Checkout reset"

    if action == "next":
        target = checkout.current_step + 1
    elif action == "previous":
        target = checkout.current_step - 1
    elif action.isdigit():
        target = int(action)
    else:
        return f"Unknown checkout action: {action}"

    if target > checkout.current_step and not checkout.can_proceed_to_step(target):
        return f"Cannot proceed to step {target} yet\n\n{format_checkout_status()}"
    if target == CheckoutStep.SUCCESS:
        return "Use storefront_place_order to complete checkout"

    checkout.go_to_step(target)
    return format_checkout_status()


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        if name == "storefront_login":
            email = arguments.get("email")
            password = arguments.get("password")

            if not email or not password:
                if credentials:
                    email = credentials.email if not email else email
                    password = credentials.password if not password else password
                else:
                    return _text("Error: No credentials provided and STOREFRONT_EMAIL/STOREFRONT_PASSWORD not configured.")

            try:
                await storefront.login(AuthCredentials(email=email, password=password))
            except AuthenticationError:
                return _text("Login failed. Please check your credentials.")
            return _text(f"Successfully logged in as {email}\n\n{format_cart()}")

        elif name == "storefront_logout":
            storefront.logout()
            return _text("Successfully logged out")

        elif name == "storefront_search_products":
            query = arguments["query"]
            products = await storefront.catalog.search_products(query)

            if not products:
                return _text(f"No products found for: {query}")

            result_lines = [f"Found {len(products)} product(s):\n"]
            for i, product in enumerate(products, 1):
                result_lines.append(f"\n{i}. {product.name}")
                result_lines.append(f"   ID: {product.id}")
                result_lines.append(f"   Price: ${product.price}")
                if product.category:
                    result_lines.append(f"   Category: {product.category}")
                result_lines.append(f"   In stock: {product.stock}")

            return _text("\n".join(result_lines))

        elif name == "storefront_add_to_cart":
            product_id = arguments["product_id"]
            quantity = arguments.get("quantity", 1)
            product = await storefront.add_to_cart(product_id, quantity)
            return _text(f"Successfully added {product.name} (quantity: {quantity}) to cart")

        elif name == "storefront_update_cart_quantity":
            product_id = arguments["product_id"]
            quantity = arguments["quantity"]
            if not storefront.cart.contains(product_id):
                return _text(f"Product {product_id} is not in the cart")
            storefront.cart.set_quantity(product_id, quantity)
            return _text(f"Successfully updated product {product_id} to quantity {quantity}")

        elif name == "storefront_remove_from_cart":
            product_id = arguments["product_id"]
            if not storefront.cart.contains(product_id):
                return _text(f"Product {product_id} is not in the cart")
            storefront.cart.remove_line(product_id)
            return _text(f"Successfully removed product {product_id} from cart")

        elif name == "storefront_clear_cart":
            storefront.cart.clear()
            return _text("Cart cleared")

        elif name == "storefront_get_cart":
            return _text(format_cart())

        elif name == "storefront_checkout_status":
            return _text(format_checkout_status())

        elif name == "storefront_checkout_step":
            return _text(move_checkout(str(arguments["action"]).strip().lower()))

        # Everything below needs a logged in user
        if not await ensure_authenticated():
            return _text(NOT_AUTHENTICATED)

        if name == "storefront_list_addresses":
            addresses = await storefront.repository.refresh_addresses()
            if not addresses:
                return _text("No saved addresses")
            selected = storefront.checkout.shipping_address()
            result_lines = [f"Found {len(addresses)} address(es):\n"]
            for i, address in enumerate(addresses, 1):
                marker = " (selected)" if selected and selected.id == address.id else ""
                result_lines.append(f"\n{i}. {address.first_name} {address.last_name}{marker}")
                result_lines.append(f"   ID: {address.id}")
                result_lines.append(f"   {address.display()}, {address.country}")
            return _text("\n".join(result_lines))

        elif name == "storefront_add_address":
            address = await storefront.repository.add_address(ShippingAddress.model_validate(arguments))
            return _text(f"Saved address {address.id}: {address.display()}")

        elif name == "storefront_remove_address":
            await storefront.repository.remove_address(arguments["address_id"])
            return _text(f"Removed address {arguments['address_id']}")

        elif name == "storefront_list_payment_methods":
            methods = await storefront.repository.refresh_payment_methods()
            if not methods:
                return _text("No saved payment methods")
            selected = storefront.checkout.payment_method()
            result_lines = [f"Found {len(methods)} payment method(s):\n"]
            for i, method in enumerate(methods, 1):
                marker = " (selected)" if selected and selected.id == method.id else ""
                detail = f"ending {method.last4}" if method.is_card else (method.email or "")
                result_lines.append(f"\n{i}. {method.label} {detail}{marker}")
                result_lines.append(f"   ID: {method.id}")
            return _text("\n".join(result_lines))

        elif name == "storefront_add_payment_method":
            method = await storefront.repository.add_payment_method(build_payment_method(arguments))
            return _text(f"Saved payment method {method.id}: {method.label}")

        elif name == "storefront_remove_payment_method":
            await storefront.repository.remove_payment_method(arguments["payment_id"])
            return _text(f"Removed payment method {arguments['payment_id']}")

        elif name == "storefront_select_address":
            address = storefront.repository.addresses.find(arguments["address_id"])
            if address is None:
                return _text(f"Address {arguments['address_id']} not found")
            storefront.checkout.set_shipping_address(address)
            return _text(format_checkout_status())

        elif name == "storefront_select_payment_method":
            method = storefront.repository.payment_methods.find(arguments["payment_id"])
            if method is None:
                return _text(f"Payment method {arguments['payment_id']} not found")
            storefront.checkout.set_payment_method(method)
            return _text(format_checkout_status())

        elif name == "storefront_place_order":
            try:
                order = await storefront.submission.submit()
            except CheckoutPreconditionError as e:
                return _text(f"Cannot place order ({e.kind.value}): {e}")
            except RecordStoreError as e:
                return _text(f"Failed to place order. Please try again.\n\nDetails: {e}")

            result_lines = ["Order placed successfully!\n"]
            result_lines.append(f"Order #{order.id}")
            result_lines.append(f"Tracking number: {order.tracking_number}")
            result_lines.append(f"Subtotal: ${order.subtotal}")
            result_lines.append(f"Shipping: ${order.shipping}")
            result_lines.append(f"Tax: ${order.tax}")
            result_lines.append(f"Total: ${order.total}")
            result_lines.append(f"Ship to: {order.shipping_address}")
            return _text("\n".join(result_lines))

        elif name == "storefront_get_orders":
            orders = await storefront.orders.list_orders()
            if not orders:
                return _text("No orders found")

            result_lines = [f"Found {len(orders)} order(s):\n"]
            for i, order in enumerate(orders, 1):
                result_lines.append(f"\n{i}. Order #{order.id}")
                result_lines.append(f"   Status: {order.status.value}")
                result_lines.append(f"   Date: {order.order_date.strftime('%Y-%m-%d %H:%M')}")
                result_lines.append(f"   Total: ${order.total}")
                result_lines.append(f"   Tracking: {order.tracking_number}")
                if order.items:
                    result_lines.append(f"   Items ({len(order.items)}):")
                    for item in order.items:
                        result_lines.append(f"     - {item.product_name} x{item.quantity} (${item.subtotal})")

            return _text("\n".join(result_lines))

        elif name == "storefront_cancel_order":
            order = await storefront.orders.cancel_order(arguments["order_id"])
            return _text(f"Order #{order.id} is now {order.status.value}")

        else:
            return _text(f"Unknown tool: {name}")

    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return _text(f"Error: {str(e)}")


async def main() -> None:
    """Main entry point for the MCP server."""
    global storefront, credentials

    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)

    storefront = Storefront.from_settings(settings)
    credentials = settings.credentials

    if credentials:
        logger.info(f"Credentials loaded from environment for: {credentials.email}")
    else:
        logger.warning("No credentials found in environment variables (STOREFRONT_EMAIL, STOREFRONT_PASSWORD)")
        logger.warning("Address, payment and order operations will require manual login via storefront_login tool")

    await storefront.start()
    logger.info("Starting Storefront MCP Server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
