"""HTTP server for the storefront with hot reloading support."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import Settings
from .exceptions import (
    AuthenticationError,
    CheckoutPreconditionError,
    NotAuthenticatedError,
    OrderInProgressError,
    RecordStoreError,
    StorefrontError,
)
from .models import AuthCredentials, PaymentMethod, ShippingAddress
from .storefront import Storefront

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-http-server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Startup
    logger.info("Starting Storefront HTTP Server...")
    if getattr(app.state, "storefront", None) is None:
        settings = Settings.from_env()
        logging.getLogger().setLevel(settings.log_level)
        app.state.storefront = Storefront.from_settings(settings)
    await app.state.storefront.start()

    yield

    # Shutdown
    logger.info("Shutting down Storefront HTTP Server...")
    await app.state.storefront.close()


app = FastAPI(
    title="Storefront MCP Server",
    description="HTTP API for browsing, cart and checkout of a record-store backed shop",
    version="0.1.0",
    lifespan=lifespan,
)


def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


def to_http_error(e: StorefrontError) -> HTTPException:
    """Map storefront errors onto HTTP status codes."""
    if isinstance(e, (NotAuthenticatedError, AuthenticationError)):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, CheckoutPreconditionError):
        return HTTPException(status_code=400, detail={"kind": e.kind.value, "message": str(e)})
    if isinstance(e, OrderInProgressError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, RecordStoreError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# Request/Response Models
class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    success: bool
    message: str


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1


class UpdateCartRequest(BaseModel):
    product_id: str
    quantity: int


class RemoveFromCartRequest(BaseModel):
    product_id: str


class StepRequest(BaseModel):
    step: int


class SelectRequest(BaseModel):
    id: str


# Root endpoint
@app.get("/")
async def root(request: Request):
    """Root endpoint with API information."""
    storefront = get_storefront(request)
    return {
        "name": "Storefront MCP Server",
        "version": "0.1.0",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {"login": "POST /auth/login", "logout": "POST /auth/logout", "status": "GET /auth/status"},
            "products": {"list": "GET /products", "search": "GET /products?q="},
            "cart": {"get": "GET /cart", "add": "POST /cart/add", "update": "POST /cart/update",
                     "remove": "POST /cart/remove", "clear": "POST /cart/clear"},
            "checkout": {"status": "GET /checkout", "step": "POST /checkout/step",
                         "address": "POST /checkout/address", "payment": "POST /checkout/payment",
                         "reset": "POST /checkout/reset", "order": "POST /checkout/order"},
            "addresses": "GET/POST /addresses, PATCH/DELETE /addresses/{id}",
            "payment_methods": "GET/POST /payment-methods, PATCH/DELETE /payment-methods/{id}",
            "orders": {"list": "GET /orders", "details": "GET /orders/{order_id}",
                       "cancel": "POST /orders/{order_id}/cancel"},
        },
        "authenticated": storefront.auth.is_authenticated(),
    }


# Health check endpoint
@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": get_storefront(request).auth.is_authenticated(),
    }


# Authentication endpoints
@app.post("/auth/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest):
    """Login and reconcile the cart with the user's saved cart."""
    try:
        await get_storefront(request).login(AuthCredentials(email=body.email, password=body.password))
        return LoginResponse(success=True, message=f"Successfully logged in as {body.email}")
    except AuthenticationError:
        return LoginResponse(success=False, message="Login failed. Check your credentials.")
    except StorefrontError as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise to_http_error(e)


@app.post("/auth/logout")
async def logout(request: Request):
    get_storefront(request).logout()
    return {"success": True, "message": "Successfully logged out"}


@app.get("/auth/status")
async def auth_status(request: Request):
    """Get authentication status."""
    user = get_storefront(request).auth.current_user()
    return {
        "authenticated": user is not None,
        "email": user.email if user else None,
    }


# Product endpoints
@app.get("/products")
async def list_products(request: Request, q: Optional[str] = None):
    """List the catalog, optionally filtered by a search term."""
    storefront = get_storefront(request)
    try:
        products = await storefront.catalog.search_products(q) if q else await storefront.catalog.list_products()
    except RecordStoreError as e:
        logger.error(f"Catalog error: {e}")
        products = []
    return {"count": len(products), "products": [p.model_dump(mode="json") for p in products]}


# Cart endpoints
@app.get("/cart")
async def get_cart(request: Request):
    """Get current shopping cart with its summary."""
    storefront = get_storefront(request)
    return {
        "cart": storefront.cart.snapshot().model_dump(mode="json"),
        "summary": storefront.checkout.summary().model_dump(mode="json"),
        "is_loading": storefront.cart.is_loading(),
    }


@app.post("/cart/add")
async def add_to_cart(request: Request, body: AddToCartRequest):
    """Add a product to the cart."""
    try:
        product = await get_storefront(request).add_to_cart(body.product_id, body.quantity)
    except RecordStoreError as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail=f"Product {body.product_id} not found")
        raise to_http_error(e)
    except StorefrontError as e:
        raise to_http_error(e)
    return {"success": True, "message": f"Added {product.name} to cart (quantity: {body.quantity})"}


@app.post("/cart/update")
async def update_cart(request: Request, body: UpdateCartRequest):
    """Set a product's quantity. Zero or less removes it."""
    cart = get_storefront(request).cart
    if not cart.contains(body.product_id):
        return {"success": False, "message": f"Product {body.product_id} is not in the cart"}
    cart.set_quantity(body.product_id, body.quantity)
    return {"success": True, "message": f"Updated product {body.product_id} to quantity {body.quantity}"}


@app.post("/cart/remove")
async def remove_from_cart(request: Request, body: RemoveFromCartRequest):
    get_storefront(request).cart.remove_line(body.product_id)
    return {"success": True, "message": f"Removed product {body.product_id} from cart"}


@app.post("/cart/clear")
async def clear_cart(request: Request):
    get_storefront(request).cart.clear()
    return {"success": True}


# Checkout endpoints
def checkout_state(storefront: Storefront) -> dict:
    checkout = storefront.checkout
    address = checkout.shipping_address()
    payment = checkout.payment_method()
    order = checkout.last_order()
    return {
        "step": int(checkout.current_step),
        "shipping_address": address.model_dump(mode="json") if address else None,
        "payment_method": payment.model_dump(mode="json") if payment else None,
        "processing": checkout.processing(),
        "can_proceed": {str(step): checkout.can_proceed_to_step(step) for step in (2, 3, 4)},
        "summary": checkout.summary().model_dump(mode="json"),
        "last_order": order.model_dump(mode="json") if order else None,
    }


@app.get("/checkout")
async def get_checkout(request: Request):
    return checkout_state(get_storefront(request))


@app.post("/checkout/step")
async def go_to_step(request: Request, body: StepRequest):
    """Move to a checkout step, refusing forward moves whose preconditions fail."""
    storefront = get_storefront(request)
    checkout = storefront.checkout
    if body.step > checkout.current_step and not checkout.can_proceed_to_step(body.step):
        raise HTTPException(status_code=400, detail=f"Cannot proceed to step {body.step}")
    if not checkout.go_to_step(body.step):
        raise HTTPException(status_code=409, detail=f"Cannot go to step {body.step}")
    return checkout_state(storefront)


@app.post("/checkout/address")
async def select_address(request: Request, body: SelectRequest):
    storefront = get_storefront(request)
    address = storefront.repository.addresses.find(body.id)
    if address is None:
        raise HTTPException(status_code=404, detail=f"Address {body.id} not found")
    storefront.checkout.set_shipping_address(address)
    return checkout_state(storefront)


@app.post("/checkout/payment")
async def select_payment(request: Request, body: SelectRequest):
    storefront = get_storefront(request)
    method = storefront.repository.payment_methods.find(body.id)
    if method is None:
        raise HTTPException(status_code=404, detail=f"Payment method {body.id} not found")
    storefront.checkout.set_payment_method(method)
    return checkout_state(storefront)


@app.post("/checkout/reset")
async def reset_checkout(request: Request):
    storefront = get_storefront(request)
    storefront.checkout.reset()
    return checkout_state(storefront)


@app.post("/checkout/order")
async def place_order(request: Request):
    """Place the order. Failed submissions leave cart and checkout untouched."""
    try:
        order = await get_storefront(request).submission.submit()
    except StorefrontError as e:
        logger.error(f"Place order error: {e}")
        raise to_http_error(e)
    return order.model_dump(mode="json")


# Address and payment method endpoints
@app.get("/addresses")
async def list_addresses(request: Request):
    addresses = await get_storefront(request).repository.refresh_addresses()
    return [a.model_dump(mode="json") for a in addresses]


@app.post("/addresses")
async def add_address(request: Request, body: ShippingAddress):
    try:
        saved = await get_storefront(request).repository.add_address(body)
    except StorefrontError as e:
        raise to_http_error(e)
    return saved.model_dump(mode="json")


@app.patch("/addresses/{address_id}")
async def update_address(request: Request, address_id: str, body: dict):
    try:
        saved = await get_storefront(request).repository.update_address(address_id, body)
    except StorefrontError as e:
        raise to_http_error(e)
    return saved.model_dump(mode="json")


@app.delete("/addresses/{address_id}")
async def remove_address(request: Request, address_id: str):
    try:
        await get_storefront(request).repository.remove_address(address_id)
    except StorefrontError as e:
        raise to_http_error(e)
    return {"success": True}


@app.get("/payment-methods")
async def list_payment_methods(request: Request):
    methods = await get_storefront(request).repository.refresh_payment_methods()
    return [m.model_dump(mode="json") for m in methods]


@app.post("/payment-methods")
async def add_payment_method(request: Request, body: PaymentMethod):
    try:
        saved = await get_storefront(request).repository.add_payment_method(body)
    except StorefrontError as e:
        raise to_http_error(e)
    return saved.model_dump(mode="json")


@app.patch("/payment-methods/{payment_id}")
async def update_payment_method(request: Request, payment_id: str, body: dict):
    try:
        saved = await get_storefront(request).repository.update_payment_method(payment_id, body)
    except StorefrontError as e:
        raise to_http_error(e)
    return saved.model_dump(mode="json")


@app.delete("/payment-methods/{payment_id}")
async def remove_payment_method(request: Request, payment_id: str):
    try:
        await get_storefront(request).repository.remove_payment_method(payment_id)
    except StorefrontError as e:
        raise to_http_error(e)
    return {"success": True}


# Order endpoints
@app.get("/orders")
async def get_orders(request: Request):
    """Get user's orders."""
    storefront = get_storefront(request)
    if not storefront.auth.is_authenticated():
        raise HTTPException(status_code=401, detail="Not authenticated")
    orders = await storefront.orders.list_orders()
    return {"count": len(orders), "orders": [o.model_dump(mode="json") for o in orders]}


@app.get("/orders/{order_id}")
async def get_order_details(request: Request, order_id: str):
    """Get detailed information for a specific order."""
    try:
        order = await get_storefront(request).orders.get_order(order_id)
    except StorefrontError as e:
        raise to_http_error(e)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order.model_dump(mode="json")


@app.post("/orders/{order_id}/cancel")
async def cancel_order(request: Request, order_id: str):
    try:
        order = await get_storefront(request).orders.cancel_order(order_id)
    except StorefrontError as e:
        raise to_http_error(e)
    return order.model_dump(mode="json")


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable hot reloading (default: False)
    """
    import uvicorn

    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        # Hot reloading - watches for file changes
        uvicorn.run(
            "storefront_server.http_server:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["storefront_server"],
            log_level="info",
        )
    else:
        uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server(reload=True)
