"""Data models for storefront entities."""

from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    """Base for records exchanged with the record store (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    def to_record(self, exclude: Optional[set[str]] = None) -> dict:
        """Serialize to the record store's JSON shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude=exclude)


class Product(RecordModel):
    """Represents a catalog product. Read-only to the storefront core."""

    id: str = Field(description="Product ID")
    name: str = Field(description="Display name")
    price: Decimal = Field(ge=0, description="Unit price")
    image_url: Optional[str] = Field(None, description="Product image URL")
    category: Optional[str] = Field(None, description="Product category")
    stock: int = Field(default=0, description="Units in stock")
    description: Optional[str] = Field(None, description="Product description")


class CartLine(RecordModel):
    """One product-and-quantity entry in the cart."""

    model_config = ConfigDict(frozen=True)

    product: Product
    quantity: int = Field(ge=1, description="Quantity of the product")

    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity


class ServerCartItem(RecordModel):
    """A line as stored inside a remote cart document."""

    product_id: str
    quantity: int = Field(ge=1)


class CartDocument(RecordModel):
    """Remote cart persistence unit, one per authenticated identity."""

    id: Optional[str] = None
    owner_id: str
    items: list[ServerCartItem] = Field(default_factory=list)


class Cart(BaseModel):
    """Read model of the shopping cart handed to the surfaces."""

    items: list[CartLine] = Field(default_factory=list, description="Cart lines")
    total: Decimal = Field(default=Decimal("0"), description="Total cart value")
    item_count: int = Field(default=0, description="Total number of items")


class ShippingAddress(RecordModel):
    """A saved shipping address."""

    id: Optional[str] = Field(None, description="Assigned by the store on create")
    owner_id: Optional[str] = None
    first_name: str
    last_name: str
    street: str
    city: str
    region: str
    postal_code: str
    country: str
    phone: Optional[str] = None

    def display(self) -> str:
        """Flattened single-line form stored on orders."""
        return f"{self.street}, {self.city}, {self.region} {self.postal_code}"


class PaymentKind(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"


class PaymentMethod(RecordModel):
    """A saved payment method. Card kinds carry card fields, wallet kinds an email."""

    id: Optional[str] = Field(None, description="Assigned by the store on create")
    owner_id: Optional[str] = None
    kind: str = Field(default=PaymentKind.CREDIT_CARD.value, description="credit_card, debit_card, paypal, ...")
    cardholder_name: Optional[str] = None
    last4: Optional[str] = None
    brand: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    email: Optional[str] = None
    is_default: bool = False

    @property
    def is_card(self) -> bool:
        return self.kind in (PaymentKind.CREDIT_CARD.value, PaymentKind.DEBIT_CARD.value)

    @property
    def label(self) -> str:
        labels = {
            PaymentKind.CREDIT_CARD.value: "Credit Card",
            PaymentKind.DEBIT_CARD.value: "Debit Card",
            PaymentKind.PAYPAL.value: "PayPal",
        }
        return labels.get(self.kind, self.kind)


class CheckoutSummary(BaseModel):
    """Monetary totals derived from cart contents."""

    subtotal: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    item_count: int = 0


class CheckoutStep(IntEnum):
    SHIPPING = 1
    PAYMENT = 2
    REVIEW = 3
    SUCCESS = 4


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FULFILLED = "fulfilled"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderItem(RecordModel):
    """Snapshot of a cart line frozen at submission time."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    quantity: int = Field(ge=1)
    price: Decimal
    image_url: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class Order(RecordModel):
    """A placed order."""

    id: Optional[str] = Field(None, description="Assigned by the store on create")
    owner_id: str
    items: list[OrderItem] = Field(default_factory=list)
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    status: OrderStatus = OrderStatus.PENDING
    order_date: datetime
    shipping_address: str
    payment_method_kind: str
    tracking_number: str


class User(RecordModel):
    """An authenticated identity as kept by the storefront."""

    id: str
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class SessionData(BaseModel):
    """Persisted identity data."""

    user: Optional[User] = Field(None, description="Current identity")
    is_authenticated: bool = Field(default=False, description="Authentication status")
