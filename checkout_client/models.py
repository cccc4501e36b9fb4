"""
models.py — Data Models for the Checkout Workflow

This module defines the data structures exchanged during checkout.
It uses Pydantic models to ensure type safety and validation of the cart
snapshot, the shipping form, and the payloads sent to the shop backend.

Models:
    - CartLine: A single product entry in the cart.
    - CartSnapshot: Read-only view of cart lines and the authenticated user.
    - ShippingInfo: Shipping details entered on the checkout form.
    - CardPayment / CashOnDelivery: The payment selection variant.
    - OrderLine / OrderRequest: The order-creation payload.
    - PaymentIntentResponse, ProviderResult: Payment handle and provider answer.
    - CheckoutAttempt: State of one checkout attempt.
    - OrderHistoryEntry: An order returned by the "my orders" endpoint.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .pricing import order_total, to_cents, to_major_units


class CartLine(BaseModel):
    """
    Represents a single product line in the cart.

    Attributes:
        productId (str): Backend product identifier.
        name (str): Display name of the product.
        price (Decimal): Unit price in major currency units, rounded to whole cents.
        quantity (int): Number of units. Must be greater than zero.
    """
    model_config = ConfigDict(frozen=True)

    productId: str
    name: str
    price: Decimal
    quantity: int = Field(..., gt=0)

    @field_validator("price")
    @classmethod
    def round_price(cls, price: Decimal) -> Decimal:
        # Zeilen und Summe rechnen mit denselben Cent-Beträgen
        return to_cents(price)


class CartSnapshot(BaseModel):
    """
    Read-only snapshot of the client-side cart and auth state, taken when
    checkout starts.

    Attributes:
        lines (Tuple[CartLine, ...]): Cart lines at checkout start.
        token (str | None): Bearer token of the logged-in user.
        user (dict | None): Profile of the logged-in user, if any.
    """
    model_config = ConfigDict(frozen=True)

    lines: Tuple[CartLine, ...] = ()
    token: Optional[str] = None
    user: Optional[dict] = None

    @classmethod
    def from_state(cls, cart_items: list, auth: Optional[dict] = None) -> "CartSnapshot":
        """
        Builds a snapshot from raw cart and auth state.

        Cart items coming from the product catalogue carry the backend
        document id as `_id`; it is used when `productId` is missing.

        Args:
            cart_items (list[dict]): Raw cart items ('productId' or '_id', 'name', 'price', 'quantity').
            auth (dict | None): Auth state with 'user' and/or 'token'.

        Returns:
            CartSnapshot: The frozen snapshot.
        """
        auth = auth or {}
        user = auth.get("user")
        token = auth.get("token") or (user or {}).get("token")
        lines = tuple(
            CartLine(
                productId=str(item.get("productId") or item["_id"]),
                name=item["name"],
                price=Decimal(str(item["price"])),
                quantity=item["quantity"],
            )
            for item in cart_items
        )
        return cls(lines=lines, token=token, user=user)

    @property
    def total(self) -> Decimal:
        return order_total(self.lines)


class ShippingInfo(BaseModel):
    """
    Shipping details entered on the checkout form.

    All four fields must be filled before any payment path may proceed.
    """
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""

    def billing_details(self) -> dict:
        """Billing details handed to the payment provider."""
        return {"name": self.name, "email": self.email, "phone": self.phone}


class CardPayment(BaseModel):
    """
    Hosted card payment.

    Attributes:
        card (str): Provider card reference (e.g. a Stripe card token like 'tok_visa').
    """
    kind: Literal["card"] = "card"
    card: str


class CashOnDelivery(BaseModel):
    """Settlement happens at delivery; the order is recorded as pending."""
    kind: Literal["cod"] = "cod"


PaymentSelection = Annotated[Union[CardPayment, CashOnDelivery], Field(discriminator="kind")]


class PaymentMethod(str, Enum):
    STRIPE = "Stripe"
    COD = "COD"


class PaymentStatus(str, Enum):
    PAID = "Paid"
    PENDING = "Pending"


class OrderLine(BaseModel):
    """A cart line re-keyed for the order-creation payload."""
    model_config = ConfigDict(frozen=True)

    productId: str
    name: str
    quantity: int
    price: Decimal

    @field_serializer("price")
    def serialize_price(self, price: Decimal) -> float:
        return to_major_units(price)


class OrderRequest(BaseModel):
    """
    Order-creation payload sent to `POST /api/orders`.

    Attributes:
        cartItems (List[OrderLine]): Ordered products.
        shippingInfo (ShippingInfo): Shipping details.
        total (Decimal): Sum of price × quantity, in major currency units.
        paymentMethod (PaymentMethod): 'Stripe' or 'COD'.
        paymentStatus (PaymentStatus): 'Paid' or 'Pending'.
    """
    model_config = ConfigDict(frozen=True)

    cartItems: Tuple[OrderLine, ...]
    shippingInfo: ShippingInfo
    total: Decimal
    paymentMethod: PaymentMethod
    paymentStatus: PaymentStatus

    @field_serializer("total")
    def serialize_total(self, total: Decimal) -> float:
        return to_major_units(total)

    @classmethod
    def build(
            cls,
            snapshot: CartSnapshot,
            shipping_info: ShippingInfo,
            payment_method: PaymentMethod,
            payment_status: PaymentStatus,
    ) -> "OrderRequest":
        """Composes the order payload from the cart snapshot and the form state."""
        return cls(
            cartItems=tuple(
                OrderLine(productId=line.productId, name=line.name, quantity=line.quantity, price=line.price)
                for line in snapshot.lines
            ),
            shippingInfo=shipping_info.model_copy(),
            total=snapshot.total,
            paymentMethod=payment_method,
            paymentStatus=payment_status,
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")


class PaymentIntentResponse(BaseModel):
    clientSecret: str


class ProviderErrorInfo(BaseModel):
    message: str
    code: Optional[str] = None


class PaymentIntentInfo(BaseModel):
    id: Optional[str] = None
    status: str


class ProviderResult(BaseModel):
    """
    Result of a card confirmation: either an error or a payment intent.
    """
    error: Optional[ProviderErrorInfo] = None
    paymentIntent: Optional[PaymentIntentInfo] = None


class CheckoutState(str, Enum):
    IDLE = "Idle"
    VALIDATING = "Validating"
    CARD_FLOW = "CardFlow"
    COD_FLOW = "CODFlow"
    COMPLETED = "Completed"
    FAILED = "Failed"


TERMINAL_STATES = (CheckoutState.COMPLETED, CheckoutState.FAILED)


class CheckoutAttempt(BaseModel):
    """
    State of one checkout attempt, threaded through every step.

    Attributes:
        attemptId (str): Unique identifier used in log lines.
        paymentMethod (PaymentMethod | None): Branch chosen when the attempt started.
        state (CheckoutState): Current state.
        visited (List[CheckoutState]): All states entered, in order.
        paymentStatus (PaymentStatus | None): Set once the payment outcome is known.
        error (str | None): User-facing message when the attempt failed.
    """
    attemptId: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    paymentMethod: Optional[PaymentMethod] = None
    state: CheckoutState = CheckoutState.IDLE
    visited: List[CheckoutState] = Field(default_factory=lambda: [CheckoutState.IDLE])
    paymentStatus: Optional[PaymentStatus] = None
    error: Optional[str] = None

    def advance(self, state: CheckoutState):
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Attempt {self.attemptId} already finished in state {self.state.value}")
        self.state = state
        self.visited.append(state)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class OrderHistoryItem(BaseModel):
    name: str
    quantity: int
    price: Decimal


class OrderHistoryEntry(BaseModel):
    """
    An order as returned by `GET /api/orders/my-orders`.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    items: List[OrderHistoryItem] = []
    total: Decimal
    paymentMethod: str
    status: Optional[str] = None
    createdAt: Optional[datetime] = None
