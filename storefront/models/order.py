"""Order domain models and checkout API schemas."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from storefront.models.product import SizeValue, normalize_size


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class PaymentMethod(str, Enum):
    ONLINE = "online"
    CASH_ON_DELIVERY = "cash-on-delivery"


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    state: str | None = None
    phone: str | None = None


class OrderItem(BaseModel):
    """Purchase-time snapshot of a line; later catalog edits never touch it."""

    product_id: str
    name: str
    image: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    size: SizeValue

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class PaymentResult(BaseModel):
    id: str
    gateway_order_id: str | None = None
    status: str = "captured"
    update_time: datetime | None = None
    email_address: str | None = None


class Customer(BaseModel):
    email: str | None = None
    name: str | None = None


class PriceBreakdown(BaseModel):
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float


class Order(BaseModel):
    """Order document. Only status, delivery and payment fields change after creation."""

    id: str
    order_number: str
    user_id: str
    customer: Customer = Field(default_factory=Customer)
    order_items: list[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float
    status: OrderStatus = OrderStatus.PENDING
    is_paid: bool = False
    paid_at: datetime | None = None
    payment_result: PaymentResult | None = None
    is_delivered: bool = False
    delivered_at: datetime | None = None
    tracking_number: str | None = None
    stock_reserved: bool = False
    reserved_lines: list[int] = Field(default_factory=list)
    cancelled_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Order:
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


class CheckoutItem(BaseModel):
    """Requested line. ``price`` and ``name`` are client hints and never persisted."""

    product_id: str = Field(..., min_length=1)
    size: SizeValue
    quantity: int = Field(..., ge=1)
    price: float | None = Field(None, ge=0)
    name: str | None = None

    @field_validator("size", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> SizeValue:
        return normalize_size(value)


class PaymentConfirmation(BaseModel):
    """Fields returned by the payment gateway after a successful capture."""

    gateway_order_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
    email_address: str | None = None


class CheckoutRequest(BaseModel):
    order_items: list[CheckoutItem] | None = None
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    payment: PaymentConfirmation | None = None
    items_price: float | None = None
    tax_price: float | None = None
    shipping_price: float | None = None
    total_price: float | None = None

    @model_validator(mode="after")
    def _require_payment_for_online(self) -> CheckoutRequest:
        if self.payment_method is PaymentMethod.ONLINE and self.payment is None:
            raise ValueError("Payment confirmation is required for online payments")
        return self

    @property
    def client_breakdown(self) -> PriceBreakdown | None:
        values = (self.items_price, self.tax_price, self.shipping_price, self.total_price)
        if any(value is None for value in values):
            return None
        return PriceBreakdown(
            items_price=self.items_price,
            tax_price=self.tax_price,
            shipping_price=self.shipping_price,
            total_price=self.total_price,
        )


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    tracking_number: str | None = None
