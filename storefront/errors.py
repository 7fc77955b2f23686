"""Custom exceptions for the storefront service."""

from __future__ import annotations

from typing import Any


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)


class RequestValidationFailed(StorefrontError):
    """Raised when a request is well-formed JSON but semantically invalid."""


class AuthenticationRequired(StorefrontError):
    """Raised when no user identity accompanies the request."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotAuthorizedError(StorefrontError):
    """Raised when a user touches another user's resource or an admin operation."""


class PaymentVerificationError(StorefrontError):
    """Raised when the payment gateway signature does not match."""

    def __init__(self, message: str = "Payment rejected: signature mismatch", **context):
        super().__init__(message, **context)


class ProductNotFoundError(StorefrontError):
    """Raised when a product id does not resolve to a document."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}", product_id=product_id)


class ProductUnavailableError(StorefrontError):
    """Raised when a product is inactive or does not offer the requested size."""

    def __init__(self, product_id: str, name: str | None = None, size=None):
        self.product_id = product_id
        self.size = size
        label = name or product_id
        if size is None:
            msg = f"Product {label} is not available"
        else:
            msg = f"Product {label} is not available in size {size}"
        super().__init__(msg, product_id=product_id, size=size)


class InsufficientStockError(StorefrontError):
    """Raised when a size does not have enough stock for the requested quantity."""

    def __init__(
        self,
        product_id: str,
        size,
        requested: int,
        available: int | None = None,
        name: str | None = None,
    ):
        self.product_id = product_id
        self.size = size
        self.requested = requested
        self.available = available
        label = name or product_id
        super().__init__(
            f"Out of stock for size {size} of {label}",
            product_id=product_id,
            size=size,
            requested=requested,
            available=available,
        )


class OrderNotFoundError(StorefrontError):
    """Raised when an order id does not resolve to a document."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found", order_id=order_id)


class CartLineNotFoundError(StorefrontError):
    """Raised when a cart line cannot be located."""

    def __init__(self, message: str = "Item not found in cart"):
        super().__init__(message)


class OrderStateError(StorefrontError):
    """Raised when an order status transition is not allowed."""

    def __init__(self, message: str, order_id: str | None = None, status=None):
        super().__init__(message, order_id=order_id, status=status)


ERROR_STATUS_CODES: dict[type[StorefrontError], int] = {
    RequestValidationFailed: 400,
    AuthenticationRequired: 401,
    NotAuthorizedError: 403,
    PaymentVerificationError: 400,
    ProductNotFoundError: 404,
    ProductUnavailableError: 400,
    InsufficientStockError: 400,
    OrderNotFoundError: 404,
    CartLineNotFoundError: 404,
    OrderStateError: 400,
}
