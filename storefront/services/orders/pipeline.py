"""Checkout, stock reservation and order status transitions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from storefront.config import settings
from storefront.errors import (
    InsufficientStockError,
    NotAuthorizedError,
    OrderNotFoundError,
    OrderStateError,
    ProductNotFoundError,
    ProductUnavailableError,
    RequestValidationFailed,
)
from storefront.models.identity import Identity
from storefront.models.invoice import InvoiceJob
from storefront.models.order import (
    CANCELLABLE_STATUSES,
    TERMINAL_STATUSES,
    CheckoutRequest,
    Order,
    OrderItem,
    OrderStatus,
    PaymentConfirmation,
    PaymentMethod,
    PaymentResult,
    PriceBreakdown,
)
from storefront.models.product import SizeValue
from storefront.services.cart.cart_service import CartService
from storefront.services.catalog.catalog_service import CatalogService
from storefront.services.catalog.product_store import ProductStore
from storefront.services.orders.order_store import OrderStore, generate_order_number
from storefront.services.orders.pricing import breakdown_mismatch, compute_breakdown
from storefront.services.orders.signature import verify_payment_signature
from storefront.services.queue.invoice_queue import InvoiceQueue

logger = logging.getLogger(__name__)


@dataclass
class RequestedLine:
    product_id: str
    size: SizeValue
    quantity: int


def merge_requested_lines(lines: Iterable[RequestedLine]) -> list[RequestedLine]:
    """Sum quantities of lines that name the same (product, size)."""
    merged: dict[tuple[str, SizeValue], RequestedLine] = {}
    for line in lines:
        key = (line.product_id, line.size)
        if key in merged:
            merged[key].quantity += line.quantity
        else:
            merged[key] = RequestedLine(line.product_id, line.size, line.quantity)
    return list(merged.values())


class OrderPipeline:
    """Turns a checkout request into an order with stock reserved.

    Steps before the stock reservation have no side effects. Reservation and
    order insertion are compensated together: if either fails, every unit
    reserved so far is released before the error propagates. Cache
    invalidation, cart reset and invoice dispatch run after the order exists
    and are individually idempotent; their failures are logged, not raised.
    """

    def __init__(
        self,
        *,
        products: ProductStore,
        orders: OrderStore,
        carts: CartService,
        catalog: CatalogService | None = None,
        invoice_queue: InvoiceQueue | None = None,
        payment_secret: str | None = None,
        enqueue_timeout: float | None = None,
    ) -> None:
        self.products = products
        self.orders = orders
        self.carts = carts
        self.catalog = catalog
        self.invoice_queue = invoice_queue
        self.payment_secret = payment_secret
        self.enqueue_timeout = (
            settings.INVOICE_ENQUEUE_TIMEOUT_SECONDS
            if enqueue_timeout is None
            else enqueue_timeout
        )

    async def place_order(self, identity: Identity, request: CheckoutRequest) -> Order:
        paid = request.payment_method is PaymentMethod.ONLINE
        if paid:
            verify_payment_signature(request.payment, self.payment_secret)

        requested = await self._requested_lines(identity.user_id, request)
        items = await self._snapshot(requested)

        breakdown = compute_breakdown(items)
        mismatched = breakdown_mismatch(breakdown, request.client_breakdown)
        if mismatched:
            logger.warning(
                "Ignoring client-supplied totals that differ from server pricing",
                extra={"user_id": identity.user_id, "fields": mismatched},
            )

        await self._reserve_all(items)

        now = datetime.now(UTC)
        document = self._order_document(identity, request, items, breakdown, now)
        try:
            order = await self.orders.insert(document)
        except Exception:
            logger.exception(
                "Order insert failed, releasing reserved stock",
                extra={"user_id": identity.user_id},
            )
            await self._release_all(items)
            raise

        logger.info(
            "Order placed",
            extra={
                "order_id": order.id,
                "order_number": order.order_number,
                "user_id": identity.user_id,
                "status": order.status.value,
                "total_price": order.total_price,
            },
        )

        await self._invalidate_catalog()
        await self._clear_cart(identity.user_id)
        await self._dispatch_invoice(order)
        return order

    async def cancel_order(self, identity: Identity, order_id: str) -> Order:
        order = await self._load_order(identity, order_id, allow_staff=False)
        return await self._cancel(order)

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        tracking_number: str | None = None,
    ) -> Order:
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if status is OrderStatus.CANCELLED:
            return await self._cancel(order)
        if order.status in TERMINAL_STATUSES and status is not order.status:
            raise OrderStateError(
                f"Cannot move a {order.status.value} order to {status.value}",
                order_id=order.id,
                status=order.status.value,
            )

        changes: dict[str, Any] = {"status": status}
        if tracking_number:
            changes["tracking_number"] = tracking_number
        if status is OrderStatus.DELIVERED and not order.is_delivered:
            changes["is_delivered"] = True
            changes["delivered_at"] = datetime.now(UTC)

        updated = await self.orders.transition(order.id, [order.status], changes)
        if updated is None:
            raise OrderStateError(
                "Order was modified concurrently, retry the update",
                order_id=order.id,
            )
        logger.info(
            "Order status updated",
            extra={
                "order_id": order.id,
                "from_status": order.status.value,
                "to_status": status.value,
            },
        )
        return updated

    async def mark_paid(
        self, identity: Identity, order_id: str, confirmation: PaymentConfirmation
    ) -> Order:
        order = await self._load_order(identity, order_id, allow_staff=False)
        if order.is_paid:
            return order
        if order.status is OrderStatus.CANCELLED:
            raise OrderStateError(
                "Cannot pay for a cancelled order", order_id=order.id, status="cancelled"
            )

        verify_payment_signature(confirmation, self.payment_secret)

        now = datetime.now(UTC)
        changes: dict[str, Any] = {
            "is_paid": True,
            "paid_at": now,
            "payment_result": PaymentResult(
                id=confirmation.payment_id,
                gateway_order_id=confirmation.gateway_order_id,
                update_time=now,
                email_address=confirmation.email_address or identity.email,
            ),
        }
        if order.status is OrderStatus.PENDING:
            changes["status"] = OrderStatus.PROCESSING

        updated = await self.orders.transition(
            order.id, [order.status], changes, guard={"is_paid": False}
        )
        if updated is None:
            current = await self.orders.get(order.id)
            if current is not None and current.is_paid:
                return current
            raise OrderStateError(
                "Order was modified concurrently, retry the payment update",
                order_id=order.id,
            )
        logger.info("Order marked paid", extra={"order_id": order.id})
        return updated

    async def get_order(self, identity: Identity, order_id: str) -> Order:
        return await self._load_order(identity, order_id, allow_staff=True)

    async def list_user_orders(
        self, identity: Identity, page: int = 1, limit: int = 10
    ) -> tuple[list[Order], int]:
        return await self.orders.list_for_user(identity.user_id, page, limit)

    async def list_orders(self, **filters: Any) -> tuple[list[Order], int]:
        return await self.orders.list_all(**filters)

    async def _cancel(self, order: Order) -> Order:
        if order.status is OrderStatus.CANCELLED:
            # a previous cancel may have died before restoring stock
            await self._restore_stock(order)
            return order
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderStateError(
                "Cannot cancel shipped or delivered orders",
                order_id=order.id,
                status=order.status.value,
            )

        updated = await self.orders.transition(
            order.id,
            CANCELLABLE_STATUSES,
            {"status": OrderStatus.CANCELLED, "cancelled_at": datetime.now(UTC)},
        )
        if updated is None:
            current = await self.orders.get(order.id)
            if current is None:
                raise OrderNotFoundError(order.id)
            if current.status is not OrderStatus.CANCELLED:
                raise OrderStateError(
                    "Cannot cancel shipped or delivered orders",
                    order_id=order.id,
                    status=current.status.value,
                )
            updated = current

        if await self._restore_stock(updated):
            updated.stock_reserved = False
            updated.reserved_lines = []
        logger.info("Order cancelled", extra={"order_id": order.id})
        return updated

    async def _restore_stock(self, order: Order) -> bool:
        """Release each reserved line at most once across all callers.

        A line whose release fails goes back on the order, so cancelling again
        finishes the restore.
        """
        if not order.reserved_lines:
            return False

        failures: list[Exception] = []
        released = 0
        for line in order.reserved_lines:
            if not 0 <= line < len(order.order_items):
                continue
            if not await self.orders.claim_line_restore(order.id, line):
                continue
            item = order.order_items[line]
            try:
                await self.products.release_stock(item.product_id, item.size, item.quantity)
            except Exception as exc:
                logger.error(
                    "Failed to restore stock for cancelled order",
                    extra={
                        "order_id": order.id,
                        "product_id": item.product_id,
                        "size": item.size,
                        "quantity": item.quantity,
                    },
                    exc_info=True,
                )
                await self.orders.return_line_reservation(order.id, line)
                failures.append(exc)
                continue
            released += 1

        if released:
            await self._invalidate_catalog()
        if failures:
            raise failures[0]
        await self.orders.finish_stock_restore(order.id)
        return True

    async def _load_order(
        self, identity: Identity, order_id: str, *, allow_staff: bool
    ) -> Order:
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.user_id != identity.user_id and not (allow_staff and identity.is_staff):
            raise NotAuthorizedError(
                "Not authorized to access this order", order_id=order_id
            )
        return order

    async def _requested_lines(
        self, user_id: str, request: CheckoutRequest
    ) -> list[RequestedLine]:
        if request.order_items:
            lines = [
                RequestedLine(item.product_id, item.size, item.quantity)
                for item in request.order_items
            ]
        else:
            cart = await self.carts.load(user_id)
            lines = [
                RequestedLine(line.product_id, line.size, line.quantity)
                for line in cart.items
            ]
        if not lines:
            raise RequestValidationFailed("No items to order")
        return merge_requested_lines(lines)

    async def _snapshot(self, requested: list[RequestedLine]) -> list[OrderItem]:
        """Validate every line against the store and capture purchase-time data."""
        products = await self.products.get_many(line.product_id for line in requested)
        items: list[OrderItem] = []
        for line in requested:
            product = products.get(line.product_id)
            if product is None:
                raise ProductNotFoundError(line.product_id)
            if not product.active:
                raise ProductUnavailableError(product.id, product.name)
            available = product.stock_for(line.size)
            if available is None:
                raise ProductUnavailableError(product.id, product.name, line.size)
            if available < line.quantity:
                raise InsufficientStockError(
                    product.id, line.size, line.quantity, available, product.name
                )
            items.append(
                OrderItem(
                    product_id=product.id,
                    name=product.name,
                    image=product.representative_image,
                    price=product.effective_price,
                    quantity=line.quantity,
                    size=line.size,
                )
            )
        return items

    async def _reserve_all(self, items: list[OrderItem]) -> None:
        reserved: list[OrderItem] = []
        for item in items:
            try:
                ok = await self.products.reserve_stock(
                    item.product_id, item.size, item.quantity
                )
            except Exception:
                logger.exception(
                    "Stock reservation failed, releasing earlier lines",
                    extra={"product_id": item.product_id, "size": item.size},
                )
                await self._release_all(reserved)
                raise
            if not ok:
                await self._release_all(reserved)
                logger.info(
                    "Stock reservation lost to a concurrent checkout",
                    extra={"product_id": item.product_id, "size": item.size},
                )
                raise InsufficientStockError(
                    item.product_id, item.size, item.quantity, name=item.name
                )
            reserved.append(item)

    async def _release_all(self, items: list[OrderItem]) -> None:
        for item in items:
            try:
                await self.products.release_stock(item.product_id, item.size, item.quantity)
            except Exception:
                logger.error(
                    "Compensating stock release failed",
                    extra={
                        "product_id": item.product_id,
                        "size": item.size,
                        "quantity": item.quantity,
                    },
                    exc_info=True,
                )

    async def _invalidate_catalog(self) -> None:
        if self.catalog is not None:
            await self.catalog.invalidate()

    async def _clear_cart(self, user_id: str) -> None:
        try:
            await self.carts.clear_for_user(user_id)
        except Exception as exc:
            logger.error(
                "Failed to clear cart after order, client can retry: %s",
                exc,
                extra={"user_id": user_id},
                exc_info=True,
            )

    async def _dispatch_invoice(self, order: Order) -> None:
        if self.invoice_queue is None:
            logger.warning(
                "Invoice queue not configured, skipping invoice for order %s", order.id
            )
            return
        try:
            await asyncio.wait_for(
                self.invoice_queue.enqueue(InvoiceJob(order_id=order.id)),
                timeout=self.enqueue_timeout,
            )
        except Exception as exc:
            logger.warning(
                "Failed to enqueue invoice for order %s, but checkout continues: %s",
                order.id,
                exc,
            )

    @staticmethod
    def _order_document(
        identity: Identity,
        request: CheckoutRequest,
        items: list[OrderItem],
        breakdown: PriceBreakdown,
        now: datetime,
    ) -> dict[str, Any]:
        paid = request.payment_method is PaymentMethod.ONLINE
        payment_result = None
        if paid and request.payment is not None:
            payment_result = PaymentResult(
                id=request.payment.payment_id,
                gateway_order_id=request.payment.gateway_order_id,
                update_time=now,
                email_address=request.payment.email_address or identity.email,
            ).model_dump()
        return {
            "order_number": generate_order_number(now),
            "user_id": identity.user_id,
            "customer": {"email": identity.email, "name": identity.name},
            "order_items": [item.model_dump() for item in items],
            "shipping_address": request.shipping_address.model_dump(),
            "payment_method": request.payment_method.value,
            **breakdown.model_dump(),
            "status": (OrderStatus.PROCESSING if paid else OrderStatus.PENDING).value,
            "is_paid": paid,
            "paid_at": now if paid else None,
            "payment_result": payment_result,
            "is_delivered": False,
            "delivered_at": None,
            "tracking_number": None,
            "stock_reserved": True,
            "reserved_lines": list(range(len(items))),
            "cancelled_at": None,
            "created_at": now,
            "updated_at": now,
        }
