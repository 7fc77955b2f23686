"""Checkout and order management routes."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Query, status

from storefront.api.dependencies import (
    IdentityDependency,
    PipelineDependency,
    StaffDependency,
)
from storefront.models.order import (
    CheckoutRequest,
    Order,
    OrderStatus,
    PaymentConfirmation,
    StatusUpdateRequest,
)

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_body(order: Order, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["order"] = order.model_dump(mode="json")
    return body


def _page_body(orders: list[Order], total: int, page: int, limit: int) -> dict[str, Any]:
    return {
        "success": True,
        "orders": [order.model_dump(mode="json") for order in orders],
        "pagination": {
            "current": page,
            "pages": math.ceil(total / limit) if total else 0,
            "total": total,
        },
    }


@router.post("", status_code=status.HTTP_201_CREATED, summary="Place an order")
async def create_order(
    payload: CheckoutRequest,
    identity: IdentityDependency,
    pipeline: PipelineDependency,
) -> dict[str, Any]:
    order = await pipeline.place_order(identity, payload)
    return _order_body(order, "Order created successfully")


@router.get("/my", summary="Orders of the current user")
async def list_my_orders(
    identity: IdentityDependency,
    pipeline: PipelineDependency,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> dict[str, Any]:
    orders, total = await pipeline.list_user_orders(identity, page, limit)
    return _page_body(orders, total, page, limit)


@router.get("", summary="All orders (staff)")
async def list_orders(
    _staff: StaffDependency,
    pipeline: PipelineDependency,
    status_filter: Annotated[OrderStatus | None, Query(alias="status")] = None,
    start_date: Annotated[datetime | None, Query(alias="start")] = None,
    end_date: Annotated[datetime | None, Query(alias="end")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict[str, Any]:
    orders, total = await pipeline.list_orders(
        status=status_filter, start=start_date, end=end_date, page=page, limit=limit
    )
    return _page_body(orders, total, page, limit)


@router.get("/{order_id}", summary="Fetch one order")
async def get_order(
    order_id: str,
    identity: IdentityDependency,
    pipeline: PipelineDependency,
) -> dict[str, Any]:
    return _order_body(await pipeline.get_order(identity, order_id))


@router.put("/{order_id}/pay", summary="Confirm payment of an order")
async def pay_order(
    order_id: str,
    payload: PaymentConfirmation,
    identity: IdentityDependency,
    pipeline: PipelineDependency,
) -> dict[str, Any]:
    order = await pipeline.mark_paid(identity, order_id, payload)
    return _order_body(order, "Payment recorded")


@router.put("/{order_id}/cancel", summary="Cancel an order")
async def cancel_order(
    order_id: str,
    identity: IdentityDependency,
    pipeline: PipelineDependency,
) -> dict[str, Any]:
    order = await pipeline.cancel_order(identity, order_id)
    return _order_body(order, "Order cancelled successfully")


@router.put("/{order_id}/status", summary="Change order status (staff)")
async def update_order_status(
    order_id: str,
    payload: StatusUpdateRequest,
    _staff: StaffDependency,
    pipeline: PipelineDependency,
) -> dict[str, Any]:
    order = await pipeline.update_status(
        order_id, payload.status, payload.tracking_number
    )
    return _order_body(order, "Order status updated")
