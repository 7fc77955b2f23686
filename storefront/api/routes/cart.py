"""Shopping cart routes for the authenticated user."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Query

from storefront.api.dependencies import CartDependency, IdentityDependency
from storefront.models.cart import AddToCartRequest, CartView, UpdateQuantityRequest
from storefront.models.product import normalize_size

router = APIRouter(prefix="/cart", tags=["cart"])


def _envelope(cart: CartView, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["cart"] = cart.model_dump(mode="json")
    return body


@router.get("")
async def get_cart(identity: IdentityDependency, carts: CartDependency) -> dict[str, Any]:
    return _envelope(await carts.get_cart(identity.user_id))


@router.get("/count")
async def get_cart_count(
    identity: IdentityDependency, carts: CartDependency
) -> dict[str, Any]:
    return {"success": True, "count": await carts.count(identity.user_id)}


@router.post("/add")
async def add_to_cart(
    payload: AddToCartRequest,
    identity: IdentityDependency,
    carts: CartDependency,
) -> dict[str, Any]:
    cart = await carts.add_item(
        identity.user_id, payload.product_id, payload.size, payload.quantity
    )
    return _envelope(cart, "Item added to cart")


@router.put("/item/{line_id}")
async def update_cart_item(
    line_id: str,
    payload: UpdateQuantityRequest,
    identity: IdentityDependency,
    carts: CartDependency,
) -> dict[str, Any]:
    cart = await carts.update_quantity(identity.user_id, line_id, payload.quantity)
    return _envelope(cart, "Cart updated")


@router.delete("/item")
async def remove_cart_item_by_key(
    identity: IdentityDependency,
    carts: CartDependency,
    product_id: Annotated[str, Query(min_length=1)],
    size: Annotated[str, Query(min_length=1)],
) -> dict[str, Any]:
    cart = await carts.remove_item(
        identity.user_id, product_id=product_id, size=normalize_size(size)
    )
    return _envelope(cart, "Item removed from cart")


@router.delete("/item/{line_id}")
async def remove_cart_item(
    line_id: str,
    identity: IdentityDependency,
    carts: CartDependency,
) -> dict[str, Any]:
    cart = await carts.remove_item(identity.user_id, line_id=line_id)
    return _envelope(cart, "Item removed from cart")


@router.delete("/clear")
async def clear_cart(identity: IdentityDependency, carts: CartDependency) -> dict[str, Any]:
    return _envelope(await carts.clear(identity.user_id), "Cart cleared")
