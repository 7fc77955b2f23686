"""Per-user cart persistence with merge-before-totals on every save."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError

from storefront.errors import (
    CartLineNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    ProductUnavailableError,
)
from storefront.models.cart import Cart, CartLineView, CartView
from storefront.models.product import Product, SizeValue
from storefront.services.catalog.product_store import ProductStore

logger = logging.getLogger(__name__)


class CartService:
    """Cart documents keyed one-to-one by user id."""

    def __init__(self, collection: AsyncIOMotorCollection, products: ProductStore):
        self.collection = collection
        self.products = products

    async def load(self, user_id: str) -> Cart:
        """Return the user's cart, creating an empty one on first access."""
        document = await self.collection.find_one({"user_id": user_id})
        if document is not None:
            return Cart.from_document(document)

        cart = Cart(user_id=user_id)
        try:
            result = await self.collection.insert_one(cart.to_document())
        except DuplicateKeyError:
            # created by a concurrent request
            document = await self.collection.find_one({"user_id": user_id})
            return Cart.from_document(document)
        cart.id = str(result.inserted_id)
        return cart

    async def save(self, cart: Cart) -> tuple[Cart, dict[str, Product]]:
        """Merge duplicate lines, recompute totals from catalog prices, persist."""
        cart.merge_duplicates()
        products = await self.products.get_many(line.product_id for line in cart.items)
        prices = {pid: product.effective_price for pid, product in products.items()}
        cart.recompute_totals(prices)

        document = cart.to_document()
        document.pop("created_at", None)
        await self.collection.update_one(
            {"user_id": cart.user_id},
            {"$set": document, "$setOnInsert": {"created_at": cart.created_at}},
            upsert=True,
        )
        return cart, products

    async def get_cart(self, user_id: str) -> CartView:
        cart = await self.load(user_id)
        cart, products = await self.save(cart)
        return self._view(cart, products)

    async def count(self, user_id: str) -> int:
        document = await self.collection.find_one(
            {"user_id": user_id}, {"total_items": 1}
        )
        return int(document.get("total_items", 0)) if document else 0

    async def add_item(
        self, user_id: str, product_id: str, size: SizeValue, quantity: int = 1
    ) -> CartView:
        product = await self.products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if not product.active or product.stock_for(size) is None:
            raise ProductUnavailableError(product_id, product.name, size)

        cart = await self.load(user_id)
        cart.add_item(product_id, size, quantity)
        cart, products = await self.save(cart)
        logger.info(
            "Cart item added",
            extra={"user_id": user_id, "product_id": product_id, "size": size},
        )
        return self._view(cart, products)

    async def update_quantity(
        self, user_id: str, line_id: str, quantity: int
    ) -> CartView:
        cart = await self.load(user_id)
        line = cart.find_line(line_id)
        if line is None:
            raise CartLineNotFoundError()

        product = await self.products.get(line.product_id)
        available = product.stock_for(line.size) if product else None
        if product is None or not product.active or available is None:
            raise ProductUnavailableError(line.product_id, size=line.size)
        if available < quantity:
            raise InsufficientStockError(
                line.product_id, line.size, quantity, available, product.name
            )

        cart.update_quantity(line_id, quantity)
        cart, products = await self.save(cart)
        return self._view(cart, products)

    async def remove_item(
        self,
        user_id: str,
        *,
        product_id: str | None = None,
        size: SizeValue | None = None,
        line_id: str | None = None,
    ) -> CartView:
        cart = await self.load(user_id)
        if line_id is not None:
            removed = cart.remove_line(line_id)
        else:
            removed = cart.remove_item(product_id, size)
        if not removed:
            raise CartLineNotFoundError()
        cart, products = await self.save(cart)
        return self._view(cart, products)

    async def clear(self, user_id: str) -> CartView:
        cart = await self.load(user_id)
        cart.clear()
        cart, products = await self.save(cart)
        return self._view(cart, products)

    async def clear_for_user(self, user_id: str) -> None:
        """Atomically reset the cart after an order; safe to repeat."""
        await self.collection.update_one(
            {"user_id": user_id},
            {
                "$set": {
                    "items": [],
                    "total_items": 0,
                    "total_price": 0.0,
                    "updated_at": datetime.now(UTC),
                }
            },
        )

    @staticmethod
    def _view(cart: Cart, products: dict[str, Product]) -> CartView:
        lines = []
        for line in cart.items:
            product = products.get(line.product_id)
            unit_price = product.effective_price if product else 0.0
            lines.append(
                CartLineView(
                    id=line.id,
                    product_id=line.product_id,
                    size=line.size,
                    quantity=line.quantity,
                    added_at=line.added_at,
                    name=product.name if product else None,
                    image=product.representative_image if product else None,
                    unit_price=unit_price,
                    line_total=round(unit_price * line.quantity, 2),
                    available=bool(product and product.active),
                )
            )
        return CartView(
            id=cart.id,
            user_id=cart.user_id,
            items=lines,
            total_items=cart.total_items,
            total_price=cart.total_price,
            updated_at=cart.updated_at,
        )
