"""Cart aggregate and API schemas."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from bson import ObjectId
from pydantic import BaseModel, Field, field_validator

from storefront.models.product import SizeValue, normalize_size


def _now() -> datetime:
    return datetime.now(UTC)


class CartLine(BaseModel):
    """One (product, size) entry inside a cart."""

    id: str = Field(default_factory=lambda: str(ObjectId()))
    product_id: str
    size: SizeValue
    quantity: int = Field(..., ge=1)
    added_at: datetime = Field(default_factory=_now)

    @field_validator("size", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> SizeValue:
        return normalize_size(value)

    @property
    def key(self) -> tuple[str, SizeValue]:
        return self.product_id, self.size


class Cart(BaseModel):
    """Per-user cart. Totals are derived from catalog prices, never from input."""

    id: str | None = None
    user_id: str
    items: list[CartLine] = Field(default_factory=list)
    total_items: int = 0
    total_price: float = 0.0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Cart:
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_document(self) -> dict[str, Any]:
        data = self.model_dump(exclude={"id"})
        return data

    def find_line(self, line_id: str) -> CartLine | None:
        return next((line for line in self.items if line.id == line_id), None)

    def add_item(self, product_id: str, size: SizeValue, quantity: int = 1) -> CartLine:
        size = normalize_size(size)
        for line in self.items:
            if line.key == (product_id, size):
                line.quantity += quantity
                return line
        line = CartLine(product_id=product_id, size=size, quantity=quantity)
        self.items.append(line)
        return line

    def remove_item(self, product_id: str, size: SizeValue) -> bool:
        size = normalize_size(size)
        for index, line in enumerate(self.items):
            if line.key == (product_id, size):
                del self.items[index]
                return True
        return False

    def remove_line(self, line_id: str) -> bool:
        for index, line in enumerate(self.items):
            if line.id == line_id:
                del self.items[index]
                return True
        return False

    def update_quantity(self, line_id: str, quantity: int) -> bool:
        if quantity < 1:
            raise ValueError("Quantity must be a positive integer")
        line = self.find_line(line_id)
        if line is None:
            return False
        line.quantity = quantity
        return True

    def clear(self) -> None:
        self.items = []
        self.total_items = 0
        self.total_price = 0.0

    def merge_duplicates(self) -> None:
        """Collapse lines sharing a (product, size) key; the first line survives."""
        merged: dict[tuple[str, SizeValue], CartLine] = {}
        for line in self.items:
            existing = merged.get(line.key)
            if existing is None:
                merged[line.key] = line
            else:
                existing.quantity += line.quantity
        self.items = list(merged.values())

    def recompute_totals(self, prices: dict[str, float]) -> None:
        self.total_items = sum(line.quantity for line in self.items)
        self.total_price = round(
            sum(prices.get(line.product_id, 0.0) * line.quantity for line in self.items),
            2,
        )
        self.updated_at = _now()


class CartLineView(BaseModel):
    """Cart line joined with current catalog data for display."""

    id: str
    product_id: str
    size: SizeValue
    quantity: int
    added_at: datetime
    name: str | None = None
    image: str | None = None
    unit_price: float = 0.0
    line_total: float = 0.0
    available: bool = False


class CartView(BaseModel):
    id: str | None = None
    user_id: str
    items: list[CartLineView] = Field(default_factory=list)
    total_items: int = 0
    total_price: float = 0.0
    updated_at: datetime


class AddToCartRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    size: SizeValue
    quantity: int = Field(1, ge=1)

    @field_validator("size", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> SizeValue:
        return normalize_size(value)


class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(..., ge=1)
