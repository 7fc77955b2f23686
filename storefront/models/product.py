"""Product domain models and API schemas."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

SizeValue = int | float | str

SortKey = Literal["newest", "oldest", "price-asc", "price-desc", "name"]


def normalize_size(value: Any) -> SizeValue:
    """Coerce numeric strings ("9", "9.5") to numbers so they match stored sizes."""

    if isinstance(value, bool):
        raise ValueError("size must be a number or a label")
    if isinstance(value, (int, float)):
        return int(value) if float(value).is_integer() else float(value)
    text = str(value).strip()
    if not text:
        raise ValueError("size must not be empty")
    try:
        number = float(text)
    except ValueError:
        return text
    return int(number) if number.is_integer() else number


class SizeStock(BaseModel):
    """Stock counter for a single size of a product."""

    size: SizeValue
    stock: int = Field(..., ge=0)

    @field_validator("size", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> SizeValue:
        return normalize_size(value)


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    short_description: str | None = None
    category: str = Field(..., min_length=1)
    collection: str | None = None
    price: float = Field(..., ge=0)
    compare_price: float | None = Field(None, ge=0)
    discount_price: float | None = Field(
        None,
        ge=0,
        description="Optional sale price preferred over the list price when set",
    )
    sizes: list[SizeStock] = Field(..., min_length=1)
    cover_image: str | None = None
    gallery_images: list[str] = Field(default_factory=list)
    featured: bool = False
    active: bool = True


class ProductCreate(ProductBase):
    """Payload sent by catalog management when a product is created."""


class ProductUpdate(BaseModel):
    """Partial update; only fields that are set are written."""

    name: str | None = Field(None, min_length=1)
    description: str | None = None
    short_description: str | None = None
    category: str | None = Field(None, min_length=1)
    collection: str | None = None
    price: float | None = Field(None, ge=0)
    compare_price: float | None = Field(None, ge=0)
    discount_price: float | None = Field(None, ge=0)
    sizes: list[SizeStock] | None = Field(None, min_length=1)
    cover_image: str | None = None
    gallery_images: list[str] | None = None
    featured: bool | None = None
    active: bool | None = None


class Product(ProductBase):
    """Product document as stored in the catalog."""

    id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Product:
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    @property
    def effective_price(self) -> float:
        if self.discount_price:
            return self.discount_price
        return self.price

    @property
    def representative_image(self) -> str:
        if self.cover_image:
            return self.cover_image
        return self.gallery_images[0] if self.gallery_images else ""

    def stock_for(self, size: SizeValue) -> int | None:
        """Return the stock for ``size`` or None when the size is not offered."""
        for entry in self.sizes:
            if entry.size == size:
                return entry.stock
        return None


class ProductQuery(BaseModel):
    """Catalog listing filters; also the basis of listing cache keys."""

    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1, le=100)
    category: str | None = None
    collection: str | None = None
    min_price: float | None = Field(None, ge=0)
    max_price: float | None = Field(None, ge=0)
    featured: bool | None = None
    in_stock: bool = False
    search: str | None = None
    sort_by: SortKey = "newest"
