"""Catalog routes: cached reads for shoppers, mutations for staff."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Query, status

from storefront.api.dependencies import CatalogDependency, StaffDependency
from storefront.models.product import ProductCreate, ProductQuery, ProductUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", summary="List active products")
async def list_products(
    query: Annotated[ProductQuery, Query()],
    catalog: CatalogDependency,
) -> dict[str, Any]:
    result = await catalog.list_products(query)
    return {"success": True, **result}


@router.get("/categories", summary="Distinct categories of active products")
async def list_categories(catalog: CatalogDependency) -> dict[str, Any]:
    return {"success": True, "categories": await catalog.list_categories()}


@router.get("/featured", summary="Featured products")
async def list_featured(
    catalog: CatalogDependency,
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> dict[str, Any]:
    return {"success": True, "products": await catalog.list_featured(limit)}


@router.get("/{product_id}", summary="Fetch one active product")
async def get_product(product_id: str, catalog: CatalogDependency) -> dict[str, Any]:
    return {"success": True, "product": await catalog.get_product(product_id)}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a product")
async def create_product(
    payload: ProductCreate,
    catalog: CatalogDependency,
    staff: StaffDependency,
) -> dict[str, Any]:
    product = await catalog.create_product(payload)
    logger.info(
        "Product created",
        extra={"product_id": product.id, "by": staff.user_id},
    )
    return {
        "success": True,
        "message": "Product created successfully",
        "product": product.model_dump(mode="json"),
    }


@router.put("/{product_id}", summary="Update a product")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    catalog: CatalogDependency,
    staff: StaffDependency,
) -> dict[str, Any]:
    product = await catalog.update_product(product_id, payload)
    logger.info("Product updated", extra={"product_id": product_id, "by": staff.user_id})
    return {
        "success": True,
        "message": "Product updated successfully",
        "product": product.model_dump(mode="json"),
    }


@router.delete("/{product_id}", summary="Deactivate a product")
async def delete_product(
    product_id: str,
    catalog: CatalogDependency,
    staff: StaffDependency,
) -> dict[str, Any]:
    """Soft delete: the product disappears from the catalog, orders keep their snapshot."""
    await catalog.set_product_active(product_id, False)
    logger.info(
        "Product deactivated", extra={"product_id": product_id, "by": staff.user_id}
    )
    return {"success": True, "message": "Product deleted successfully"}
