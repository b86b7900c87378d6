from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class VariantSchema(BaseModel):
    id: UUID
    sku: str
    name: str
    price_cents: int
    in_stock: bool


class ProductSchema(BaseModel):
    id: UUID
    title: str
    slug: str
    description: Optional[str] = None
    base_price_cents: int
    variants: list[VariantSchema] = Field(default_factory=list)


class CatalogResponse(BaseModel):
    """GET /api/v1/catalog: active products with their active variants."""

    products: list[ProductSchema]


class LowStockVariant(BaseModel):
    id: UUID
    sku: str
    name: str
    stock: int
    product_title: str
    product_slug: str
