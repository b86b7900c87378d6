"""
GET /api/v1/catalog — active products with their purchasable variants.
GET /api/v1/catalog/{slug} — one active product.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db import get_db
from storefront.models.product import Product
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.catalog import CatalogResponse, ProductSchema, VariantSchema

router = APIRouter(prefix="/catalog", tags=["catalog"])


def product_to_schema(p: Product) -> ProductSchema:
    return ProductSchema(
        id=p.id,
        title=p.title,
        slug=p.slug,
        description=p.description,
        base_price_cents=p.base_price_cents,
        variants=[
            VariantSchema(
                id=v.id,
                sku=v.sku,
                name=v.name,
                price_cents=v.price_cents,
                in_stock=v.stock > 0,
            )
            for v in p.variants
        ],
    )


@router.get(
    "",
    response_model=CatalogResponse,
    summary="Browse catalog",
    description="Returns active products and their active variants with server-side prices.",
)
async def get_catalog(session: AsyncSession = Depends(get_db)) -> CatalogResponse:
    products = await ProductRepository(session).get_active_catalog()
    return CatalogResponse(products=[product_to_schema(p) for p in products])


@router.get(
    "/{slug}",
    response_model=ProductSchema,
    summary="Product detail",
    responses={404: {"description": "Product not found or inactive"}},
)
async def get_product(slug: str, session: AsyncSession = Depends(get_db)) -> ProductSchema:
    product = await ProductRepository(session).get_by_slug(slug)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product_to_schema(product)
