from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload, with_loader_criteria

from storefront.models.product import Product, ProductVariant


@dataclass(frozen=True)
class VariantSnapshot:
    """Price and stock of a variant as read before the order transaction."""

    id: UUID
    sku: str
    price_cents: int
    stock: int


class ProductRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_variants_by_ids(
        self, ids: Iterable[UUID], active_only: bool = True
    ) -> list[VariantSnapshot]:
        """Variants whose id is in `ids`; inactive variants (or variants of inactive products) are skipped when active_only."""
        ids = list(ids)
        if not ids:
            return []
        stmt = select(
            ProductVariant.id,
            ProductVariant.sku,
            ProductVariant.price_cents,
            ProductVariant.stock,
        ).where(ProductVariant.id.in_(ids))
        if active_only:
            stmt = stmt.join(Product, Product.id == ProductVariant.product_id).where(
                ProductVariant.is_active.is_(True),
                Product.is_active.is_(True),
            )
        r = await self.session.execute(stmt)
        return [VariantSnapshot(id=row.id, sku=row.sku, price_cents=row.price_cents, stock=row.stock) for row in r]

    async def get_active_catalog(self) -> list[Product]:
        r = await self.session.execute(
            select(Product)
            .options(
                selectinload(Product.variants),
                with_loader_criteria(ProductVariant, ProductVariant.is_active.is_(True)),
            )
            .where(Product.is_active.is_(True))
            .order_by(Product.title)
        )
        return list(r.scalars().all())

    async def get_by_slug(self, slug: str) -> Product | None:
        """Active product by slug, with only its active variants."""
        r = await self.session.execute(
            select(Product)
            .options(
                selectinload(Product.variants),
                with_loader_criteria(ProductVariant, ProductVariant.is_active.is_(True)),
            )
            .where(Product.slug == slug, Product.is_active.is_(True))
        )
        return r.scalar_one_or_none()

    async def count_products(self) -> int:
        r = await self.session.execute(select(func.count(Product.id)))
        return r.scalar_one()

    async def low_stock_variants(self, threshold: int, limit: int = 5) -> list[ProductVariant]:
        r = await self.session.execute(
            select(ProductVariant)
            .options(selectinload(ProductVariant.product))
            .where(ProductVariant.stock <= threshold)
            .order_by(ProductVariant.stock, ProductVariant.sku)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(r.scalars().all())
