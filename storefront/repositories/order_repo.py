from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import case, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.product import ProductVariant

# Order lines with the sku and product title they were bought under
ITEMS_WITH_PRODUCT = selectinload(Order.items).selectinload(OrderItem.variant).selectinload(ProductVariant.product)


class InsufficientStockError(Exception):
    """Conditional decrement matched no row: the variant no longer has enough stock."""

    def __init__(self, variant_id: UUID, sku: Optional[str], available: int) -> None:
        self.variant_id = variant_id
        self.sku = sku
        self.available = available
        super().__init__(f"Insufficient stock for {sku or variant_id}: {available} available")


@dataclass(frozen=True)
class OrderFields:
    user_id: Optional[UUID]
    customer_name: str
    customer_email: str
    address_line: str
    city: str
    zip_code: str
    total_cents: int


@dataclass(frozen=True)
class OrderLine:
    variant_id: UUID
    quantity: int
    price_cents: int


class OrderRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_order(self, fields: OrderFields) -> UUID:
        order = Order(
            user_id=fields.user_id,
            customer_name=fields.customer_name,
            customer_email=fields.customer_email,
            address_line=fields.address_line,
            city=fields.city,
            zip_code=fields.zip_code,
            total_cents=fields.total_cents,
            status=OrderStatus.PENDING,
        )
        self.session.add(order)
        await self.session.flush()
        return order.id

    async def create_order_lines(self, order_id: UUID, lines: Sequence[OrderLine]) -> None:
        await self.session.execute(
            insert(OrderItem),
            [
                {
                    "order_id": order_id,
                    "variant_id": line.variant_id,
                    "position": position,
                    "quantity": line.quantity,
                    "price_cents": line.price_cents,
                }
                for position, line in enumerate(lines)
            ],
        )

    async def decrement_stock(self, variant_id: UUID, amount: int) -> None:
        """
        Decrement-if-sufficient in a single UPDATE. The row lock taken by the UPDATE
        serializes concurrent buyers; the WHERE clause is re-checked after the lock.
        Raises InsufficientStockError (caller must roll back) when no row matched.
        """
        r = await self.session.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock >= amount)
            .values(stock=ProductVariant.stock - amount)
            .execution_options(synchronize_session=False)
        )
        if r.rowcount == 1:
            return
        current = await self.session.execute(
            select(ProductVariant.sku, ProductVariant.stock).where(ProductVariant.id == variant_id)
        )
        row = current.one_or_none()
        raise InsufficientStockError(
            variant_id,
            row.sku if row else None,
            row.stock if row else 0,
        )

    async def get_by_id(self, order_id: UUID) -> Order | None:
        r = await self.session.execute(
            select(Order)
            .options(ITEMS_WITH_PRODUCT)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return r.scalar_one_or_none()

    async def get_by_id_for_update(self, order_id: UUID) -> Order | None:
        """Lock row for status update (SELECT FOR UPDATE)."""
        r = await self.session.execute(
            select(Order)
            .options(ITEMS_WITH_PRODUCT)
            .where(Order.id == order_id)
            .with_for_update()
        )
        return r.scalar_one_or_none()

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        stmt = select(Order).options(ITEMS_WITH_PRODUCT)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        r = await self.session.execute(
            stmt.order_by(Order.created_at.desc(), Order.id).limit(limit).offset(offset)
        )
        return list(r.scalars().all())

    async def totals(self) -> tuple[int, int]:
        """(order count, revenue in cents); cancelled orders add no revenue."""
        revenue = func.coalesce(
            func.sum(case((Order.status != OrderStatus.CANCELLED, Order.total_cents), else_=0)), 0
        )
        r = await self.session.execute(select(func.count(Order.id), revenue))
        count, revenue_cents = r.one()
        return count, int(revenue_cents)

    async def update_status(self, order: Order, new_status: OrderStatus) -> None:
        order.status = new_status
