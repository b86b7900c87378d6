"""
Admin order management: dashboard, list orders and drive the status machine (admin only).
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.orders import order_to_response
from storefront.config import get_settings
from storefront.core.auth import require_role
from storefront.db import get_db
from storefront.models.user import User, UserRole
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.admin import DashboardResponse
from storefront.schemas.catalog import LowStockVariant
from storefront.schemas.order import OrderListResponse, OrderResponse, OrderStatusUpdate
from storefront.services.order_service import invalid_status_message, parse_status, update_order_status

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Store overview (admin only)",
    description="Product and order counts, revenue excluding cancelled orders, the five latest orders and the variants lowest on stock.",
)
async def dashboard(
    current_user: User = require_role(UserRole.ADMIN),
    session: AsyncSession = Depends(get_db),
) -> DashboardResponse:
    order_repo = OrderRepository(session)
    product_repo = ProductRepository(session)
    order_count, revenue_cents = await order_repo.totals()
    recent = await order_repo.list_orders(limit=5)
    low = await product_repo.low_stock_variants(get_settings().low_stock_threshold, limit=5)
    return DashboardResponse(
        product_count=await product_repo.count_products(),
        order_count=order_count,
        revenue_cents=revenue_cents,
        recent_orders=[order_to_response(o) for o in recent],
        low_stock=[
            LowStockVariant(
                id=v.id,
                sku=v.sku,
                name=v.name,
                stock=v.stock,
                product_title=v.product.title,
                product_slug=v.product.slug,
            )
            for v in low
        ],
    )


@router.get("/orders", response_model=OrderListResponse, summary="List orders (admin only)")
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status", description="Order status, any letter case"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = require_role(UserRole.ADMIN),
    session: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    order_status = None
    if status_filter is not None:
        order_status = parse_status(status_filter)
        if order_status is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=invalid_status_message(status_filter))
    orders = await OrderRepository(session).list_orders(status=order_status, limit=limit, offset=offset)
    return OrderListResponse(orders=[order_to_response(o) for o in orders])


@router.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status (admin only)",
    description="PENDING -> SHIPPED | CANCELLED, SHIPPED -> DELIVERED. Invalid transition returns 400.",
    responses={400: {"description": "Invalid status transition"}, 404: {"description": "Order not found"}},
)
async def patch_order_status(
    order_id: UUID,
    body: OrderStatusUpdate,
    current_user: User = require_role(UserRole.ADMIN),
    session: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order, err = await update_order_status(session, order_id, body.status)
    if err is not None:
        if "not found" in err.lower():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=err)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=err)
    order = await OrderRepository(session).get_by_id(order.id)
    return order_to_response(order)
