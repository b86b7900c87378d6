from __future__ import annotations

from pydantic import BaseModel

from storefront.schemas.catalog import LowStockVariant
from storefront.schemas.order import OrderResponse


class DashboardResponse(BaseModel):
    """GET /api/v1/admin/dashboard: store totals, latest orders, variants running low."""

    product_count: int
    order_count: int
    revenue_cents: int
    recent_orders: list[OrderResponse]
    low_stock: list[LowStockVariant]
