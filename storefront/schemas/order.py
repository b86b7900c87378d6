from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.models.order import OrderStatus


class ShippingDetails(BaseModel):
    """Contact and shipping fields as handed to the placement engine."""

    customer_name: str
    customer_email: str
    address_line: str
    city: str
    zip_code: str


class CartLine(BaseModel):
    """Untrusted client cart line. Extra fields (price, total...) are dropped."""

    model_config = ConfigDict(extra="ignore")

    variant_id: UUID
    quantity: int


class ShippingForm(BaseModel):
    """Checkout form validation done at the HTTP edge before the engine runs."""

    customer_name: str = Field(min_length=2, max_length=255)
    customer_email: EmailStr
    address_line: str = Field(min_length=5, max_length=512)
    city: str = Field(min_length=2, max_length=255)
    zip_code: str = Field(min_length=4, max_length=32)

    def to_details(self) -> ShippingDetails:
        return ShippingDetails(**self.model_dump(mode="json"))


class CheckoutRequest(BaseModel):
    """POST /api/v1/checkout body. An empty item list reaches the engine and yields EMPTY_CART."""

    model_config = ConfigDict(extra="ignore")

    shipping: ShippingForm
    items: list[CartLine] = Field(default_factory=list)


class PlacementErrorCode(str, Enum):
    EMPTY_CART = "EMPTY_CART"
    INVALID_REQUEST = "INVALID_REQUEST"
    PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"


class OrderResult(BaseModel):
    success: bool
    order_id: Optional[UUID] = None
    error: Optional[str] = None
    error_code: Optional[PlacementErrorCode] = None
    details: Optional[dict[str, Any]] = None

    @classmethod
    def ok(cls, order_id: UUID) -> "OrderResult":
        return cls(success=True, order_id=order_id)

    @classmethod
    def fail(
        cls,
        code: PlacementErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> "OrderResult":
        return cls(success=False, error=message, error_code=code, details=details)


class OrderItemResponse(BaseModel):
    variant_id: UUID
    sku: str
    product_title: str
    quantity: int
    price_cents: int
    line_total_cents: int


class OrderResponse(BaseModel):
    """GET /api/v1/orders/{order_id} response."""

    id: UUID
    user_id: Optional[UUID] = None
    customer_name: str
    customer_email: str
    address_line: str
    city: str
    zip_code: str
    status: OrderStatus
    total_cents: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: list[OrderItemResponse]


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]


class OrderStatusUpdate(BaseModel):
    """PATCH /api/v1/admin/orders/{order_id}/status body."""

    status: str
