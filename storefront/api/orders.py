"""
Checkout and order lookup.
The placement engine returns a typed OrderResult for every outcome; this layer only picks the HTTP status.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.auth import get_optional_user
from storefront.db import get_db, get_session_factory
from storefront.models.order import Order
from storefront.models.user import User, UserRole
from storefront.repositories.order_repo import OrderRepository
from storefront.schemas.order import (
    CheckoutRequest,
    OrderItemResponse,
    OrderResponse,
    OrderResult,
    PlacementErrorCode,
)
from storefront.services.order_service import OrderPlacementService

router = APIRouter(tags=["orders"])

ERROR_STATUS = {
    PlacementErrorCode.EMPTY_CART: status.HTTP_400_BAD_REQUEST,
    PlacementErrorCode.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    PlacementErrorCode.PRODUCT_UNAVAILABLE: status.HTTP_409_CONFLICT,
    PlacementErrorCode.INSUFFICIENT_STOCK: status.HTTP_409_CONFLICT,
    PlacementErrorCode.TRANSACTION_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_order_placement_service(session_factory=Depends(get_session_factory)) -> OrderPlacementService:
    return OrderPlacementService(session_factory)


def order_to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        address_line=order.address_line,
        city=order.city,
        zip_code=order.zip_code,
        status=order.status,
        total_cents=order.total_cents,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemResponse(
                variant_id=it.variant_id,
                sku=it.variant.sku,
                product_title=it.variant.product.title,
                quantity=it.quantity,
                price_cents=it.price_cents,
                line_total_cents=it.quantity * it.price_cents,
            )
            for it in order.items
        ],
    )


@router.post(
    "/checkout",
    response_model=OrderResult,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Validates the cart against live stock and prices, computes the total server-side and commits atomically. Guest checkout when no bearer token is sent.",
    responses={
        400: {"model": OrderResult, "description": "Empty cart or invalid request"},
        409: {"model": OrderResult, "description": "Product unavailable or insufficient stock"},
        503: {"model": OrderResult, "description": "Transaction failed; safe to retry"},
    },
)
async def checkout(
    body: CheckoutRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    service: OrderPlacementService = Depends(get_order_placement_service),
):
    result = await service.place_order(
        body.shipping.to_details(),
        body.items,
        user_id=current_user.id if current_user else None,
    )
    if result.success:
        return result
    return JSONResponse(
        content=result.model_dump(mode="json"),
        status_code=ERROR_STATUS[result.error_code],
    )


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Owner or admin; guest orders are readable by anyone holding the order id.",
)
async def get_order(
    order_id: UUID,
    current_user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await OrderRepository(session).get_by_id(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if order.user_id is not None:
        is_admin = current_user is not None and current_user.role == UserRole.ADMIN
        is_owner = current_user is not None and current_user.id == order.user_id
        if not (is_admin or is_owner):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order_to_response(order)
