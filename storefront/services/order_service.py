"""
Order placement: validate the cart against live catalog data, compute the total
server-side, then create order + lines + stock decrements in one transaction.
Status transitions: admin-driven state machine applied under a row lock.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional
from uuid import UUID

from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.db import db_transaction
from storefront.models.order import Order, OrderStatus
from storefront.repositories.order_repo import InsufficientStockError, OrderFields, OrderLine, OrderRepository
from storefront.repositories.product_repo import ProductRepository, VariantSnapshot
from storefront.schemas.order import CartLine, OrderResult, PlacementErrorCode, ShippingDetails

logger = logging.getLogger(__name__)

ORDER_PLACEMENTS = Counter("order_placements_total", "Order placement outcomes", ["outcome"])

SHIPPING_FIELDS = ("customer_name", "customer_email", "address_line", "city", "zip_code")


class PlacementRejected(Exception):
    """Internal signal carrying a classified failure out of the transaction block."""

    def __init__(self, result: OrderResult) -> None:
        self.result = result
        super().__init__(result.error)


def _insufficient(sku: str, available: int) -> OrderResult:
    return OrderResult.fail(
        PlacementErrorCode.INSUFFICIENT_STOCK,
        f"Insufficient stock for {sku}. Only {available} available.",
        {"sku": sku, "available": available},
    )


def _validate_request(shipping: ShippingDetails, lines: Sequence[CartLine]) -> Optional[OrderResult]:
    if not lines:
        return OrderResult.fail(PlacementErrorCode.EMPTY_CART, "Cart is empty")
    missing = [f for f in SHIPPING_FIELDS if not str(getattr(shipping, f, "") or "").strip()]
    if missing:
        return OrderResult.fail(
            PlacementErrorCode.INVALID_REQUEST,
            f"Missing shipping details: {', '.join(missing)}",
            {"fields": missing},
        )
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
            return OrderResult.fail(
                PlacementErrorCode.INVALID_REQUEST,
                f"Quantity must be a positive integer for variant {line.variant_id}",
                {"variant_id": str(line.variant_id)},
            )
    return None


def price_cart(
    lines: Sequence[CartLine],
    variants: dict[UUID, VariantSnapshot],
) -> tuple[int, list[OrderLine]]:
    """
    Check each line against the stock snapshot and price it from the catalog.
    Repeated lines for one variant draw on the same snapshot stock.
    Returns (total_cents, order_lines). Raises PlacementRejected on shortfall.
    """
    remaining = {vid: v.stock for vid, v in variants.items()}
    total = 0
    order_lines: list[OrderLine] = []
    for line in lines:
        variant = variants[line.variant_id]
        if remaining[line.variant_id] < line.quantity:
            raise PlacementRejected(_insufficient(variant.sku, variant.stock))
        remaining[line.variant_id] -= line.quantity
        total += variant.price_cents * line.quantity
        order_lines.append(OrderLine(line.variant_id, line.quantity, variant.price_cents))
    return total, order_lines


def stock_demand(order_lines: Sequence[OrderLine]) -> list[tuple[UUID, int]]:
    """Total quantity per variant, ordered by variant id."""
    demand: dict[UUID, int] = {}
    for line in order_lines:
        demand[line.variant_id] = demand.get(line.variant_id, 0) + line.quantity
    return sorted(demand.items())


class OrderPlacementService:
    """Owns the transaction boundary of checkout; holds no state between calls."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def place_order(
        self,
        shipping: ShippingDetails,
        lines: Sequence[CartLine],
        user_id: Optional[UUID] = None,
    ) -> OrderResult:
        result = await self._place_order(shipping, lines, user_id)
        outcome = "success" if result.success else result.error_code.value
        ORDER_PLACEMENTS.labels(outcome=outcome).inc()
        if result.success:
            logger.info("order_placed", extra={"order_id": result.order_id, "user_id": user_id, "outcome": outcome})
        else:
            logger.warning(
                "order_rejected",
                extra={
                    "error_code": outcome,
                    "sku": (result.details or {}).get("sku"),
                    "user_id": user_id,
                    "customer_email": getattr(shipping, "customer_email", None),
                },
            )
        return result

    async def _place_order(
        self,
        shipping: ShippingDetails,
        lines: Sequence[CartLine],
        user_id: Optional[UUID],
    ) -> OrderResult:
        rejected = _validate_request(shipping, lines)
        if rejected is not None:
            return rejected

        requested_ids = list(dict.fromkeys(line.variant_id for line in lines))
        variants: dict[UUID, VariantSnapshot] = {}
        try:
            async with db_transaction(self.session_factory) as session:
                snapshots = await ProductRepository(session).find_variants_by_ids(requested_ids, active_only=True)
                variants = {v.id: v for v in snapshots}
                if len(variants) < len(requested_ids):
                    raise PlacementRejected(
                        OrderResult.fail(
                            PlacementErrorCode.PRODUCT_UNAVAILABLE,
                            "Some products are no longer available",
                            {"variant_ids": [str(vid) for vid in requested_ids if vid not in variants]},
                        )
                    )
                total_cents, order_lines = price_cart(lines, variants)

                # Order, lines and decrements commit together or not at all
                order_repo = OrderRepository(session)
                order_id = await order_repo.create_order(
                    OrderFields(
                        user_id=user_id,
                        customer_name=shipping.customer_name.strip(),
                        customer_email=shipping.customer_email.strip(),
                        address_line=shipping.address_line.strip(),
                        city=shipping.city.strip(),
                        zip_code=shipping.zip_code.strip(),
                        total_cents=total_cents,
                    )
                )
                await order_repo.create_order_lines(order_id, order_lines)
                # Rows are locked in variant id order so crossing carts cannot deadlock
                for variant_id, amount in stock_demand(order_lines):
                    await order_repo.decrement_stock(variant_id, amount)
        except PlacementRejected as e:
            return e.result
        except InsufficientStockError as e:
            sku = e.sku or variants[e.variant_id].sku
            return _insufficient(sku, e.available)
        except Exception as e:
            # Store conflicts, constraint violations, connectivity: nothing was committed
            logger.exception("order_transaction_failed", extra={"user_id": user_id})
            return OrderResult.fail(
                PlacementErrorCode.TRANSACTION_FAILED,
                "Failed to process order. Please try again.",
                {"reason": type(e).__name__},
            )
        return OrderResult.ok(order_id)


def parse_status(value: str) -> Optional[OrderStatus]:
    """Status name in any letter case; None when it names no status."""
    try:
        return OrderStatus(value.strip().upper())
    except ValueError:
        return None


def invalid_status_message(value: str) -> str:
    allowed = ", ".join(s.value for s in OrderStatus)
    return f"Invalid status: {value}. Allowed: {allowed}."


async def update_order_status(
    session: AsyncSession,
    order_id: UUID,
    new_status_str: str,
) -> tuple[Optional[Order], Optional[str]]:
    """
    Validate the requested transition, lock the order row, update it.
    Returns (order, error_message). On invalid status or transition returns (None, "message").
    """
    new_status = parse_status(new_status_str)
    if new_status is None:
        return None, invalid_status_message(new_status_str)

    order_repo = OrderRepository(session)
    order = await order_repo.get_by_id_for_update(order_id)
    if order is None:
        return None, "Order not found"
    allowed = OrderStatus.allowed_from(order.status)
    if new_status not in allowed:
        options = ", ".join(sorted(s.value for s in allowed)) or "none"
        return None, (
            f"Invalid transition: current status is {order.status.value}, "
            f"allowed next: {options}."
        )

    await order_repo.update_status(order, new_status)
    await session.flush()
    await session.refresh(order, attribute_names=["status", "updated_at"])
    logger.info("order_status_updated", extra={"order_id": order.id, "outcome": new_status.value})
    return order, None
