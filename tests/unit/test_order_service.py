"""
Unit tests: request validation, cart pricing and the status machine, without a database.
"""
import pytest
from uuid import uuid4
from unittest.mock import AsyncMock, MagicMock, patch

from storefront.models.order import ORDER_STATUS_TRANSITIONS, OrderStatus
from storefront.repositories.order_repo import OrderLine
from storefront.repositories.product_repo import VariantSnapshot
from storefront.schemas.order import CartLine, OrderResult, PlacementErrorCode, ShippingDetails
from storefront.services.order_service import (
    OrderPlacementService,
    PlacementRejected,
    parse_status,
    price_cart,
    stock_demand,
)


def _shipping(**overrides) -> ShippingDetails:
    fields = dict(
        customer_name="Ada Lovelace",
        customer_email="ada@example.com",
        address_line="12 Analytical Row",
        city="London",
        zip_code="NW1 6XE",
    )
    fields.update(overrides)
    return ShippingDetails(**fields)


def test_status_transitions():
    assert OrderStatus.allowed_from(OrderStatus.PENDING) == {OrderStatus.SHIPPED, OrderStatus.CANCELLED}
    assert OrderStatus.allowed_from(OrderStatus.SHIPPED) == {OrderStatus.DELIVERED}
    assert OrderStatus.DELIVERED.is_terminal
    assert OrderStatus.CANCELLED.is_terminal
    assert not OrderStatus.PENDING.is_terminal
    assert set(ORDER_STATUS_TRANSITIONS) == set(OrderStatus)


def test_price_cart_uses_catalog_prices():
    a, b = uuid4(), uuid4()
    variants = {
        a: VariantSnapshot(id=a, sku="A", price_cents=500, stock=10),
        b: VariantSnapshot(id=b, sku="B", price_cents=1200, stock=1),
    }
    total, lines = price_cart(
        [CartLine(variant_id=a, quantity=2), CartLine(variant_id=b, quantity=1)],
        variants,
    )
    assert total == 2200
    assert [(l.variant_id, l.quantity, l.price_cents) for l in lines] == [(a, 2, 500), (b, 1, 1200)]


def test_price_cart_repeated_lines_share_stock():
    a = uuid4()
    variants = {a: VariantSnapshot(id=a, sku="A", price_cents=500, stock=3)}
    with pytest.raises(PlacementRejected) as exc:
        price_cart([CartLine(variant_id=a, quantity=2), CartLine(variant_id=a, quantity=2)], variants)
    result = exc.value.result
    assert result.error_code == PlacementErrorCode.INSUFFICIENT_STOCK
    assert result.details == {"sku": "A", "available": 3}


def test_cart_line_ignores_client_price():
    line = CartLine.model_validate({"variant_id": str(uuid4()), "quantity": 1, "price": 1, "price_cents": 1})
    assert not hasattr(line, "price_cents")


@pytest.mark.asyncio
async def test_empty_cart_rejected_without_touching_store():
    factory = MagicMock()
    result = await OrderPlacementService(factory).place_order(_shipping(), [])
    assert result == OrderResult(
        success=False, error="Cart is empty", error_code=PlacementErrorCode.EMPTY_CART
    )
    factory.assert_not_called()


@pytest.mark.asyncio
async def test_blank_shipping_field_rejected():
    factory = MagicMock()
    result = await OrderPlacementService(factory).place_order(
        _shipping(city="   "), [CartLine(variant_id=uuid4(), quantity=1)]
    )
    assert not result.success
    assert result.error_code == PlacementErrorCode.INVALID_REQUEST
    assert result.details == {"fields": ["city"]}
    factory.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -3])
async def test_non_positive_quantity_rejected(quantity):
    factory = MagicMock()
    result = await OrderPlacementService(factory).place_order(
        _shipping(), [CartLine(variant_id=uuid4(), quantity=quantity)]
    )
    assert result.error_code == PlacementErrorCode.INVALID_REQUEST
    factory.assert_not_called()


@pytest.mark.asyncio
async def test_store_error_becomes_transaction_failed():
    from sqlalchemy.exc import OperationalError

    session = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)

    with patch("storefront.services.order_service.ProductRepository") as MockRepo:
        MockRepo.return_value.find_variants_by_ids = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("connection reset"))
        )
        result = await OrderPlacementService(factory).place_order(
            _shipping(), [CartLine(variant_id=uuid4(), quantity=1)]
        )

    assert not result.success
    assert result.error_code == PlacementErrorCode.TRANSACTION_FAILED
    assert result.error == "Failed to process order. Please try again."
    session.rollback.assert_awaited()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_order_status_all_valid_transitions():
    from storefront.services.order_service import update_order_status

    transitions = [
        (OrderStatus.PENDING, OrderStatus.SHIPPED),
        (OrderStatus.PENDING, OrderStatus.CANCELLED),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    ]

    for current_status, next_status in transitions:
        order_id = uuid4()
        mock_order = MagicMock()
        mock_order.id = order_id
        mock_order.status = current_status
        session = AsyncMock()

        with patch("storefront.services.order_service.OrderRepository") as MockOrderRepo:
            mock_order_repo = MagicMock()
            mock_order_repo.get_by_id_for_update = AsyncMock(return_value=mock_order)
            mock_order_repo.update_status = AsyncMock()
            MockOrderRepo.return_value = mock_order_repo

            order, error = await update_order_status(session, order_id, next_status.value.lower())

        assert order is mock_order
        assert error is None
        mock_order_repo.update_status.assert_awaited_once_with(mock_order, next_status)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "current_status,requested",
    [
        (OrderStatus.PENDING, "DELIVERED"),
        (OrderStatus.SHIPPED, "CANCELLED"),
        (OrderStatus.DELIVERED, "SHIPPED"),
        (OrderStatus.CANCELLED, "PENDING"),
    ],
)
async def test_update_order_status_rejects_invalid_transition(current_status, requested):
    from storefront.services.order_service import update_order_status

    mock_order = MagicMock()
    mock_order.status = current_status
    session = AsyncMock()

    with patch("storefront.services.order_service.OrderRepository") as MockOrderRepo:
        MockOrderRepo.return_value.get_by_id_for_update = AsyncMock(return_value=mock_order)
        MockOrderRepo.return_value.update_status = AsyncMock()
        order, error = await update_order_status(session, uuid4(), requested)

    assert order is None
    assert error.startswith("Invalid transition")
    MockOrderRepo.return_value.update_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_order_status_unknown_status():
    from storefront.services.order_service import update_order_status

    order, error = await update_order_status(AsyncMock(), uuid4(), "teleported")
    assert order is None
    assert error.startswith("Invalid status")


def test_stock_demand_sums_per_variant_in_id_order():
    low, high = sorted([uuid4(), uuid4()])
    lines = [
        OrderLine(high, 1, 500),
        OrderLine(low, 2, 700),
        OrderLine(high, 3, 500),
    ]

    assert stock_demand(lines) == [(low, 2), (high, 4)]
    assert stock_demand(list(reversed(lines))) == [(low, 2), (high, 4)]


def test_parse_status_any_case():
    assert parse_status("shipped") == OrderStatus.SHIPPED
    assert parse_status(" Cancelled ") == OrderStatus.CANCELLED
    assert parse_status("lost") is None
