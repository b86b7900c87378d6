from storefront.models.user import User, UserRole
from storefront.models.product import Product, ProductVariant
from storefront.models.order import ORDER_STATUS_TRANSITIONS, Order, OrderItem, OrderStatus

__all__ = [
    "User",
    "UserRole",
    "Product",
    "ProductVariant",
    "Order",
    "OrderItem",
    "OrderStatus",
    "ORDER_STATUS_TRANSITIONS",
]
