"""Database model type definitions."""

from src.models.catalog import ProductRow, ProductStatus, ProductVariantRow
from src.models.order import (
    AddressSnapshot,
    BatchSnapshot,
    OrderItemRow,
    OrderRow,
    OrderStatus,
    PaymentRow,
    PaymentStatus,
    SubOrderRow,
    SubOrderStatus,
)

__all__ = [
    "AddressSnapshot",
    "BatchSnapshot",
    "OrderItemRow",
    "OrderRow",
    "OrderStatus",
    "PaymentRow",
    "PaymentStatus",
    "ProductRow",
    "ProductStatus",
    "ProductVariantRow",
    "SubOrderRow",
    "SubOrderStatus",
]
