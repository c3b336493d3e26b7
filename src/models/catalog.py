"""Catalog type definitions read during checkout."""

from typing import Literal, TypedDict


ProductStatus = Literal["draft", "pending_approval", "approved", "rejected", "archived"]


class ProductRow(TypedDict, total=False):
    """products table row (columns used by checkout)."""

    id: str
    producer_id: str
    batch_id: str | None
    title: str
    photos: list[str]
    status: ProductStatus


class ProductVariantRow(TypedDict, total=False):
    """product_variants table row."""

    id: str
    product_id: str
    size: str
    price: float
    stock: int
    weight: float
    sku: str | None
