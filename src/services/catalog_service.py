"""Catalog lookups used to resolve a cart into priced line items."""

import logging
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import InvalidCartItem, InvalidQuantity
from src.core.supabase import get_supabase_client
from src.models.catalog import ProductRow, ProductVariantRow

logger = logging.getLogger(__name__)

PUBLISHED_STATUS = "approved"


@dataclass(frozen=True)
class CartLine:
    """A cart entry as requested by the buyer."""

    product_id: str
    variant_id: str
    quantity: Any


@dataclass(frozen=True)
class ResolvedLine:
    """A cart entry joined against the catalog at resolution time."""

    product_id: str
    variant_id: str
    seller_id: str
    title: str
    size: str
    unit_price: Decimal
    quantity: int
    stock: int
    batch_id: str | None = None
    image_url: str | None = None


def _canonical_ids(line: CartLine) -> CartLine:
    """Normalize a line's ids to canonical UUID strings.

    Ids that are not UUIDs are rejected here; sent to PostgREST they would
    fail the whole batch read instead of naming the offending line.
    """
    try:
        product_id = str(UUID(str(line.product_id)))
        variant_id = str(UUID(str(line.variant_id)))
    except ValueError:
        raise InvalidCartItem(str(line.product_id), str(line.variant_id), "malformed id") from None
    return CartLine(product_id, variant_id, line.quantity)


def _validated_quantity(line: CartLine) -> int:
    quantity = line.quantity
    # bool is an int subclass; JSON true must not read as 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(line.variant_id, quantity)
    return quantity


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class CatalogService:
    """Service resolving cart lines against products and variants."""

    def __init__(self) -> None:
        """Initialize catalog service with Supabase client."""
        self.client = get_supabase_client()

    async def resolve(self, items: list[CartLine]) -> list[ResolvedLine]:
        """Resolve every cart line to authoritative catalog data.

        Products and variants for the whole cart are each read with a
        single query, so all lines see the same catalog snapshot. This is
        a point-in-time read: stock is checked but not reserved.

        Args:
            items: Cart lines in the order the buyer submitted them.

        Returns:
            list[ResolvedLine]: One resolved line per cart line, same order.

        Raises:
            InvalidQuantity: Quantity is not a positive integer or exceeds stock.
            InvalidCartItem: Product or variant is unknown, unpublished or malformed.
        """
        quantities = [_validated_quantity(line) for line in items]
        items = [_canonical_ids(line) for line in items]

        # Stock is compared against everything the cart asks of a variant
        requested: Counter[str] = Counter()
        for line, quantity in zip(items, quantities):
            requested[line.variant_id] += quantity

        products = await self._fetch_products({line.product_id for line in items})
        variants = await self._fetch_variants({line.variant_id for line in items})

        resolved: list[ResolvedLine] = []
        for line, quantity in zip(items, quantities):
            product = products.get(line.product_id)
            variant = variants.get(line.variant_id)

            if product is None:
                raise InvalidCartItem(line.product_id, line.variant_id, "product not found")
            if variant is None or str(variant.get("product_id")) != line.product_id:
                raise InvalidCartItem(line.product_id, line.variant_id, "variant not found")

            status = product.get("status")
            if status is not None and status != PUBLISHED_STATUS:
                raise InvalidCartItem(line.product_id, line.variant_id, "product is not available")

            title = product.get("title")
            size = variant.get("size")
            price = _to_decimal(variant.get("price"))
            seller_id = product.get("producer_id")
            if not title or not size or not seller_id or price is None or price <= 0:
                raise InvalidCartItem(line.product_id, line.variant_id, "product data incomplete")

            stock = int(variant.get("stock") or 0)
            if requested[line.variant_id] > stock:
                raise InvalidQuantity(line.variant_id, requested[line.variant_id], available=stock)

            photos = product.get("photos") or []
            resolved.append(
                ResolvedLine(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    seller_id=str(seller_id),
                    title=title,
                    size=size,
                    unit_price=price,
                    quantity=quantity,
                    stock=stock,
                    batch_id=product.get("batch_id"),
                    image_url=photos[0] if photos else None,
                )
            )

        logger.debug("Resolved %d cart lines across %d products", len(resolved), len(products))
        return resolved

    async def _fetch_products(self, product_ids: set[str]) -> dict[str, ProductRow]:
        response = (
            self.client.table("products")
            .select("id, producer_id, batch_id, title, photos, status")
            .in_("id", sorted(product_ids))
            .execute()
        )
        return {str(row["id"]): row for row in (response.data or [])}

    async def _fetch_variants(self, variant_ids: set[str]) -> dict[str, ProductVariantRow]:
        response = (
            self.client.table("product_variants")
            .select("id, product_id, size, price, stock")
            .in_("id", sorted(variant_ids))
            .execute()
        )
        return {str(row["id"]): row for row in (response.data or [])}
