"""Split a resolved cart into per-seller sub-order drafts.

Money is handled as Decimal and rounded half-up to cents. Shipping is
divided evenly across distinct sellers regardless of item count or weight;
leftover cents go one each to the first sellers so the shares always add
back up to the shipping total.
"""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from src.models.order import BatchSnapshot
from src.services.catalog_service import ResolvedLine

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round a money amount half-up to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Decimal) -> int:
    """Convert a money amount to integer cents."""
    return int(quantize_money(value) * 100)


@dataclass(frozen=True)
class LineItemDraft:
    """An order line with its catalog data frozen at purchase time."""

    product_id: str
    variant_id: str
    product_title: str
    variant_size: str
    quantity: int
    unit_price: Decimal
    gst: Decimal
    batch_snapshot: BatchSnapshot
    image_url: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class SubOrderDraft:
    """Everything one seller fulfils within an order, before persistence."""

    seller_id: str
    items: list[LineItemDraft] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    shipping_cost: Decimal = Decimal("0.00")
    platform_fee: Decimal = Decimal("0.00")
    gst: Decimal = Decimal("0.00")

    @property
    def total(self) -> Decimal:
        """Amount charged for this seller's part (GST is price-inclusive)."""
        return self.subtotal + self.shipping_cost


def batch_snapshot_for(line: ResolvedLine) -> BatchSnapshot:
    # Region, harvest date and floral sources are not joined yet; only the
    # batch reference is frozen.
    return {
        "batch_id": line.batch_id,
        "region": "",
        "harvest_date": "",
        "floral_sources": [],
    }


def split_shipping(shipping_total: Decimal, seller_count: int) -> list[Decimal]:
    """Divide shipping evenly across sellers, exact to the cent.

    Args:
        shipping_total: Total shipping charged for the order.
        seller_count: Number of distinct sellers.

    Returns:
        list[Decimal]: One share per seller; shares sum to shipping_total.
    """
    if seller_count <= 0:
        return []
    total_cents = to_minor_units(shipping_total)
    base, remainder = divmod(total_cents, seller_count)
    return [
        (Decimal(base + (1 if index < remainder else 0)) * CENT).quantize(CENT, rounding=ROUND_DOWN)
        for index in range(seller_count)
    ]


def partition_lines(
    lines: list[ResolvedLine],
    shipping_total: Decimal,
    platform_fee_rate: Decimal,
    gst_rate: Decimal,
) -> list[SubOrderDraft]:
    """Group resolved lines into one draft per seller.

    Sellers appear in the order they are first seen in the cart and lines
    keep their cart order within each seller.

    Args:
        lines: Resolved cart lines.
        shipping_total: Flat shipping for the whole order.
        platform_fee_rate: Fraction of each seller subtotal kept by the platform.
        gst_rate: Fraction of the unit price reported as GST per line.

    Returns:
        list[SubOrderDraft]: Exactly one draft per distinct seller.
    """
    drafts: dict[str, SubOrderDraft] = {}
    for line in lines:
        draft = drafts.setdefault(line.seller_id, SubOrderDraft(seller_id=line.seller_id))
        draft.items.append(
            LineItemDraft(
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_title=line.title,
                variant_size=line.size,
                quantity=line.quantity,
                unit_price=line.unit_price,
                gst=quantize_money(line.unit_price * gst_rate),
                batch_snapshot=batch_snapshot_for(line),
                image_url=line.image_url,
            )
        )

    shares = split_shipping(shipping_total, len(drafts))
    for draft, share in zip(drafts.values(), shares):
        draft.subtotal = quantize_money(sum((item.line_total for item in draft.items), Decimal("0")))
        draft.shipping_cost = share
        draft.platform_fee = quantize_money(draft.subtotal * platform_fee_rate)
        draft.gst = quantize_money(sum((item.gst * item.quantity for item in draft.items), Decimal("0")))

    return list(drafts.values())
