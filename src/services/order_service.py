"""Order aggregate persistence and queries."""

import logging
import secrets
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from src.api.middleware.error_handler import (
    AuthorizationError,
    BadRequestError,
    NotFoundError,
    OrderPersistenceError,
    StockRaceLost,
)
from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.models.order import AddressSnapshot, OrderStatus, PaymentRow, PaymentStatus, SubOrderStatus
from src.schemas.auth import UserContext
from src.services.order_partitioner import SubOrderDraft, quantize_money

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "pending_"

ORDER_SELECT = "*, sub_orders(*, order_items(*)), payments(*)"

# Happy-path fulfillment sequence; each status may only advance one step
SUB_ORDER_FLOW: list[SubOrderStatus] = ["pending", "confirmed", "processing", "packed", "shipped", "delivered"]
TERMINAL_SUB_ORDER_STATUSES = frozenset({"delivered", "cancelled", "refunded"})

STOCK_CAS_ATTEMPTS = 3

# Payment statuses each webhook-driven status may be reached from
PAYMENT_SOURCE_STATUSES: dict[str, list[PaymentStatus]] = {
    "processing": ["pending"],
    "succeeded": ["pending", "processing"],
    "failed": ["pending", "processing"],
}


def placeholder_session_id(nonce: str) -> str:
    """Placeholder stored on the payment row until Stripe returns a session id."""
    return f"{PLACEHOLDER_PREFIX}{nonce}"


def is_placeholder_session_id(session_id: str | None) -> bool:
    return bool(session_id) and session_id.startswith(PLACEHOLDER_PREFIX)


def generate_order_number(prefix: str, now: datetime | None = None) -> str:
    """Human-readable order number, e.g. HJ-20260119-0427."""
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{now:%Y%m%d}-{secrets.randbelow(10_000):04d}"


def can_transition_sub_order(current: str, target: str) -> bool:
    """Check whether a sub-order may move from current to target status."""
    if current in TERMINAL_SUB_ORDER_STATUSES or current == target:
        return False
    if target in ("cancelled", "refunded"):
        return True
    if current not in SUB_ORDER_FLOW or target not in SUB_ORDER_FLOW:
        return False
    return SUB_ORDER_FLOW.index(target) == SUB_ORDER_FLOW.index(current) + 1


def derive_order_status(statuses: list[str]) -> OrderStatus:
    """Derive the parent order status from its sub-order statuses."""
    if not statuses:
        return "pending"
    if all(s == "delivered" for s in statuses):
        return "delivered"
    if all(s == "cancelled" for s in statuses):
        return "cancelled"
    if all(s in ("shipped", "delivered") for s in statuses):
        return "shipped"
    if any(s in ("shipped", "delivered") for s in statuses):
        return "partially_shipped"
    if all(s == "pending" for s in statuses):
        return "pending"
    return "confirmed"


def _money(value: Decimal) -> float:
    return float(quantize_money(value))


def _assemble_order(row: dict[str, Any], seller_id: str | None = None) -> dict[str, Any]:
    """Turn an embedded-select row into the nested order shape.

    When seller_id is given, only that seller's sub-orders are kept.
    """
    order = dict(row)
    sub_orders = []
    for sub_order in order.pop("sub_orders", None) or []:
        if seller_id is not None and str(sub_order.get("seller_id")) != seller_id:
            continue
        sub_order = dict(sub_order)
        sub_order["items"] = sub_order.pop("order_items", None) or []
        sub_orders.append(sub_order)
    order["sub_orders"] = sub_orders

    payments = order.pop("payments", None)
    if isinstance(payments, list):
        order["payment"] = payments[0] if payments else None
    else:
        order["payment"] = payments
    return order


class OrderService:
    """Service for creating, reading and updating order aggregates."""

    def __init__(self) -> None:
        """Initialize order service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = get_settings()

    # Checkout writes

    async def create_order(
        self,
        buyer_id: str,
        shipping_address: AddressSnapshot,
        drafts: list[SubOrderDraft],
        placeholder_session: str,
    ) -> dict[str, Any]:
        """Persist an order with its payment placeholder, sub-orders and items.

        Every row is written before any payment provider call so a webhook
        always finds a payment row to update. If any write after the order
        row fails, the order is deleted (cascading to its children) and the
        failure surfaces as OrderPersistenceError.

        Args:
            buyer_id: Buyer user id (or the guest buyer id).
            shipping_address: Address snapshot frozen on the order.
            drafts: Per-seller drafts from the partitioner; at least one.
            placeholder_session: Placeholder payment session id.

        Returns:
            dict: The inserted orders row.

        Raises:
            OrderPersistenceError: If the aggregate could not be written.
            StockRaceLost: If stock reservation is enabled and a variant sold out.
        """
        if not drafts:
            raise OrderPersistenceError("Cannot create an order without sub-orders")

        subtotal = sum((d.subtotal for d in drafts), Decimal("0"))
        shipping_total = sum((d.shipping_cost for d in drafts), Decimal("0"))
        platform_fee_total = sum((d.platform_fee for d in drafts), Decimal("0"))
        gst_total = sum((d.gst for d in drafts), Decimal("0"))
        total = subtotal + shipping_total

        order_data = {
            "buyer_id": buyer_id,
            "order_number": generate_order_number(self.settings.order_number_prefix),
            "status": "pending",
            "subtotal": _money(subtotal),
            "shipping_total": _money(shipping_total),
            "platform_fee_total": _money(platform_fee_total),
            "gst_total": _money(gst_total),
            "total": _money(total),
            "shipping_address": dict(shipping_address),
            "billing_address": None,
        }

        try:
            order_response = self.client.table("orders").insert(order_data).execute()
            order = order_response.data[0]
        except Exception as e:
            logger.error("Failed to insert order for buyer %s: %s", buyer_id, str(e))
            raise OrderPersistenceError() from e

        order_id = order["id"]

        try:
            self.client.table("payments").insert({
                "order_id": order_id,
                "stripe_checkout_session_id": placeholder_session,
                "amount": _money(total),
                "currency": self.settings.checkout_currency,
                "status": "pending",
            }).execute()

            for draft in drafts:
                sub_order_response = self.client.table("sub_orders").insert({
                    "order_id": order_id,
                    "seller_id": draft.seller_id,
                    "status": "pending",
                    "subtotal": _money(draft.subtotal),
                    "shipping_cost": _money(draft.shipping_cost),
                    "platform_fee": _money(draft.platform_fee),
                    "gst": _money(draft.gst),
                    "total": _money(draft.total),
                }).execute()
                sub_order_id = sub_order_response.data[0]["id"]

                self.client.table("order_items").insert([
                    {
                        "sub_order_id": sub_order_id,
                        "product_id": item.product_id,
                        "variant_id": item.variant_id,
                        "product_title": item.product_title,
                        "variant_size": item.variant_size,
                        "quantity": item.quantity,
                        "unit_price": _money(item.unit_price),
                        "gst": _money(item.gst),
                        "batch_snapshot": item.batch_snapshot,
                    }
                    for item in draft.items
                ]).execute()
        except Exception as e:
            logger.error("Failed to write children of order %s: %s", order_id, str(e))
            await self._discard_order(order_id)
            raise OrderPersistenceError() from e

        if self.settings.checkout_reserve_stock:
            try:
                await self.reserve_stock(drafts)
            except StockRaceLost:
                await self._discard_order(order_id)
                raise
            except Exception as e:
                logger.error("Stock reservation failed for order %s: %s", order_id, str(e))
                await self._discard_order(order_id)
                raise OrderPersistenceError() from e

        logger.info(
            "Created order %s (%s) with %d sub-orders, total %s",
            order_id,
            order["order_number"],
            len(drafts),
            order_data["total"],
        )
        return order

    async def _discard_order(self, order_id: str) -> None:
        try:
            await self.delete_order(order_id)
        except Exception as e:
            logger.error("Cleanup of partial order %s failed: %s", order_id, str(e))

    async def update_payment_session_id(self, order_id: str, session_id: str) -> PaymentRow:
        """Replace the placeholder session id with the real Stripe session id.

        Raises:
            LookupError: If no payment row exists for the order.
        """
        response = (
            self.client.table("payments")
            .update({"stripe_checkout_session_id": session_id})
            .eq("order_id", order_id)
            .execute()
        )
        if not response.data:
            raise LookupError(f"No payment row for order {order_id}")
        return response.data[0]

    async def delete_order(self, order_id: str) -> None:
        """Delete an order; payments, sub-orders and items cascade.

        Deleting an order that is already gone is a no-op.
        """
        self.client.table("orders").delete().eq("id", order_id).execute()
        logger.info("Deleted order %s", order_id)

    async def ensure_user_exists(self, user: UserContext) -> None:
        """Create the users row on first checkout; existing rows are untouched."""
        try:
            self.client.table("users").upsert(
                {
                    "id": str(user.user_id),
                    "email": user.email,
                    "phone": user.phone,
                    "role": "consumer",
                    "status": "active",
                },
                on_conflict="id",
                ignore_duplicates=True,
            ).execute()
        except Exception as e:
            logger.warning("Could not ensure user row for %s: %s", user.user_id, str(e))

    # Stock reservation

    async def reserve_stock(self, drafts: list[SubOrderDraft]) -> None:
        """Decrement stock for every ordered variant with compare-and-swap.

        Lines for the same variant are summed first. If any variant cannot
        be decremented, decrements already applied are restored before the
        error propagates.

        Raises:
            StockRaceLost: If a variant no longer has enough stock.
        """
        requested: Counter[str] = Counter()
        for draft in drafts:
            for item in draft.items:
                requested[item.variant_id] += item.quantity

        reserved: dict[str, int] = {}
        try:
            for variant_id, quantity in requested.items():
                await self._adjust_stock(variant_id, -quantity)
                reserved[variant_id] = quantity
        except Exception:
            await self.restore_stock(reserved)
            raise

    async def restore_stock(self, quantities: dict[str, int]) -> None:
        """Add quantities back to variant stock. Failures are logged."""
        for variant_id, quantity in quantities.items():
            try:
                await self._adjust_stock(variant_id, quantity)
            except Exception as e:
                logger.error("Failed to restore %d units to variant %s: %s", quantity, variant_id, str(e))

    async def held_stock(self, order_id: str) -> dict[str, int]:
        """Quantities per variant held by an order's items."""
        response = (
            self.client.table("sub_orders")
            .select("id, order_items(variant_id, quantity)")
            .eq("order_id", order_id)
            .execute()
        )
        quantities: Counter[str] = Counter()
        for sub_order in response.data or []:
            for item in sub_order.get("order_items") or []:
                quantities[str(item["variant_id"])] += int(item["quantity"])
        return dict(quantities)

    async def restore_order_stock(self, order_id: str) -> None:
        """Return the stock held by an order's items."""
        quantities = await self.held_stock(order_id)
        if quantities:
            await self.restore_stock(quantities)
            logger.info("Restored stock for %d variants of order %s", len(quantities), order_id)

    async def delete_order_releasing_stock(self, order_id: str) -> None:
        """Delete an order and, once it is gone, return the stock it held.

        Quantities are read before the delete cascades away the items. If
        the delete fails nothing is restored, so the order keeps its stock
        until whatever removes or cancels it later releases it.
        """
        quantities = await self.held_stock(order_id) if self.settings.checkout_reserve_stock else {}
        await self.delete_order(order_id)
        if quantities:
            await self.restore_stock(quantities)
            logger.info("Released stock for %d variants of deleted order %s", len(quantities), order_id)

    async def _adjust_stock(self, variant_id: str, delta: int) -> int:
        for _ in range(STOCK_CAS_ATTEMPTS):
            current = (
                self.client.table("product_variants")
                .select("stock")
                .eq("id", variant_id)
                .maybe_single()
                .execute()
            )
            if not current or not current.data:
                raise StockRaceLost(variant_id)

            observed = int(current.data.get("stock") or 0)
            updated = observed + delta
            if updated < 0:
                raise StockRaceLost(variant_id)

            response = (
                self.client.table("product_variants")
                .update({"stock": updated})
                .eq("id", variant_id)
                .eq("stock", observed)
                .execute()
            )
            if response.data:
                return updated
            logger.debug("Stock for variant %s changed concurrently, retrying", variant_id)

        raise StockRaceLost(variant_id)

    # Payments

    async def get_payment_by_session(self, session_id: str) -> PaymentRow | None:
        """Get the payment row bound to a Stripe session id."""
        response = (
            self.client.table("payments")
            .select("*")
            .eq("stripe_checkout_session_id", session_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def reconcile_payment_by_nonce(self, nonce: str, session_id: str) -> PaymentRow | None:
        """Bind a still-placeholder payment row to its real session id.

        Used by the webhook when the checkout request never got to upgrade
        the row itself.
        """
        response = (
            self.client.table("payments")
            .update({"stripe_checkout_session_id": session_id})
            .eq("stripe_checkout_session_id", placeholder_session_id(nonce))
            .execute()
        )
        if not response.data:
            return None
        logger.info("Reconciled placeholder payment for nonce %s to session %s", nonce, session_id)
        return response.data[0]

    async def update_payment_status(
        self,
        session_id: str,
        status: PaymentStatus,
        payment_intent_id: str | None = None,
    ) -> str | None:
        """Move a payment to a new status, confirming the order when it succeeds.

        Only payments in a status that may lead to the target are updated, so
        a redelivered event changes nothing and a settled payment is never
        downgraded.

        Returns:
            str | None: The order id, or None if no payment made the transition.
        """
        update_data: dict[str, Any] = {"status": status}
        if payment_intent_id:
            update_data["stripe_payment_intent_id"] = payment_intent_id
        if status == "succeeded":
            update_data["paid_at"] = datetime.now(timezone.utc).isoformat()

        response = (
            self.client.table("payments")
            .update(update_data)
            .eq("stripe_checkout_session_id", session_id)
            .in_("status", PAYMENT_SOURCE_STATUSES.get(status, []))
            .execute()
        )
        if not response.data:
            logger.info("No payment for session %s awaiting %s", session_id, status)
            return None

        order_id = response.data[0]["order_id"]
        if status == "succeeded":
            await self._set_order_status(order_id, "confirmed")
        logger.info("Payment for order %s marked %s", order_id, status)
        return order_id

    async def cancel_order(self, order_id: str) -> None:
        """Cancel a pending order and its pending sub-orders."""
        await self._set_order_status(order_id, "cancelled")
        logger.info("Order %s cancelled", order_id)

    async def _set_order_status(self, order_id: str, status: str) -> None:
        # Sub-orders a seller has already moved on are left alone
        (
            self.client.table("orders")
            .update({"status": status})
            .eq("id", order_id)
            .eq("status", "pending")
            .execute()
        )
        (
            self.client.table("sub_orders")
            .update({"status": status})
            .eq("order_id", order_id)
            .eq("status", "pending")
            .execute()
        )

    async def list_stale_placeholder_orders(self, older_than: datetime) -> list[str]:
        """Order ids whose payment still has a placeholder session id."""
        response = (
            self.client.table("payments")
            .select("order_id")
            .like("stripe_checkout_session_id", f"{PLACEHOLDER_PREFIX}%")
            .lt("created_at", older_than.isoformat())
            .execute()
        )
        return sorted({str(row["order_id"]) for row in response.data or []})

    # Queries

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Get an order with its sub-orders, items and payment."""
        response = (
            self.client.table("orders")
            .select(ORDER_SELECT)
            .eq("id", order_id)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            return None
        return _assemble_order(response.data)

    async def get_order_for_user(self, order_id: str, user_id: str) -> dict[str, Any]:
        """Get an order visible to the user as buyer or participating seller.

        Sellers only see their own sub-orders.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the user is neither buyer nor seller on it.
        """
        order = await self.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")

        if str(order.get("buyer_id")) == user_id:
            return order

        seller_sub_orders = [so for so in order["sub_orders"] if str(so.get("seller_id")) == user_id]
        if not seller_sub_orders:
            raise AuthorizationError("You do not have access to this order")
        order["sub_orders"] = seller_sub_orders
        return order

    async def list_orders(
        self,
        user_id: str,
        role: str = "buyer",
        status: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[dict[str, Any]], int]:
        """List orders for a buyer, or orders containing a seller's sub-orders.

        For sellers the status filter applies to their sub-orders and each
        order only carries that seller's sub-orders.

        Returns:
            tuple: (orders on the requested page, total matching orders).
        """
        start = (page - 1) * page_size
        end = start + page_size - 1

        if role == "buyer":
            query = (
                self.client.table("orders")
                .select(ORDER_SELECT, count="exact")
                .eq("buyer_id", user_id)
            )
            if status:
                query = query.eq("status", status)
            if date_from:
                query = query.gte("created_at", date_from)
            if date_to:
                query = query.lte("created_at", date_to)
            response = query.order("created_at", desc=True).range(start, end).execute()
            orders = [_assemble_order(row) for row in response.data or []]
            total = response.count if response.count is not None else len(orders)
            return orders, total

        sub_order_response = (
            self.client.table("sub_orders")
            .select("order_id")
            .eq("seller_id", user_id)
            .execute()
        )
        order_ids = sorted({str(row["order_id"]) for row in sub_order_response.data or []})
        if not order_ids:
            return [], 0

        query = self.client.table("orders").select(ORDER_SELECT).in_("id", order_ids)
        if date_from:
            query = query.gte("created_at", date_from)
        if date_to:
            query = query.lte("created_at", date_to)
        response = query.order("created_at", desc=True).execute()

        orders = [_assemble_order(row, seller_id=user_id) for row in response.data or []]
        orders = [order for order in orders if order["sub_orders"]]
        if status:
            orders = [o for o in orders if any(so.get("status") == status for so in o["sub_orders"])]
        return orders[start:end + 1], len(orders)

    # Fulfillment

    async def update_sub_order_status(
        self,
        sub_order_id: str,
        seller_id: str,
        status: SubOrderStatus,
    ) -> dict[str, Any]:
        """Advance a seller's sub-order and re-derive the parent order status.

        Raises:
            NotFoundError: If the sub-order does not exist.
            AuthorizationError: If the sub-order belongs to another seller.
            BadRequestError: If the transition is not allowed.
        """
        response = (
            self.client.table("sub_orders")
            .select("*")
            .eq("id", sub_order_id)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Sub-order not found")

        sub_order = response.data
        if str(sub_order.get("seller_id")) != seller_id:
            raise AuthorizationError("You do not have access to this sub-order")

        current = sub_order.get("status", "pending")
        if not can_transition_sub_order(current, status):
            raise BadRequestError(
                f"Cannot change sub-order status from {current} to {status}",
                error_type="invalid_status_transition",
            )

        update_data: dict[str, Any] = {"status": status}
        updated = (
            self.client.table("sub_orders")
            .update(update_data)
            .eq("id", sub_order_id)
            .execute()
        )
        order_id = sub_order["order_id"]

        siblings = (
            self.client.table("sub_orders")
            .select("status")
            .eq("order_id", order_id)
            .execute()
        )
        order_status = derive_order_status([row["status"] for row in siblings.data or []])
        self.client.table("orders").update({"status": order_status}).eq("id", order_id).execute()

        logger.info(
            "Sub-order %s moved %s -> %s; order %s is now %s",
            sub_order_id,
            current,
            status,
            order_id,
            order_status,
        )
        return updated.data[0] if updated.data else {**sub_order, **update_data}
