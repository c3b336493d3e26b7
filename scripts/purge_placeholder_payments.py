#!/usr/bin/env python
"""Script to delete orders abandoned with a placeholder payment session.

A checkout binds its payment row to the real Stripe session id before the
request returns, or deletes the order. A process crash between those steps
can still leave a payment whose session id is ``pending_<nonce>``. This
script removes such orders once they are older than
PLACEHOLDER_PAYMENT_MAX_AGE_MINUTES.

Usage:
    python scripts/purge_placeholder_payments.py [--dry-run]

Requirements:
    - SUPABASE_URL and SUPABASE_SECRET_KEY environment variables must be set
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import get_settings
from src.services.order_service import OrderService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def purge_placeholder_orders(dry_run: bool = False) -> dict[str, int]:
    """Delete orders whose payment never received a real session id.

    Stock reserved by a deleted order is returned to its variants.

    Args:
        dry_run: Only report what would be deleted.

    Returns:
        dict: Counts of found, deleted and failed orders.
    """
    settings = get_settings()
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.placeholder_payment_max_age_minutes)
    service = OrderService()

    order_ids = await service.list_stale_placeholder_orders(older_than=cutoff)
    logger.info("Found %d orders with placeholder payments older than %s", len(order_ids), cutoff.isoformat())

    deleted = 0
    failed = 0
    for order_id in order_ids:
        if dry_run:
            logger.info("Would delete order %s", order_id)
            continue
        try:
            await service.delete_order_releasing_stock(order_id)
            deleted += 1
        except Exception as e:
            logger.error("Failed to delete order %s: %s", order_id, str(e))
            failed += 1

    return {"found": len(order_ids), "deleted": deleted, "failed": failed}


async def main() -> None:
    """Main entry point for the purge script."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="List orders without deleting them")
    args = parser.parse_args()

    try:
        results = await purge_placeholder_orders(dry_run=args.dry_run)
    except Exception as e:
        logger.error("Purge failed: %s", e, exc_info=True)
        sys.exit(1)

    logger.info(
        "Placeholder purge complete: found=%d deleted=%d failed=%d",
        results["found"],
        results["deleted"],
        results["failed"],
    )
    if results["failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
