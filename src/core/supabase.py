"""Supabase client singleton for database operations."""

from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from src.core.config import get_settings

# Tables a checkout touches; orders cascade to the last three.
CHECKOUT_TABLES = ("products", "product_variants", "orders", "payments", "sub_orders", "order_items")


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key, which bypasses RLS at the PostgREST level. Only
    use it for server-side writes after the caller has been authorized.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


async def check_database_connection() -> dict[str, Any]:
    """Probe every checkout table with a one-row read.

    Returns:
        dict: Connection status with 'healthy' boolean and, on failure, an
            'error' message naming the first table that could not be read.
    """
    try:
        client = get_supabase_client()
    except Exception as e:
        return {"healthy": False, "error": str(e)}

    for table in CHECKOUT_TABLES:
        try:
            client.table(table).select("id").limit(1).execute()
        except Exception as e:
            return {"healthy": False, "error": f"{table}: {e}"}
    return {"healthy": True}
