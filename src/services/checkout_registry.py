"""In-memory TTL registry of pending checkouts and webhook-verified sessions."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    """A registered checkout with expiration."""

    nonce: str
    order_id: str | None
    expires_at: float
    verified: bool = False

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


@dataclass
class CheckoutRegistryConfig:
    """Configuration for the checkout registry."""

    ttl_seconds: int = 7200  # Matches the checkout cookie lifetime
    cleanup_interval_seconds: int = 600
    max_size: int = 10_000

    @classmethod
    def from_settings(cls) -> "CheckoutRegistryConfig":
        """Create config from application settings."""
        from src.core.config import get_settings
        settings = get_settings()
        return cls(ttl_seconds=settings.checkout_cookie_max_age)


class CheckoutRegistry:
    """Thread-safe registry keyed by Stripe session id.

    The webhook marks sessions verified; the confirmation endpoint reads
    and clears them. Sessions verified before their checkout is
    registered are remembered until the TTL passes.
    """

    def __init__(self, config: CheckoutRegistryConfig | None = None) -> None:
        """Initialize the checkout registry.

        Args:
            config: Optional registry configuration.
        """
        self.config = config or CheckoutRegistryConfig()
        self._entries: dict[str, RegistryEntry] = {}
        self._verified: dict[str, float] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Checkout registry cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Checkout registry cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            count = self.cleanup()
            if count > 0:
                logger.debug("Checkout registry cleaned up %d expired entries", count)

    def register(self, session_id: str, nonce: str, order_id: str | None = None) -> None:
        """Remember a checkout until the buyer returns or the TTL passes."""
        expires_at = time.time() + self.config.ttl_seconds
        with self._lock:
            if len(self._entries) >= self.config.max_size:
                self._evict_expired()
            self._entries[session_id] = RegistryEntry(
                nonce=nonce,
                order_id=order_id,
                expires_at=expires_at,
                verified=session_id in self._verified,
            )
        logger.debug("Registered checkout session %s (order %s)", session_id, order_id)

    def get_entry(self, session_id: str) -> RegistryEntry | None:
        """Get a pending checkout if it has not expired."""
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            if entry.is_expired():
                del self._entries[session_id]
                return None
            return entry

    def mark_verified(self, session_id: str) -> None:
        """Record that Stripe confirmed payment for the session."""
        with self._lock:
            self._verified[session_id] = time.time() + self.config.ttl_seconds
            entry = self._entries.get(session_id)
            if entry is not None:
                entry.verified = True
        logger.info("Checkout session %s verified", session_id)

    def is_verified(self, session_id: str) -> bool:
        with self._lock:
            expires_at = self._verified.get(session_id)
            if expires_at is None:
                return False
            if time.time() > expires_at:
                del self._verified[session_id]
                return False
            return True

    def clear(self, session_id: str) -> None:
        """Forget a session once the buyer has seen the confirmation."""
        with self._lock:
            self._entries.pop(session_id, None)
            self._verified.pop(session_id, None)

    def _evict_expired(self) -> int:
        """Remove expired entries. Must be called with lock held."""
        now = time.time()
        expired = [key for key, entry in self._entries.items() if entry.is_expired()]
        for key in expired:
            del self._entries[key]
        expired_verified = [key for key, expires_at in self._verified.items() if now > expires_at]
        for key in expired_verified:
            del self._verified[key]
        return len(expired) + len(expired_verified)

    def cleanup(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            return self._evict_expired()


# Global singleton instance
_checkout_registry: CheckoutRegistry | None = None


def get_checkout_registry() -> CheckoutRegistry:
    """Get or create the global checkout registry instance."""
    global _checkout_registry
    if _checkout_registry is None:
        _checkout_registry = CheckoutRegistry(CheckoutRegistryConfig.from_settings())
    return _checkout_registry


async def init_checkout_registry() -> CheckoutRegistry:
    """Initialize checkout registry with cleanup task. Call at app startup."""
    registry = get_checkout_registry()
    await registry.start_cleanup_task()
    return registry


async def shutdown_checkout_registry() -> None:
    """Shutdown checkout registry cleanup task. Call at app shutdown."""
    global _checkout_registry
    if _checkout_registry:
        await _checkout_registry.stop_cleanup_task()
