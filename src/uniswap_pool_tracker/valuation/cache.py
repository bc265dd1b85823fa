"""TTL cache for token USD prices.

Entries live in process memory. When a Redis client is supplied they are
mirrored there as well, so that restarts and sibling processes can reuse
recent quotes. Redis failures are logged and never affect the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600


@dataclass
class _Entry:
    price: float
    stored_at: float


class PriceCache:
    """Token price cache keyed by (token, quote side)."""

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        redis: Redis | None = None,
        key_prefix: str = "price:",
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._redis = redis
        self._key_prefix = key_prefix
        self._entries: dict[tuple[str, str], _Entry] = {}

    @staticmethod
    def _key(token: str, quote: str) -> tuple[str, str]:
        return (token.lower(), quote.lower())

    def _redis_key(self, token: str, quote: str) -> str:
        token_key, quote_key = self._key(token, quote)
        return f"{self._key_prefix}{token_key}:{quote_key}"

    async def get(self, token: str, quote: str) -> float | None:
        """Return a fresh cached price, or None."""
        key = self._key(token, quote)
        entry = self._entries.get(key)
        if entry is not None:
            if time.monotonic() - entry.stored_at < self._ttl_seconds:
                logger.debug("Price cache hit for %s/%s: %s", key[0], key[1], entry.price)
                return entry.price
            del self._entries[key]

        if self._redis is None:
            return None
        try:
            value = await self._redis.get(self._redis_key(token, quote))
        except Exception as e:
            logger.warning("Price cache get failed: %s", e)
            return None
        if value is None:
            return None
        price = float(value.decode() if isinstance(value, bytes) else value)
        self._entries[key] = _Entry(price=price, stored_at=time.monotonic())
        return price

    async def set(self, token: str, quote: str, price: float) -> None:
        self._entries[self._key(token, quote)] = _Entry(price=price, stored_at=time.monotonic())
        if self._redis is None:
            return
        try:
            await self._redis.set(self._redis_key(token, quote), str(price), ex=self._ttl_seconds)
        except Exception as e:
            logger.warning("Price cache set failed: %s", e)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
