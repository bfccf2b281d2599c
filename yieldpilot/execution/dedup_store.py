"""
Deduplication Store

Remembers which request ids (and which result payloads) a process has
already handled, so a trigger delivered twice produces one set of side
effects and one confirmation.

Supports Redis as a shared backend (SET NX EX is an atomic check-and-set)
with a bounded in-memory fallback. Entries expire after a TTL; the memory
backend additionally evicts its oldest entries once full.
"""

import threading
import time
from collections import OrderedDict
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class DedupStore:
    """
    Bounded, TTL-expiring set of handled keys.

    One instance is owned by each orchestrator; it is never a module global.
    """

    DEFAULT_TTL_SECONDS = 86400

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        redis_client: Any | None = None,
        prefix: str = "yieldpilot:dedup:",
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        """
        Initialize the store.

        Args:
            redis_client: Redis async client (optional, falls back to memory)
            prefix: Redis key prefix
            ttl_seconds: How long a claimed key is remembered
            max_entries: Memory backend capacity
        """
        self._redis = redis_client
        self._prefix = prefix
        self._ttl = ttl_seconds
        self._max_entries = max(1, max_entries)

        # key -> claim time, oldest first
        self._memory: OrderedDict[str, float] = OrderedDict()
        # Claims may come from several threads in a threaded host
        self._lock = threading.Lock()

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def claim(self, key: str) -> bool:
        """
        Atomically mark a key as handled.

        Returns:
            True if the caller is the first to claim the key,
            False if it was already claimed and has not expired
        """
        if self._redis:
            try:
                claimed = await self._redis.set(self._make_key(key), "1", nx=True, ex=self._ttl)
                return bool(claimed)
            except Exception as e:
                logger.warning("redis_claim_error", key=key, error=str(e))
                # Fall through to memory

        return self._claim_memory(key)

    async def contains(self, key: str) -> bool:
        """Check whether a key is currently claimed."""
        if self._redis:
            try:
                return bool(await self._redis.exists(self._make_key(key)))
            except Exception as e:
                logger.warning("redis_exists_error", key=key, error=str(e))

        with self._lock:
            self._expire_locked(time.monotonic())
            return key in self._memory

    def _claim_memory(self, key: str) -> bool:
        now = time.monotonic()
        with self._lock:
            self._expire_locked(now)
            if key in self._memory:
                return False

            if len(self._memory) >= self._max_entries:
                evicted, _ = self._memory.popitem(last=False)
                logger.warning(
                    "dedup_store_eviction", evicted=evicted, capacity=self._max_entries
                )

            self._memory[key] = now
            return True

    def _expire_locked(self, now: float) -> int:
        """Drop expired entries from the front of the queue. Caller holds the lock."""
        removed = 0
        while self._memory:
            oldest_key, claimed_at = next(iter(self._memory.items()))
            if now - claimed_at <= self._ttl:
                break
            del self._memory[oldest_key]
            removed += 1
        return removed

    async def cleanup_expired(self) -> dict[str, Any]:
        """
        Clean up expired entries from memory.

        Redis handles TTL automatically.
        """
        if self._redis:
            return {"removed": 0, "backend": "redis"}

        with self._lock:
            removed = self._expire_locked(time.monotonic())
            remaining = len(self._memory)
        return {"removed": removed, "remaining": remaining, "backend": "memory"}

    async def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        return {
            "backend": "redis" if self._redis else "memory",
            "memory_entries": len(self._memory),
            "max_entries": self._max_entries,
            "ttl_seconds": self._ttl,
        }

    async def close(self) -> None:
        """Release the Redis connection, if any."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None


async def create_dedup_store(
    redis_url: str | None = None,
    ttl_seconds: int = DedupStore.DEFAULT_TTL_SECONDS,
    max_entries: int = DedupStore.DEFAULT_MAX_ENTRIES,
) -> DedupStore:
    """
    Create a dedup store, connecting to Redis when a URL is given.

    Falls back to the memory backend if Redis is unreachable.
    """
    redis_client = None

    if redis_url:
        import redis.asyncio as redis

        try:
            redis_client = redis.from_url(redis_url, decode_responses=True)
            await redis_client.ping()
            logger.info("dedup_store_initialized", backend="redis")
        except Exception as e:
            logger.warning("redis_unavailable_using_memory", error=str(e))
            redis_client = None

    if redis_client is None:
        logger.info("dedup_store_initialized", backend="memory")

    return DedupStore(
        redis_client=redis_client,
        ttl_seconds=ttl_seconds,
        max_entries=max_entries,
    )
