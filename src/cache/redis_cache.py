"""
Redis Cache Facade

Typed helpers over a shared Redis store:
- JSON (de)serialization
- Circuit breaker for resilience
- Explicit connect/close lifecycle owned by the process entry point
- Statistics tracking

Every operation degrades instead of raising: a dead store makes the
whole layer behave as "always miss" and "write no-op".
"""

import asyncio
import json
import logging
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass, field
from contextlib import asynccontextmanager

from redis.asyncio import Redis, ConnectionPool
from redis.exceptions import RedisError

from src.cache.config import CacheConfig, get_cache_config
from src.cache.exceptions import CacheUnavailable


logger = logging.getLogger(__name__)

TTLValue = Union[int, float, timedelta]

# Keys per UNLINK call when deleting a key family
DELETE_BATCH_SIZE = 500


@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0
    writes: int = 0
    deletes: int = 0
    latency_samples: List[float] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_latency_ms(self) -> float:
        recent = self.latency_samples[-100:]
        if not recent:
            return 0.0
        return sum(recent) / len(recent) * 1000

    def record_latency(self, seconds: float):
        self.latency_samples.append(seconds)
        if len(self.latency_samples) > 1000:
            self.latency_samples = self.latency_samples[-1000:]


@dataclass
class CircuitBreakerState:
    """Circuit breaker state tracking."""
    failures: int = 0
    last_failure: float = 0.0
    is_open: bool = False
    opened_at: float = 0.0


class CircuitBreaker:
    """
    Circuit breaker for the Redis connection.

    After `threshold` consecutive failures every cache call fails fast
    for `timeout` seconds, so a dead store costs requests nothing.
    """

    def __init__(self, threshold: int = 5, timeout: int = 30):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitBreakerState()
        self._lock = asyncio.Lock()

    async def is_available(self) -> bool:
        """Check if circuit allows requests."""
        if not self.state.is_open:
            return True

        if time.monotonic() - self.state.opened_at >= self.timeout:
            async with self._lock:
                # Half-open: let the next request probe the store
                self.state.is_open = False
                self.state.failures = 0
                logger.info("Circuit breaker closed, allowing cache requests")
            return True

        return False

    async def record_success(self):
        if self.state.failures == 0 and not self.state.is_open:
            return
        async with self._lock:
            self.state.failures = 0
            self.state.is_open = False

    async def record_failure(self):
        async with self._lock:
            self.state.failures += 1
            self.state.last_failure = time.monotonic()

            if self.state.failures >= self.threshold and not self.state.is_open:
                self.state.is_open = True
                self.state.opened_at = time.monotonic()
                logger.warning(
                    f"Cache circuit breaker opened after {self.state.failures} failures. "
                    f"Bypassing Redis for {self.timeout} seconds."
                )


def _ttl_seconds(ttl: Optional[TTLValue]) -> Optional[int]:
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return max(1, int(ttl.total_seconds()))
    return max(1, int(ttl))


def serialize_value(value: Any) -> str:
    """
    Serialize a Python value to a JSON string for caching.

    Datetimes become ISO strings; anything else unknown is stringified.
    """
    def default_handler(obj):
        if hasattr(obj, "isoformat"):
            return obj.isoformat()
        return str(obj)

    return json.dumps(value, default=default_handler, ensure_ascii=False)


def deserialize_value(data: Union[str, bytes, None]) -> Any:
    if not data:
        return None
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return json.loads(data)


class RedisCache:
    """
    Shared key-value cache store with JSON helpers.

    The client is constructed explicitly and passed to whoever needs it.
    `initialize()` connects with a bounded timeout; `close()` releases the
    pool. A pre-built client can be injected (tests, custom pools).
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        client: Optional[Redis] = None,
    ):
        self.config = config or get_cache_config()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = client
        self._owns_client = client is None
        self._circuit_breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
        ) if self.config.circuit_breaker_enabled else None
        self._stats = CacheStats()
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def connected(self) -> bool:
        return self._connected

    async def initialize(self) -> bool:
        """
        Create the connection pool and verify the store is reachable.

        Never raises: an unreachable store is logged and the cache runs
        degraded. Returns whether the initial ping succeeded.
        """
        if not self.config.enabled:
            logger.info("Cache disabled by configuration")
            return False

        async with self._lock:
            if self._redis is None:
                self._pool = ConnectionPool.from_url(
                    self.config.redis_url,
                    max_connections=self.config.redis_max_connections,
                    socket_timeout=self.config.redis_socket_timeout,
                    socket_connect_timeout=self.config.redis_connect_timeout,
                    decode_responses=True,
                )
                self._redis = Redis(connection_pool=self._pool)

            try:
                await asyncio.wait_for(
                    self._redis.ping(),
                    timeout=self.config.redis_connect_timeout,
                )
                self._connected = True
                logger.info("Redis cache connected")
            except (RedisError, OSError, asyncio.TimeoutError) as e:
                self._connected = False
                self._stats.errors += 1
                if self._circuit_breaker:
                    await self._circuit_breaker.record_failure()
                logger.warning(f"Redis unavailable at startup, cache degraded to misses: {e}")

        return self._connected

    async def close(self):
        """Close the client and its connection pool."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
        if self._pool is not None:
            await self._pool.disconnect()
        if self._owns_client:
            self._redis = None
            self._pool = None
        self._connected = False
        logger.info("Redis cache closed")

    @asynccontextmanager
    async def _guard(self, operation: str):
        """Yield the client, mapping every store failure to CacheUnavailable."""
        if self._redis is None:
            raise CacheUnavailable("Redis client not initialized")

        if self._circuit_breaker and not await self._circuit_breaker.is_available():
            raise CacheUnavailable("Circuit breaker is open")

        try:
            yield self._redis
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            self._connected = False
            if self._circuit_breaker:
                await self._circuit_breaker.record_failure()
            raise CacheUnavailable(f"{operation} failed: {e}") from e

        self._connected = True
        if self._circuit_breaker:
            await self._circuit_breaker.record_success()

    # =========================================================================
    # Raw Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        """
        Get a raw string value.

        Returns None on miss, when the cache is disabled, or when Redis
        is unavailable.
        """
        if not self.config.enabled:
            return None

        start_time = time.monotonic()
        try:
            async with self._guard("GET") as client:
                data = await client.get(key)
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache read skipped for {key}: {e}")
            return None

        self._stats.record_latency(time.monotonic() - start_time)
        if data is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return data

    async def set(self, key: str, value: str, ttl: Optional[TTLValue] = None) -> bool:
        """Store a raw string value with optional expiry. Returns False on failure."""
        if not self.config.enabled:
            return False

        seconds = _ttl_seconds(ttl)
        start_time = time.monotonic()
        try:
            async with self._guard("SET") as client:
                if seconds:
                    await client.setex(key, seconds, value)
                else:
                    await client.set(key, value)
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache write skipped for {key}: {e}")
            return False

        self._stats.record_latency(time.monotonic() - start_time)
        self._stats.writes += 1
        return True

    # =========================================================================
    # JSON Helpers
    # =========================================================================

    async def get_json(self, key: str) -> Optional[Any]:
        """Fetch and parse a JSON value. None on miss, parse failure or store error."""
        data = await self.get(key)
        if data is None:
            return None

        try:
            return deserialize_value(data)
        except (ValueError, TypeError) as e:
            self._stats.errors += 1
            logger.error(f"Cache entry for {key} is not valid JSON: {e}")
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[TTLValue] = None) -> bool:
        """Serialize and store a value. Returns False on any failure."""
        try:
            serialized = serialize_value(value)
        except (TypeError, ValueError) as e:
            self._stats.errors += 1
            logger.error(f"Cannot serialize cache value for {key}: {e}")
            return False
        return await self.set(key, serialized, ttl)

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete(self, key: str) -> bool:
        """
        Delete a key.

        Deleting an absent key is a successful no-op. Returns False only
        when the store could not be reached.
        """
        return await self.delete_many(key) >= 0

    async def delete_many(self, *keys: str) -> int:
        """Delete exact keys. Returns the number removed, -1 if the store failed."""
        if not self.config.enabled:
            return -1
        if not keys:
            return 0

        try:
            async with self._guard("UNLINK") as client:
                removed = await client.unlink(*keys)
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache delete skipped for {', '.join(keys)}: {e}")
            return -1

        self._stats.deletes += removed
        return removed

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Redis has no native delete-by-prefix, so keys are collected with
        SCAN and removed in batches. Returns the count deleted, or -1
        if the store could not be scanned or cleared.
        """
        if not self.config.enabled:
            return 0

        try:
            async with self._guard("SCAN") as client:
                keys = []
                async for key in client.scan_iter(match=pattern, count=100):
                    keys.append(key)

                deleted = 0
                for start in range(0, len(keys), DELETE_BATCH_SIZE):
                    deleted += await client.unlink(*keys[start:start + DELETE_BATCH_SIZE])
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache pattern delete skipped for {pattern}: {e}")
            return -1

        if deleted:
            logger.info(f"Deleted {deleted} keys matching {pattern}")
        else:
            logger.debug(f"No keys found for pattern: {pattern}")
        self._stats.deletes += deleted
        return deleted

    async def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        if not self.config.enabled:
            return False

        try:
            async with self._guard("EXISTS") as client:
                return await client.exists(key) > 0
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Cache exists check skipped for {key}: {e}")
            return False

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds. -1 if no TTL, -2 if missing or unavailable."""
        if not self.config.enabled:
            return -2

        try:
            async with self._guard("TTL") as client:
                return await client.ttl(key)
        except CacheUnavailable:
            self._stats.errors += 1
            return -2

    # =========================================================================
    # Pub/Sub
    # =========================================================================

    async def publish(self, channel: str, message: str) -> bool:
        """Publish a message. Best effort: no delivery guarantee, False on failure."""
        if not self.config.enabled:
            return False

        try:
            async with self._guard("PUBLISH") as client:
                receivers = await client.publish(channel, message)
        except CacheUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Publish to {channel} skipped: {e}")
            return False

        logger.debug(f"Published to {channel} ({receivers} subscribers)")
        return True

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        return {
            "enabled": self.config.enabled,
            "connected": self._connected,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "writes": self._stats.writes,
            "deletes": self._stats.deletes,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "avg_latency_ms": round(self._stats.avg_latency_ms, 2),
            "circuit_breaker_open": (
                self._circuit_breaker.state.is_open
                if self._circuit_breaker else False
            ),
        }

    async def health_check(self) -> Dict:
        """Ping the store and report latency and statistics."""
        if not self.config.enabled:
            return {"healthy": True, "status": "disabled", "stats": self.get_stats()}

        start = time.monotonic()
        try:
            async with self._guard("PING") as client:
                await asyncio.wait_for(
                    client.ping(),
                    timeout=self.config.redis_connect_timeout,
                )
        except CacheUnavailable as e:
            return {
                "healthy": False,
                "status": "error",
                "error": str(e),
                "stats": self.get_stats(),
            }

        return {
            "healthy": True,
            "status": "connected",
            "latency_ms": round((time.monotonic() - start) * 1000, 2),
            "stats": self.get_stats(),
        }
