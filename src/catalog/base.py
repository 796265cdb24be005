"""
Read-Through Accessor

Every cacheable catalog resource is served by the same state machine:

    CHECK_CACHE -> HIT: return
                -> MISS: FETCH_SOURCE -> SHAPE_RESPONSE -> POPULATE_CACHE -> return

The returned envelope carries `source` ('cache' or 'api') so callers and
tests can tell which branch served them. Cache trouble never surfaces
here; source trouble surfaces as a typed UpstreamFetchError.
"""

import asyncio
import logging
from datetime import datetime, timezone, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from sqlalchemy.orm import sessionmaker

from src.cache.config import CacheConfig
from src.cache.exceptions import (
    ResourceNotFound,
    UpstreamFetchError,
    UpstreamFetchTimeout,
)
from src.cache.redis_cache import RedisCache
from src.catalog.shaping import DEFAULT_STORE_NAME, missing_fields, require_fields
from src.database.session import session_scope


logger = logging.getLogger(__name__)

Envelope = Dict[str, Any]

SOURCE_CACHE = "cache"
SOURCE_API = "api"


class ReadThroughAccessor:
    """Base class for per-resource accessors."""

    resource = "catalog"

    def __init__(
        self,
        cache: RedisCache,
        session_factory: sessionmaker,
        config: Optional[CacheConfig] = None,
        store_name: str = DEFAULT_STORE_NAME,
    ):
        self.cache = cache
        self.session_factory = session_factory
        self.config = config or cache.config
        self.store_name = store_name

    # =========================================================================
    # FETCH_SOURCE
    # =========================================================================

    def _run_query(self, fn: Callable, *args) -> Any:
        with session_scope(self.session_factory) as db:
            return fn(db, *args)

    async def fetch(self, fn: Callable, *args, resource: Optional[str] = None) -> Any:
        """
        Run a repository function under the source deadline.

        Raises:
            UpstreamFetchTimeout: The deadline passed; the caller stops waiting
            ResourceNotFound: Passed through untouched
            UpstreamFetchError: Any other source failure
        """
        resource = resource or self.resource
        timeout = self.config.fetch_timeout
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._run_query, fn, *args),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Source fetch for {resource} timed out after {timeout}s")
            raise UpstreamFetchTimeout(resource, timeout)
        except (ResourceNotFound, UpstreamFetchError):
            raise
        except Exception as e:
            logger.error(f"Source fetch for {resource} failed: {e}")
            raise UpstreamFetchError(f"Failed to fetch {resource}", resource) from e

    async def cached_value(
        self,
        key: str,
        ttl: Union[int, timedelta],
        load: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Plain read-through for an intermediate value (no envelope, no provenance)."""
        value = await self.cache.get_json(key)
        if value is not None:
            return value

        value = await load()
        if not await self.cache.set_json(key, value, ttl):
            logger.warning(f"Failed to cache {key}")
        return value

    # =========================================================================
    # State machine
    # =========================================================================

    async def read_through(
        self,
        key: str,
        ttl: Union[int, timedelta],
        build: Callable[[], Awaitable[Envelope]],
        required: Iterable[str],
        on_hit: Optional[Callable[[Envelope], Envelope]] = None,
    ) -> Envelope:
        required = tuple(required)

        # CHECK_CACHE
        cached = await self.cache.get_json(key)
        if cached is not None:
            if not missing_fields(cached, required):
                logger.debug(f"Cache hit: {key}")
                envelope = on_hit(cached) if on_hit else cached
                return self._respond(envelope, SOURCE_CACHE)
            logger.warning(f"Discarding malformed cache entry: {key}")

        logger.debug(f"Cache miss: {key}")

        # FETCH_SOURCE + SHAPE_RESPONSE
        envelope = await build()
        require_fields(self.resource, envelope, required)

        # POPULATE_CACHE
        if not await self.cache.set_json(key, envelope, ttl):
            logger.warning(f"Failed to cache {self.resource} at {key}")

        return self._respond(envelope, SOURCE_API)

    @staticmethod
    def _respond(envelope: Envelope, source: str) -> Envelope:
        return {
            "success": True,
            **envelope,
            "source": source,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
