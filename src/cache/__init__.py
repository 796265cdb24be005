"""
Storefront Catalog Caching Layer

Read-through caching in front of the catalog database, with coordinated
invalidation after mutations:
- Layer 1: Edge Cache (CDN with HTTP Cache-Control headers, purged on revalidation)
- Layer 2: Application Cache (Redis, per-resource TTLs)
- Layer 3: Database (source of truth)

Key components:
- RedisCache: JSON facade over Redis that degrades to misses on failure
- CacheKeys: Deterministic key schema and key family patterns
- CacheInvalidator: Mutation-driven invalidation, events and revalidation
- PageRevalidator: Page route revalidation with HTTP fallback and warming
- CacheHeadersBuilder: HTTP cache header management

Usage:
    cache = RedisCache()
    await cache.initialize()

    invalidator = CacheInvalidator(cache, session_factory, RedisEventSink(cache))
    await invalidator.invalidate_product(product_id, "fresh-milk", category_id)

    await cache.close()
"""

from src.cache.config import CacheConfig, CacheTTL, get_cache_config
from src.cache.keys import CacheKeys, normalize_pagination, normalize_filters
from src.cache.redis_cache import RedisCache
from src.cache.exceptions import (
    CatalogCacheError,
    CacheUnavailable,
    UpstreamFetchError,
    UpstreamFetchTimeout,
    InvalidResponseShape,
    ResourceNotFound,
    InvalidationPartialFailure,
)
from src.cache.events import EventSink, RedisEventSink, NullEventSink, InvalidationEvent
from src.cache.revalidation import (
    PathRevalidator,
    CDNPathRevalidator,
    HTTPPathRevalidator,
    PageRevalidator,
)
from src.cache.warming import CacheWarmer
from src.cache.invalidation import CacheInvalidator, CacheEvent, InvalidationResult
from src.cache.headers import CacheHeadersBuilder, add_cache_headers

__all__ = [
    # Config
    "CacheConfig",
    "CacheTTL",
    "get_cache_config",
    # Keys
    "CacheKeys",
    "normalize_pagination",
    "normalize_filters",
    # Redis
    "RedisCache",
    # Errors
    "CatalogCacheError",
    "CacheUnavailable",
    "UpstreamFetchError",
    "UpstreamFetchTimeout",
    "InvalidResponseShape",
    "ResourceNotFound",
    "InvalidationPartialFailure",
    # Events
    "EventSink",
    "RedisEventSink",
    "NullEventSink",
    "InvalidationEvent",
    # Revalidation
    "PathRevalidator",
    "CDNPathRevalidator",
    "HTTPPathRevalidator",
    "PageRevalidator",
    "CacheWarmer",
    # Invalidation
    "CacheInvalidator",
    "CacheEvent",
    "InvalidationResult",
    # Headers
    "CacheHeadersBuilder",
    "add_cache_headers",
]
