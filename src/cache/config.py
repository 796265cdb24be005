"""
Cache Configuration

Centralized configuration for the catalog caching layer.
TTLs define how long each resource class may be served from Redis
before it has to be rebuilt from the database.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional
from functools import lru_cache


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() == "true"


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL configuration by resource class.

    Categories change rarely, so anything derived only from categories
    is kept for hours. Product listings change often and stay short.
    """

    # Home page
    HOME_MAIN: timedelta = timedelta(minutes=30)
    HOME_PRODUCTS: timedelta = timedelta(minutes=30)
    BEST_SELLER_IDS: timedelta = timedelta(minutes=30)

    # Categories
    CATEGORIES_ALL: timedelta = timedelta(hours=6)
    CATEGORY_DETAIL: timedelta = timedelta(hours=6)

    # Products
    PRODUCT_DETAIL: timedelta = timedelta(minutes=30)
    RELATED_PRODUCTS: timedelta = timedelta(minutes=30)

    @classmethod
    def for_resource(cls, resource: str) -> timedelta:
        """Get TTL for a resource name."""
        mapping = {
            "home": cls.HOME_MAIN,
            "home-products": cls.HOME_PRODUCTS,
            "best-sellers": cls.BEST_SELLER_IDS,
            "categories": cls.CATEGORIES_ALL,
            "category": cls.CATEGORY_DETAIL,
            "product": cls.PRODUCT_DETAIL,
            "related-products": cls.RELATED_PRODUCTS,
        }
        return mapping.get(resource, cls.PRODUCT_DETAIL)


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - CACHE_ENABLED: Enable/disable caching globally
    - REDIS_URL: Redis connection URL
    - APP_BASE_URL: Public base URL used for revalidation and warming
    - REVALIDATE_SECRET: Shared secret for the revalidation endpoint
    - CACHE_WARMING_ENABLED: Re-fetch routes after revalidation
    """

    # Global cache toggle
    enabled: bool = field(default_factory=lambda: _env_bool("CACHE_ENABLED", "true"))

    # Redis connection
    redis_url: str = field(default_factory=lambda: os.getenv(
        "REDIS_URL",
        "redis://localhost:6379"
    ))
    redis_connect_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_CONNECT_TIMEOUT",
        "5.0"
    )))
    redis_socket_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_SOCKET_TIMEOUT",
        "2.0"
    )))
    redis_max_connections: int = field(default_factory=lambda: int(os.getenv(
        "REDIS_MAX_CONNECTIONS",
        "50"
    )))

    # Circuit breaker
    circuit_breaker_enabled: bool = field(default_factory=lambda: _env_bool(
        "CACHE_CIRCUIT_BREAKER_ENABLED",
        "true"
    ))
    circuit_breaker_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_THRESHOLD",
        "5"
    )))
    circuit_breaker_timeout: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_TIMEOUT",
        "30"
    )))

    # Deadline for database fetches behind a cache miss
    fetch_timeout: float = field(default_factory=lambda: float(os.getenv(
        "CACHE_FETCH_TIMEOUT",
        "10.0"
    )))

    # Revalidation and warming
    app_base_url: str = field(default_factory=lambda: os.getenv(
        "APP_BASE_URL",
        ""
    ).strip().rstrip("/"))
    revalidate_secret: str = field(default_factory=lambda: os.getenv(
        "REVALIDATE_SECRET",
        ""
    ))
    warming_enabled: bool = field(default_factory=lambda: _env_bool(
        "CACHE_WARMING_ENABLED",
        "false"
    ))
    http_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REVALIDATE_HTTP_TIMEOUT",
        "10.0"
    )))

    # CDN purge settings (optional - for Cloudflare integration)
    cdn_purge_enabled: bool = field(default_factory=lambda: _env_bool(
        "CDN_PURGE_ENABLED",
        "false"
    ))
    cloudflare_zone_id: Optional[str] = field(default_factory=lambda: os.getenv(
        "CLOUDFLARE_ZONE_ID"
    ))
    cloudflare_api_token: Optional[str] = field(default_factory=lambda: os.getenv(
        "CLOUDFLARE_API_TOKEN"
    ))

    @property
    def can_revalidate_over_http(self) -> bool:
        """Both the base URL and the shared secret are needed for HTTP revalidation."""
        return bool(self.app_base_url and self.revalidate_secret)


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()


# HTTP Cache-Control presets for catalog responses
HTTP_CACHE_PRESETS = {
    "catalog": {
        # Storefront reads, safe to share at the edge
        "s_maxage": 60,
        "stale_while_revalidate": 300,
        "public": True,
    },
    "admin": {
        # Mutation responses must never be cached
        "no_store": True,
    },
}
