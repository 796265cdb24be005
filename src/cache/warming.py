"""
Cache Warming Service

Re-fetches storefront routes right after they were revalidated so the
next real visitor does not pay the cache-miss cost.

Warming is best-effort: every path is fetched independently and a failed
path never affects the others or the invalidation that triggered it.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from src.cache.config import CacheConfig, get_cache_config


logger = logging.getLogger(__name__)


# Route prefixes backed by a public catalog API endpoint
WARMABLE_PREFIXES = ("/product/", "/category/")


def is_warmable(path: str) -> bool:
    return path in ("/", "/home") or path.startswith(WARMABLE_PREFIXES)


def warming_url(base_url: str, path: str) -> str:
    """API URL that rebuilds the data behind a page route."""
    api_path = "/home" if path == "/" else path
    return f"{base_url}/api{api_path}"


class CacheWarmer:
    """
    Proactive cache warming through the public catalog API.

    Only storefront routes are warmed; dashboard routes have no
    cacheable API behind them and are skipped.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config or get_cache_config()
        self._transport = transport

    @property
    def is_enabled(self) -> bool:
        return self._config.warming_enabled and bool(self._config.app_base_url)

    async def _warm_one(self, client: httpx.AsyncClient, path: str) -> bool:
        url = warming_url(self._config.app_base_url, path)
        try:
            response = await client.get(url, params={"revalidate": "true"})
        except httpx.HTTPError as e:
            logger.warning(f"Failed to warm cache for {path}: {e}")
            return False

        if response.is_success:
            logger.debug(f"Warmed cache for {path}")
            return True

        logger.warning(f"Failed to warm cache for {path}: HTTP {response.status_code}")
        return False

    async def warm_paths(self, paths: List[str]) -> Dict[str, bool]:
        """
        Warm cache for a set of page routes.

        Returns:
            Dict of path -> success status (skipped paths are omitted)
        """
        if not self.is_enabled:
            return {}

        targets = [p for p in dict.fromkeys(paths) if is_warmable(p)]
        if not targets:
            return {}

        async with httpx.AsyncClient(
            timeout=self._config.http_timeout,
            transport=self._transport,
        ) as client:
            outcomes = await asyncio.gather(
                *(self._warm_one(client, path) for path in targets)
            )

        results = dict(zip(targets, outcomes))
        success_count = sum(1 for v in results.values() if v)
        logger.info(f"Cache warming complete: {success_count}/{len(results)} paths")
        return results
