"""
Page Cache Revalidation

Rendered storefront pages are cached at the edge. After a mutation the
affected routes are revalidated so visitors see fresh pages without
waiting for the edge TTL.

Two strategies:
- In-process: purge the route URLs at the CDN directly
- HTTP fallback: call the protected /api/revalidate endpoint of a serving
  instance, one request per path (used by out-of-process callers)

`PageRevalidator` applies the in-process strategy when available, falls
back to HTTP when it is missing or fails, and warms the routes afterwards.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx

from src.cache.config import CacheConfig, get_cache_config
from src.cache.warming import CacheWarmer


logger = logging.getLogger(__name__)


CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"

# Cloudflare accepts at most this many URLs per purge request
PURGE_BATCH_SIZE = 30


class RevalidationError(Exception):
    """A revalidation strategy could not complete."""


class PathRevalidator(ABC):
    """Revalidates rendered page routes."""

    @abstractmethod
    async def revalidate_many(self, paths: List[str]) -> Dict[str, bool]:
        """Revalidate each path. Returns path -> success."""

    async def revalidate(self, path: str) -> bool:
        results = await self.revalidate_many([path])
        return results.get(path, False)


class CDNPathRevalidator(PathRevalidator):
    """
    In-process revalidation by purging route URLs from the Cloudflare cache.

    Without a configured zone there is no edge cache to purge, so every
    path counts as revalidated.
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
        return bool(
            self._config.cdn_purge_enabled
            and self._config.cloudflare_zone_id
            and self._config.cloudflare_api_token
            and self._config.app_base_url
        )

    async def revalidate_many(self, paths: List[str]) -> Dict[str, bool]:
        """
        Purge the given routes.

        Raises:
            RevalidationError: If the CDN rejects the purge or is unreachable
        """
        if not self.is_enabled:
            logger.debug(f"No CDN configured, {len(paths)} paths need no purge")
            return {path: True for path in paths}

        urls = [f"{self._config.app_base_url}{path}" for path in paths]
        async with httpx.AsyncClient(
            timeout=self._config.http_timeout,
            transport=self._transport,
        ) as client:
            for start in range(0, len(urls), PURGE_BATCH_SIZE):
                batch = urls[start:start + PURGE_BATCH_SIZE]
                try:
                    response = await client.post(
                        f"{CLOUDFLARE_API_BASE}/zones/{self._config.cloudflare_zone_id}/purge_cache",
                        headers={
                            "Authorization": f"Bearer {self._config.cloudflare_api_token}",
                            "Content-Type": "application/json",
                        },
                        json={"files": batch},
                    )
                except httpx.HTTPError as e:
                    raise RevalidationError(f"CDN purge request failed: {e}") from e

                if response.status_code != 200:
                    raise RevalidationError(
                        f"CDN purge failed with status {response.status_code}"
                    )

        logger.info(f"CDN purged {len(urls)} routes")
        return {path: True for path in paths}


class HTTPPathRevalidator(PathRevalidator):
    """
    Revalidates through GET {base}/api/revalidate?secret=...&path=...

    Each path is requested independently; one failing path never stops
    the others.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config or get_cache_config()
        self._transport = transport

    async def _revalidate_one(self, client: httpx.AsyncClient, path: str) -> bool:
        try:
            response = await client.get(
                f"{self._config.app_base_url}/api/revalidate",
                params={"secret": self._config.revalidate_secret, "path": path},
            )
        except httpx.HTTPError as e:
            logger.warning(f"HTTP revalidation failed for {path}: {e}")
            return False

        if response.status_code != 200:
            logger.warning(f"HTTP revalidation failed for {path}: HTTP {response.status_code}")
            return False

        logger.debug(f"Revalidated {path} over HTTP")
        return True

    async def revalidate_many(self, paths: List[str]) -> Dict[str, bool]:
        if not self._config.can_revalidate_over_http:
            logger.warning(
                "APP_BASE_URL or REVALIDATE_SECRET not set, skipping HTTP revalidation "
                f"of {len(paths)} paths"
            )
            return {path: False for path in paths}

        async with httpx.AsyncClient(
            timeout=self._config.http_timeout,
            transport=self._transport,
        ) as client:
            outcomes = await asyncio.gather(
                *(self._revalidate_one(client, path) for path in paths)
            )
        return dict(zip(paths, outcomes))


class PageRevalidator:
    """
    Revalidation pipeline: primary strategy, HTTP fallback, then warming.
    """

    def __init__(
        self,
        local: Optional[PathRevalidator] = None,
        http: Optional[PathRevalidator] = None,
        warmer: Optional[CacheWarmer] = None,
        config: Optional[CacheConfig] = None,
    ):
        config = config or get_cache_config()
        self._local = local
        self._http = http or HTTPPathRevalidator(config)
        self._warmer = warmer if warmer is not None else CacheWarmer(config)

    async def revalidate_paths(self, paths: List[str]) -> Dict[str, bool]:
        """
        Revalidate a batch of routes.

        Never raises: failures are logged and reported as False entries.
        """
        targets = list(dict.fromkeys(p for p in paths if p))
        if not targets:
            return {}

        results = None
        if self._local is not None:
            try:
                results = await self._local.revalidate_many(targets)
            except Exception as e:
                logger.warning(f"In-process revalidation failed, falling back to HTTP: {e}")

        if results is None:
            try:
                results = await self._http.revalidate_many(targets)
            except Exception as e:
                logger.error(f"HTTP revalidation failed: {e}")
                results = {path: False for path in targets}

        revalidated = sum(1 for ok in results.values() if ok)
        logger.info(f"Revalidated {revalidated}/{len(targets)} paths")

        if self._warmer is not None and self._warmer.is_enabled:
            try:
                await self._warmer.warm_paths(targets)
            except Exception as e:
                logger.warning(f"Cache warming failed: {e}")

        return results
