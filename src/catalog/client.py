"""
Storefront API Client

Calling layer for the catalog API over HTTP, used by out-of-process
consumers (page renderers, scripts). Each request carries a bounded
deadline; failures come back as the same typed errors the accessors
raise, so callers can tell a timeout from a broken response.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from src.cache.exceptions import (
    ResourceNotFound,
    UpstreamFetchError,
    UpstreamFetchTimeout,
    InvalidResponseShape,
)
from src.catalog.category import CATEGORY_FIELDS
from src.catalog.home import HOME_FIELDS
from src.catalog.product import PRODUCT_FIELDS, RELATED_FIELDS
from src.catalog.shaping import require_fields


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class StorefrontAPIError(UpstreamFetchError):
    """The catalog API answered with an error status."""

    def __init__(self, resource: str, status: int, message: str):
        super().__init__(f"{resource} request failed with HTTP {status}: {message}", resource)
        self.status = status


class StorefrontClient:
    """
    Async client for the catalog read API.

    Usage:
        async with StorefrontClient("https://shop.example.com") as client:
            page = await client.get_category("dairy", page=2)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _get(
        self,
        path: str,
        resource: str,
        required: Iterable[str],
        params: Optional[Dict[str, Any]] = None,
        identifier: str = "",
    ) -> Dict[str, Any]:
        params = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        try:
            response = await asyncio.wait_for(
                self._client.get(path, params=params),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"Request to {path} timed out after {self.timeout}s")
            raise UpstreamFetchTimeout(resource, self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Request to {path} failed: {e}")
            raise UpstreamFetchError(f"Failed to fetch {resource}: {e}", resource) from e

        if response.status_code == 404:
            raise ResourceNotFound(resource, identifier)

        try:
            payload = response.json()
        except ValueError:
            if not response.is_success:
                raise StorefrontAPIError(resource, response.status_code, response.text[:200])
            raise InvalidResponseShape(resource, ["JSON body"])

        if not response.is_success:
            message = payload.get("error", "") if isinstance(payload, dict) else ""
            raise StorefrontAPIError(resource, response.status_code, message)

        if isinstance(payload, dict) and payload.get("success") is False:
            raise UpstreamFetchError(payload.get("error") or f"Failed to fetch {resource}", resource)

        require_fields(resource, payload, required)
        logger.debug(f"Fetched {resource} from {payload.get('source', 'api')}")
        return payload

    async def get_home(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self._get(
            "/api/home",
            "home",
            HOME_FIELDS,
            params={"search": search, "category": category, "limit": limit},
        )

    async def get_category(
        self,
        slug: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self._get(
            f"/api/category/{slug}",
            "category",
            CATEGORY_FIELDS,
            params={"page": page, "limit": limit},
            identifier=slug,
        )

    async def get_product(self, slug: str) -> Dict[str, Any]:
        return await self._get(
            f"/api/product/{slug}",
            "product",
            PRODUCT_FIELDS,
            identifier=slug,
        )

    async def get_related_products(
        self,
        category_id: str,
        exclude: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self._get(
            f"/api/product/category/{category_id}",
            "related products",
            RELATED_FIELDS,
            params={"exclude": exclude, "limit": limit},
            identifier=category_id,
        )
