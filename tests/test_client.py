"""
Tests for the storefront API client.

Responses are served by httpx.MockTransport.
"""

import asyncio

import httpx
import pytest

from src.cache.exceptions import (
    InvalidResponseShape,
    ResourceNotFound,
    UpstreamFetchError,
    UpstreamFetchTimeout,
)
from src.catalog.client import StorefrontAPIError, StorefrontClient


PRODUCT_BODY = {
    "success": True,
    "product": {"slug": "fresh-milk", "price": 10.0},
    "metadata": {"title": "Fresh Milk | Farmer's Market"},
    "source": "cache",
}


def client_for(handler, timeout: float = 2.0) -> StorefrontClient:
    return StorefrontClient("http://shop.test/", timeout=timeout, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestStorefrontClient:

    async def test_get_product(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=PRODUCT_BODY)

        async with client_for(handler) as client:
            payload = await client.get_product("fresh-milk")

        assert payload["source"] == "cache"
        assert str(seen[0].url) == "http://shop.test/api/product/fresh-milk"

    async def test_empty_params_dropped(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "category": {}, "products": [], "pagination": {}, "metadata": {},
            })

        async with client_for(handler) as client:
            await client.get_category("dairy", page=2)

        assert dict(seen[0].url.params) == {"page": "2"}

    async def test_not_found(self):
        async with client_for(lambda r: httpx.Response(404, json={"success": False})) as client:
            with pytest.raises(ResourceNotFound) as exc_info:
                await client.get_category("nothing")

        assert exc_info.value.identifier == "nothing"

    async def test_error_status(self):
        def handler(request):
            return httpx.Response(500, json={"success": False, "error": "Internal Server Error"})

        async with client_for(handler) as client:
            with pytest.raises(StorefrontAPIError) as exc_info:
                await client.get_home()

        assert exc_info.value.status == 500

    async def test_missing_fields(self):
        async with client_for(lambda r: httpx.Response(200, json={"product": {}})) as client:
            with pytest.raises(InvalidResponseShape) as exc_info:
                await client.get_product("fresh-milk")

        assert exc_info.value.missing == ["metadata"]

    async def test_non_json_body(self):
        async with client_for(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(InvalidResponseShape):
                await client.get_product("fresh-milk")

    async def test_unsuccessful_payload(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "nope"})

        async with client_for(handler) as client:
            with pytest.raises(UpstreamFetchError, match="nope"):
                await client.get_related_products("cat-dairy")

    async def test_timeout(self):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=PRODUCT_BODY)

        async with client_for(slow, timeout=0.05) as client:
            with pytest.raises(UpstreamFetchTimeout):
                await client.get_product("fresh-milk")

    async def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        async with client_for(refuse) as client:
            with pytest.raises(UpstreamFetchError) as exc_info:
                await client.get_home()

        assert not isinstance(exc_info.value, UpstreamFetchTimeout)
