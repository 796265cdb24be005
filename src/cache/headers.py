"""
HTTP Cache Headers

Cache-Control headers for catalog responses. Storefront reads are shared
at the edge for a short window and served stale while the edge
revalidates; admin responses are never stored.
"""

import logging
from typing import Optional

from fastapi import Response

from src.cache.config import HTTP_CACHE_PRESETS


logger = logging.getLogger(__name__)


class CacheHeadersBuilder:
    """
    Fluent builder for HTTP cache headers.

    Usage:
        headers = (CacheHeadersBuilder()
            .s_maxage(60)
            .stale_while_revalidate(300)
            .public()
            .build())
    """

    def __init__(self):
        self._max_age: int = 0
        self._s_maxage: int = 0
        self._swr: int = 0
        self._public: bool = True
        self._no_store: bool = False

    def max_age(self, seconds: int) -> "CacheHeadersBuilder":
        """Set max-age directive (browser)."""
        self._max_age = seconds
        return self

    def s_maxage(self, seconds: int) -> "CacheHeadersBuilder":
        """Set s-maxage directive (shared caches / CDN)."""
        self._s_maxage = seconds
        return self

    def stale_while_revalidate(self, seconds: int) -> "CacheHeadersBuilder":
        self._swr = seconds
        return self

    def public(self) -> "CacheHeadersBuilder":
        self._public = True
        return self

    def private(self) -> "CacheHeadersBuilder":
        self._public = False
        return self

    def no_store(self) -> "CacheHeadersBuilder":
        """Disable all caching."""
        self._no_store = True
        return self

    def build(self) -> dict:
        """Build headers dictionary."""
        if self._no_store:
            return {"Cache-Control": "no-store"}

        directives = ["public" if self._public else "private"]
        if self._max_age > 0:
            directives.append(f"max-age={self._max_age}")
        if self._s_maxage > 0:
            directives.append(f"s-maxage={self._s_maxage}")
        if self._swr > 0:
            directives.append(f"stale-while-revalidate={self._swr}")

        return {"Cache-Control": ", ".join(directives)}

    def apply(self, response: Response) -> Response:
        """Apply headers to FastAPI Response."""
        for key, value in self.build().items():
            response.headers[key] = value
        return response


def builder_for_preset(preset: str) -> CacheHeadersBuilder:
    settings = HTTP_CACHE_PRESETS[preset]
    builder = CacheHeadersBuilder()

    if settings.get("no_store"):
        return builder.no_store()

    if settings.get("public", True):
        builder.public()
    else:
        builder.private()
    if settings.get("max_age"):
        builder.max_age(settings["max_age"])
    if settings.get("s_maxage"):
        builder.s_maxage(settings["s_maxage"])
    if settings.get("stale_while_revalidate"):
        builder.stale_while_revalidate(settings["stale_while_revalidate"])
    return builder


def add_cache_headers(response: Response, preset: Optional[str] = "catalog") -> Response:
    """
    Add cache headers to a response from a named preset.

    Args:
        response: FastAPI Response object
        preset: Key of HTTP_CACHE_PRESETS

    Returns:
        Response with headers applied
    """
    return builder_for_preset(preset or "catalog").apply(response)
