"""
Catalog cache error taxonomy.

Cache failures are absorbed where they happen. Source failures travel to
the route boundary so the page can render a degraded response.
"""

from typing import Optional


class CatalogCacheError(Exception):
    """Base class for caching layer errors."""


class CacheUnavailable(CatalogCacheError):
    """Redis connection or operation failed. Always handled inside the facade."""


class UpstreamFetchError(CatalogCacheError):
    """The source of truth could not produce a response."""

    status_code = 500

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource


class UpstreamFetchTimeout(UpstreamFetchError):
    """A source fetch exceeded its deadline."""

    status_code = 504

    def __init__(self, resource: str, timeout: float):
        super().__init__(f"Fetching {resource} timed out after {timeout:g}s", resource)
        self.timeout = timeout


class InvalidResponseShape(UpstreamFetchError):
    """Fetched data is missing fields the envelope requires."""

    status_code = 502

    def __init__(self, resource: str, missing: list):
        super().__init__(
            f"Invalid response structure for {resource}: missing {', '.join(missing)}",
            resource,
        )
        self.missing = missing


class ResourceNotFound(CatalogCacheError):
    """The requested category or product does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource.capitalize()} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class InvalidationPartialFailure(CatalogCacheError):
    """One step of an invalidation sequence failed; sibling steps still ran."""

    def __init__(self, step: str, cause: Exception):
        super().__init__(f"{step}: {cause}")
        self.step = step
        self.cause = cause
