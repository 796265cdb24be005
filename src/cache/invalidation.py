"""
Cache Invalidation Service

Keeps the catalog cache consistent with the database after mutations,
without waiting for TTL expiry.

Per mutation:
- Product: its detail key, its category's related-product and page
  families, the home aggregates, best sellers and the category list
- Bulk products: same scope, computed once over the deduplicated
  set of affected categories
- Category: its page family (current and previous slug), its product
  family, the home aggregates and the category list

Then an invalidation event is published and the affected page routes are
revalidated.

Principle: invalidate conservatively. A failed step is recorded and the
remaining steps still run. Nothing here fails the mutation that triggered
it: the database write is authoritative.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass, field

from sqlalchemy.orm import sessionmaker

from src.cache.redis_cache import RedisCache
from src.cache.keys import CacheKeys
from src.cache.events import (
    EventSink,
    NullEventSink,
    InvalidationEvent,
    PRODUCT_INVALIDATE_CHANNEL,
    PRODUCT_BULK_INVALIDATE_CHANNEL,
    CATEGORY_INVALIDATE_CHANNEL,
)
from src.cache.exceptions import InvalidationPartialFailure
from src.cache.revalidation import PageRevalidator
from src.database import repository
from src.database.session import session_scope


logger = logging.getLogger(__name__)


HOME_PATHS = ["/", "/home"]
DASHBOARD_PRODUCTS_PATH = "/dashboard/products/list"


def product_path(slug: str) -> str:
    return f"/product/{slug}"


def category_path(slug: str) -> str:
    return f"/category/{slug}"


class CacheEvent(Enum):
    """Mutations that trigger cache invalidation."""

    # Products
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    PRODUCT_TOGGLED = "product_toggled"
    PRODUCT_DELETED = "product_deleted"
    PRODUCTS_BULK_TOGGLED = "products_bulk_toggled"

    # Categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    @property
    def action(self) -> str:
        """Action name carried in the published event."""
        return self.value.split("_", 1)[1]


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    event: CacheEvent
    success: bool
    keys_invalidated: int
    paths_revalidated: int
    event_published: bool
    duration_ms: float
    failures: List[InvalidationPartialFailure] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [str(f) for f in self.failures]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.value,
            "success": self.success,
            "keys_invalidated": self.keys_invalidated,
            "paths_revalidated": self.paths_revalidated,
            "event_published": self.event_published,
            "duration_ms": round(self.duration_ms, 2),
            "errors": self.errors,
        }


class _Run:
    """Bookkeeping for one invalidation sequence."""

    def __init__(self, event: CacheEvent):
        self.event = event
        self.started = time.monotonic()
        self.keys = 0
        self.paths = 0
        self.published = False
        self.failures: List[InvalidationPartialFailure] = []

    async def step(self, name: str, action: Callable[[], Awaitable[Any]]) -> Any:
        """Run one step; record a failure instead of raising."""
        try:
            return await action()
        except Exception as e:
            failure = InvalidationPartialFailure(name, e)
            self.failures.append(failure)
            logger.warning(f"Invalidation step failed ({self.event.value}): {failure}")
            return None

    def result(self) -> InvalidationResult:
        duration = (time.monotonic() - self.started) * 1000
        result = InvalidationResult(
            event=self.event,
            success=not self.failures,
            keys_invalidated=self.keys,
            paths_revalidated=self.paths,
            event_published=self.published,
            duration_ms=duration,
            failures=self.failures,
        )
        logger.info(
            f"Invalidation complete ({self.event.value}): {self.keys} keys, "
            f"{self.paths} paths, {len(self.failures)} failures, duration: {duration:.2f}ms"
        )
        return result


class CacheInvalidator:
    """
    Invalidation coordinator for catalog mutations.

    Collaborators are injected: the cache facade, an event sink, the
    page revalidator and a session factory for slug lookups.
    """

    def __init__(
        self,
        cache: RedisCache,
        session_factory: sessionmaker,
        event_sink: Optional[EventSink] = None,
        revalidator: Optional[PageRevalidator] = None,
    ):
        self._cache = cache
        self._session_factory = session_factory
        self._event_sink = event_sink or NullEventSink()
        self._revalidator = revalidator

    # =========================================================================
    # Lookups
    # =========================================================================

    def _query(self, fn, *args):
        with session_scope(self._session_factory) as db:
            return fn(db, *args)

    async def _lookup(self, fn, *args):
        return await asyncio.to_thread(self._query, fn, *args)

    async def _category_slug(self, run: _Run, category_id: Optional[str]) -> Optional[str]:
        if not category_id:
            return None
        return await run.step(
            f"resolve category {category_id}",
            lambda: self._lookup(repository.get_category_slug, category_id),
        )

    # =========================================================================
    # Steps
    # =========================================================================

    async def _delete_keys(self, run: _Run, *keys: str):
        if not self._cache.enabled or not keys:
            return

        async def _delete():
            removed = await self._cache.delete_many(*keys)
            if removed < 0:
                raise RuntimeError("cache store unavailable")
            run.keys += removed

        await run.step(f"delete {', '.join(keys)}", _delete)

    async def _delete_family(self, run: _Run, pattern: str):
        if not self._cache.enabled:
            return

        async def _delete():
            removed = await self._cache.delete_pattern(pattern)
            if removed < 0:
                raise RuntimeError("cache store unavailable")
            run.keys += removed

        await run.step(f"delete {pattern}", _delete)

    async def _clear_home(self, run: _Run, include_best_sellers: bool = True):
        """Every home variant plus the aggregates home sections are built from."""
        await self._delete_family(run, CacheKeys.home_main_pattern())
        await self._delete_family(run, CacheKeys.home_products_pattern())
        keys = [CacheKeys.categories_all()]
        if include_best_sellers:
            keys.insert(0, CacheKeys.best_seller_ids())
        await self._delete_keys(run, *keys)

    async def _publish(self, run: _Run, event: InvalidationEvent):
        async def _emit():
            run.published = await self._event_sink.emit(event)
            if not run.published:
                raise RuntimeError(f"event not delivered on {event.channel}")

        await run.step(f"publish {event.channel}", _emit)

    async def _revalidate(self, run: _Run, paths: List[str]):
        if self._revalidator is None:
            return

        async def _revalidate_all():
            results = await self._revalidator.revalidate_paths(paths)
            run.paths += sum(1 for ok in results.values() if ok)

        await run.step("revalidate paths", _revalidate_all)

    # =========================================================================
    # Products
    # =========================================================================

    async def invalidate_product(
        self,
        product_id: str,
        product_slug: str,
        category_id: Optional[str] = None,
        event: CacheEvent = CacheEvent.PRODUCT_UPDATED,
        previous_slug: Optional[str] = None,
        previous_category_id: Optional[str] = None,
    ) -> InvalidationResult:
        """
        Invalidate everything derived from one product.

        `previous_slug` / `previous_category_id` cover updates that moved
        the product to a new slug or category.
        """
        run = _Run(event)
        logger.info(
            f"Cache invalidation event: {event.value}, "
            f"product={product_id}, slug={product_slug}, category={category_id}"
        )

        slugs = [s for s in dict.fromkeys([product_slug, previous_slug]) if s]
        category_ids = [c for c in dict.fromkeys([category_id, previous_category_id]) if c]

        await self._delete_keys(run, *(CacheKeys.product_detail(s) for s in slugs))

        category_slugs = []
        for cid in category_ids:
            await self._delete_family(run, CacheKeys.category_products_pattern(cid))
            slug = await self._category_slug(run, cid)
            if slug:
                category_slugs.append(slug)
                await self._delete_family(run, CacheKeys.category_pages_pattern(slug))

        await self._clear_home(run)

        await self._publish(run, InvalidationEvent(
            channel=PRODUCT_INVALIDATE_CHANNEL,
            action=event.action,
            resource_id=product_id,
            resource_slug=product_slug,
            related_id=category_id,
        ))

        paths = HOME_PATHS + [product_path(s) for s in slugs] + [DASHBOARD_PRODUCTS_PATH]
        paths += [category_path(s) for s in category_slugs]
        await self._revalidate(run, paths)

        return run.result()

    async def invalidate_products_bulk(
        self,
        product_ids: List[str],
        event: CacheEvent = CacheEvent.PRODUCTS_BULK_TOGGLED,
    ) -> InvalidationResult:
        """
        Invalidate after one operation touched many products.

        Lookups run concurrently and tolerate individual failures; category
        families and the shared home keys are deleted once each.
        """
        run = _Run(event)
        product_ids = list(dict.fromkeys(product_ids))
        logger.info(f"Cache invalidation event: {event.value}, products={len(product_ids)}")

        refs = await asyncio.gather(*(
            run.step(
                f"resolve product {pid}",
                lambda pid=pid: self._lookup(repository.get_product_ref, pid),
            )
            for pid in product_ids
        ))
        refs = [ref for ref in refs if ref]

        slugs = list(dict.fromkeys(ref["slug"] for ref in refs))
        category_ids = list(dict.fromkeys(ref["category_id"] for ref in refs if ref["category_id"]))

        await self._delete_keys(run, *(CacheKeys.product_detail(s) for s in slugs))

        category_slugs = []
        for cid in category_ids:
            await self._delete_family(run, CacheKeys.category_products_pattern(cid))
            slug = await self._category_slug(run, cid)
            if slug:
                category_slugs.append(slug)
                await self._delete_family(run, CacheKeys.category_pages_pattern(slug))

        await self._clear_home(run)

        await self._publish(run, InvalidationEvent(
            channel=PRODUCT_BULK_INVALIDATE_CHANNEL,
            action=event.action,
            resource_ids=product_ids,
        ))

        paths = HOME_PATHS + [DASHBOARD_PRODUCTS_PATH]
        paths += [category_path(s) for s in category_slugs]
        paths += [product_path(s) for s in slugs]
        await self._revalidate(run, paths)

        return run.result()

    # =========================================================================
    # Categories
    # =========================================================================

    async def invalidate_category(
        self,
        category_id: str,
        category_slug: Optional[str] = None,
        event: CacheEvent = CacheEvent.CATEGORY_UPDATED,
        previous_slug: Optional[str] = None,
    ) -> InvalidationResult:
        """
        Invalidate everything derived from one category.

        The slug is resolved from the database when not given; a deleted
        category must therefore pass its last known slug.
        """
        run = _Run(event)
        logger.info(
            f"Cache invalidation event: {event.value}, "
            f"category={category_id}, slug={category_slug}"
        )

        if not category_slug:
            category_slug = await self._category_slug(run, category_id)
        slugs = [s for s in dict.fromkeys([category_slug, previous_slug]) if s]

        for slug in slugs:
            await self._delete_family(run, CacheKeys.category_pages_pattern(slug))
        await self._delete_family(run, CacheKeys.category_products_pattern(category_id))
        await self._clear_home(run, include_best_sellers=False)

        await self._publish(run, InvalidationEvent(
            channel=CATEGORY_INVALIDATE_CHANNEL,
            action=event.action,
            resource_id=category_id,
            resource_slug=category_slug,
        ))

        await self._revalidate(run, HOME_PATHS + [category_path(s) for s in slugs])

        return run.result()

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle_event(self, event: CacheEvent, **kwargs) -> InvalidationResult:
        """Route a mutation event to its invalidation scope."""
        if event == CacheEvent.PRODUCTS_BULK_TOGGLED:
            return await self.invalidate_products_bulk(kwargs["product_ids"], event=event)

        if event in (
            CacheEvent.CATEGORY_CREATED,
            CacheEvent.CATEGORY_UPDATED,
            CacheEvent.CATEGORY_DELETED,
        ):
            return await self.invalidate_category(
                kwargs["category_id"],
                category_slug=kwargs.get("category_slug"),
                event=event,
                previous_slug=kwargs.get("previous_slug"),
            )

        return await self.invalidate_product(
            kwargs["product_id"],
            kwargs["product_slug"],
            category_id=kwargs.get("category_id"),
            event=event,
            previous_slug=kwargs.get("previous_slug"),
            previous_category_id=kwargs.get("previous_category_id"),
        )
