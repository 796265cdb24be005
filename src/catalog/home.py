"""
Home page feed.

The feed aggregates four product sections with the category list and
the best-seller ranking. The ranking and the category list are cached on
their own and are optional: when either fails the feed still renders,
with an empty default in its place.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.cache.config import CacheTTL
from src.cache.exceptions import CatalogCacheError
from src.cache.keys import (
    CacheKeys,
    HOME_DEFAULT_LIMIT,
    HOME_MAX_LIMIT,
    normalize_filters,
    normalize_limit,
)
from src.catalog.base import Envelope, ReadThroughAccessor
from src.catalog.shaping import with_discounts
from src.database import repository


logger = logging.getLogger(__name__)

HOME_FIELDS = ("products", "categories", "metadata")
SECTION_FIELDS = ("topDeals", "newArrivals", "bestSellers", "featured")


class HomeFeedAccessor(ReadThroughAccessor):
    resource = "home"

    async def best_seller_ids(self) -> List[str]:
        try:
            return await self.cached_value(
                CacheKeys.best_seller_ids(),
                CacheTTL.BEST_SELLER_IDS,
                lambda: self.fetch(repository.get_best_seller_ids, resource="best sellers"),
            )
        except CatalogCacheError as e:
            logger.warning(f"Best sellers failed, using featured products instead: {e}")
            return []

    async def categories(self) -> List[Dict[str, Any]]:
        try:
            return await self.cached_value(
                CacheKeys.categories_all(),
                CacheTTL.CATEGORIES_ALL,
                lambda: self.fetch(repository.list_categories, resource="categories"),
            )
        except CatalogCacheError as e:
            logger.warning(f"Categories fetch failed, rendering home without them: {e}")
            return []

    async def _sections(
        self,
        limit: int,
        best_seller_ids: List[str],
        filters: Dict[str, Any],
    ) -> Dict[str, List[Dict[str, Any]]]:
        async def load():
            sections = await self.fetch(
                repository.get_home_sections,
                limit,
                best_seller_ids,
                filters.get("search", ""),
                filters.get("category", ""),
            )
            return {name: with_discounts(sections.get(name, [])) for name in SECTION_FIELDS}

        # Only the unfiltered sections are shared between requests
        if filters:
            return await load()

        key = CacheKeys.home_products(limit)
        cached = await self.cache.get_json(key)
        if isinstance(cached, dict) and all(name in cached for name in SECTION_FIELDS):
            return cached

        sections = await load()
        if not await self.cache.set_json(key, sections, CacheTTL.HOME_PRODUCTS):
            logger.warning(f"Failed to cache home sections at {key}")
        return sections

    async def get_home_page(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        limit: Any = None,
    ) -> Envelope:
        """
        Home feed for an optional search term and category id.

        Raises:
            UpstreamFetchError: If the product sections cannot be built
        """
        limit = normalize_limit(limit, HOME_DEFAULT_LIMIT, HOME_MAX_LIMIT)
        filters = normalize_filters({"search": search, "category": category})

        async def build() -> Envelope:
            best_seller_ids = await self.best_seller_ids()
            categories = await self.categories()
            sections = await self._sections(limit, best_seller_ids, filters)

            logger.info(
                "Home sections: " + ", ".join(f"{k}={len(v)}" for k, v in sections.items())
            )
            return {
                "products": sections,
                "categories": categories,
                "metadata": {
                    "search": filters.get("search", ""),
                    "category": filters.get("category", ""),
                    "limit": limit,
                    "generatedAt": datetime.now(timezone.utc).isoformat(),
                    "cached": False,
                    "bestSellersCount": len(best_seller_ids),
                },
            }

        def mark_cached(envelope: Envelope) -> Envelope:
            return {**envelope, "metadata": {**envelope["metadata"], "cached": True}}

        return await self.read_through(
            CacheKeys.home_main(limit, filters),
            CacheTTL.HOME_MAIN,
            build,
            HOME_FIELDS,
            on_hit=mark_cached,
        )
