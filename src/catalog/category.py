"""Category page accessor."""

import logging
from typing import Any

from src.cache.config import CacheTTL
from src.cache.exceptions import ResourceNotFound
from src.cache.keys import CacheKeys, CATEGORY_DEFAULT_LIMIT, normalize_pagination
from src.catalog.base import Envelope, ReadThroughAccessor
from src.catalog.shaping import build_pagination, category_metadata, with_discounts
from src.database import repository


logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ("category", "products", "pagination", "metadata")


def _load_category_page(db, slug: str, page: int, limit: int):
    category = repository.find_category_by_slug(db, slug)
    if category is None:
        raise ResourceNotFound("category", slug)
    products, total = repository.get_category_products_page(db, category["_id"], page, limit)
    return category, products, total


class CategoryPageAccessor(ReadThroughAccessor):
    resource = "category"

    async def get_category_page(self, slug: str, page: Any = None, limit: Any = None) -> Envelope:
        """
        One page of a category with its products, newest first.

        An empty page is a valid result. An unknown slug raises
        ResourceNotFound and is not cached.
        """
        slug = (slug or "").strip()
        if not slug:
            raise ResourceNotFound("category", slug)
        page, limit = normalize_pagination(page, limit, CATEGORY_DEFAULT_LIMIT)

        async def build() -> Envelope:
            category, products, total = await self.fetch(_load_category_page, slug, page, limit)

            has_next_page = len(products) > limit
            products = products[:limit]
            return {
                "category": category,
                "products": with_discounts(products),
                "pagination": build_pagination(total, page, limit, has_next_page),
                "metadata": category_metadata(category, self.store_name),
            }

        return await self.read_through(
            CacheKeys.category_page(slug, page, limit),
            CacheTTL.CATEGORY_DETAIL,
            build,
            CATEGORY_FIELDS,
        )
