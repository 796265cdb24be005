"""
Product accessors: product detail and related products.

Related products are keyed by category, so every list derived from a
category sits in the `product:category:<id>:*` family.
"""

import logging
from typing import Any, Optional

from src.cache.config import CacheTTL
from src.cache.exceptions import ResourceNotFound
from src.cache.keys import CacheKeys, RELATED_DEFAULT_LIMIT, normalize_limit
from src.catalog.base import Envelope, ReadThroughAccessor
from src.catalog.shaping import product_metadata, with_discount, with_discounts
from src.database import repository


logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("product", "metadata")
RELATED_FIELDS = ("products", "count")


def _load_product(db, slug: str):
    product = repository.find_active_product_by_slug(db, slug)
    if product is None:
        raise ResourceNotFound("product", slug)
    return product


class ProductAccessor(ReadThroughAccessor):
    resource = "product"

    async def get_product_by_slug(self, slug: str) -> Envelope:
        """Active product by slug, with discount and page metadata."""
        slug = (slug or "").strip()
        if not slug:
            raise ResourceNotFound("product", slug)

        async def build() -> Envelope:
            product = await self.fetch(_load_product, slug)
            return {
                "product": with_discount(product),
                "metadata": product_metadata(product, self.store_name),
            }

        return await self.read_through(
            CacheKeys.product_detail(slug),
            CacheTTL.PRODUCT_DETAIL,
            build,
            PRODUCT_FIELDS,
        )

    async def get_related_products(
        self,
        category_id: str,
        exclude_id: Optional[str] = None,
        limit: Any = None,
    ) -> Envelope:
        """Available products of a category, newest first, optionally excluding one."""
        category_id = (category_id or "").strip()
        exclude_id = (exclude_id or "").strip() or None
        limit = normalize_limit(limit, RELATED_DEFAULT_LIMIT)

        async def build() -> Envelope:
            products = await self.fetch(
                repository.get_related_products,
                category_id,
                exclude_id,
                limit,
                resource="related products",
            )
            return {"products": with_discounts(products), "count": len(products)}

        return await self.read_through(
            CacheKeys.related_products(category_id, exclude_id, limit),
            CacheTTL.RELATED_PRODUCTS,
            build,
            RELATED_FIELDS,
        )
