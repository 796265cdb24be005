"""
Catalog read-through accessors.

Usage:
    products = ProductAccessor(cache, session_factory)
    envelope = await products.get_product_by_slug("fresh-milk")
    envelope["source"]  # 'cache' or 'api'
"""

from src.catalog.base import ReadThroughAccessor, SOURCE_CACHE, SOURCE_API
from src.catalog.home import HomeFeedAccessor
from src.catalog.category import CategoryPageAccessor
from src.catalog.product import ProductAccessor
from src.catalog.client import StorefrontClient, StorefrontAPIError

__all__ = [
    "ReadThroughAccessor",
    "SOURCE_CACHE",
    "SOURCE_API",
    "HomeFeedAccessor",
    "CategoryPageAccessor",
    "ProductAccessor",
    "StorefrontClient",
    "StorefrontAPIError",
]
