"""
Cache Key Schema

Every catalog cache key is derived from a resource type, its identifying
attributes, and normalized pagination/filter inputs. Equivalent requests
must always produce the same key, so all inputs go through the
normalizers below before a key is built.

Key families (all keys derived from one upstream entity) share a prefix
and are invalidated together with a trailing `*` pattern.
"""

import hashlib
import json
import logging
import re
from typing import Any, Dict, Optional, Tuple


logger = logging.getLogger(__name__)


# Pagination defaults per resource
HOME_DEFAULT_LIMIT = 10
HOME_MAX_LIMIT = 20
CATEGORY_DEFAULT_LIMIT = 3
RELATED_DEFAULT_LIMIT = 8
MAX_PAGE_SIZE = 50

# Characters with special meaning in a SCAN MATCH pattern
_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def escape_glob(value: Any) -> str:
    """Escape an identifier so it matches only itself inside a SCAN pattern."""
    return _GLOB_SPECIAL.sub(r"\\\1", str(value).strip())


def _to_int(value: Any) -> Optional[int]:
    """Parse an int the way a query string would be parsed, None if impossible."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def normalize_page(page: Any) -> int:
    """Page numbers start at 1; anything missing, invalid or below 1 becomes 1."""
    parsed = _to_int(page)
    if parsed is None or parsed < 1:
        return 1
    return parsed


def normalize_limit(
    limit: Any,
    default: int,
    maximum: Optional[int] = MAX_PAGE_SIZE,
) -> int:
    """
    Normalize a page size.

    Missing or non-numeric values fall back to the resource default,
    values below 1 are clamped to 1, and values above the maximum are
    clamped down so callers cannot explode the key space.
    """
    parsed = _to_int(limit)
    if parsed is None:
        return default
    if parsed < 1:
        return 1
    if maximum is not None and parsed > maximum:
        return maximum
    return parsed


def normalize_pagination(
    page: Any,
    limit: Any,
    default_limit: int,
    max_limit: Optional[int] = MAX_PAGE_SIZE,
) -> Tuple[int, int]:
    """Normalize a (page, limit) pair."""
    return normalize_page(page), normalize_limit(limit, default_limit, max_limit)


def normalize_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Normalize a filter object.

    Drops empty values, strips strings, and returns a dict with sorted
    keys so that insertion order never leaks into the cache key.
    """
    if not filters:
        return {}

    normalized = {}
    for key in sorted(filters):
        value = filters[key]
        if isinstance(value, str):
            value = value.strip()
        if value is None or value == "":
            continue
        normalized[str(key)] = value
    return normalized


def filters_digest(filters: Dict[str, Any]) -> str:
    """Short stable hash of a normalized filter object."""
    param_str = json.dumps(normalize_filters(filters), sort_keys=True, default=str)
    return hashlib.md5(param_str.encode()).hexdigest()[:12]


class CacheKeys:
    """Cache key generator following the storefront key formats."""

    BEST_SELLER_IDS = "bestSellers:ids"
    CATEGORIES_ALL = "categories:all"

    @classmethod
    def home_main(cls, limit: int, filters: Optional[Dict[str, Any]] = None) -> str:
        """Key for the home page aggregate. Filtered variants stay in the same family."""
        key = f"home:main:{limit}"
        normalized = normalize_filters(filters)
        if normalized:
            key = f"{key}:filters:{filters_digest(normalized)}"
        return key

    @classmethod
    def home_products(cls, limit: int) -> str:
        """Key for the home page product sections."""
        return f"home:products:result:{limit}"

    @classmethod
    def best_seller_ids(cls) -> str:
        return cls.BEST_SELLER_IDS

    @classmethod
    def categories_all(cls) -> str:
        return cls.CATEGORIES_ALL

    @classmethod
    def category_page(cls, slug: str, page: int, limit: int) -> str:
        """Key for one page of a category listing."""
        return f"category:slug:{slug.strip()}:page:{page}:limit:{limit}"

    @classmethod
    def product_detail(cls, slug: str) -> str:
        return f"product:slug:{slug.strip()}"

    @classmethod
    def related_products(
        cls,
        category_id: str,
        exclude_id: Optional[str],
        limit: int,
    ) -> str:
        """Key for the related-products list of a category."""
        exclude = (exclude_id or "").strip() or "none"
        return f"product:category:{str(category_id).strip()}:exclude:{exclude}:limit:{limit}"

    # =========================================================================
    # Key family patterns
    # =========================================================================

    @classmethod
    def home_main_pattern(cls) -> str:
        return "home:main:*"

    @classmethod
    def home_products_pattern(cls) -> str:
        return "home:products:result:*"

    @classmethod
    def category_pages_pattern(cls, slug: str) -> str:
        """All paginated variants of one category page."""
        return f"category:slug:{escape_glob(slug)}:*"

    @classmethod
    def category_products_pattern(cls, category_id: str) -> str:
        """All related-product lists derived from one category."""
        return f"product:category:{escape_glob(category_id)}:*"
