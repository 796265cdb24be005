"""
Response shaping for catalog envelopes.

Derived fields are computed deterministically from the raw records so a
cached envelope and a freshly built one are indistinguishable.
"""

import math
from typing import Any, Dict, Iterable, List, Optional

from src.cache.exceptions import InvalidResponseShape


DEFAULT_STORE_NAME = "Farmer's Market"


def discount_percentage(product: Dict[str, Any]) -> int:
    """Whole-number discount, 0 unless the product is really on sale below its price."""
    price = product.get("price") or 0
    sale_price = product.get("salePrice") or 0
    if not product.get("isOnSale") or sale_price <= 0 or price <= sale_price:
        return 0
    # Half-up
    return int(math.floor((price - sale_price) / price * 100 + 0.5))


def with_discount(product: Dict[str, Any]) -> Dict[str, Any]:
    return {**product, "discountPercentage": discount_percentage(product)}


def with_discounts(products: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [with_discount(p) for p in products]


def build_pagination(total: int, page: int, limit: int, has_next_page: bool) -> Dict[str, Any]:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 1,
        "hasNextPage": has_next_page,
        "hasPrevPage": page > 1,
    }


def _english_name(entity: Optional[Dict[str, Any]], fallback: str) -> str:
    if not entity:
        return fallback
    name = entity.get("name") or {}
    return name.get("en") or fallback


def category_metadata(category: Dict[str, Any], store_name: str = DEFAULT_STORE_NAME) -> Dict[str, Any]:
    return {"title": f"{_english_name(category, 'Category')} | {store_name}"}


def product_metadata(product: Dict[str, Any], store_name: str = DEFAULT_STORE_NAME) -> Dict[str, Any]:
    name = _english_name(product, "Product")
    description = (product.get("description") or {}).get("en")
    return {
        "title": f"{name} | {store_name}",
        "description": description or f"Buy fresh {name} online with fast delivery.",
        "keywords": ", ".join(product.get("tags") or []),
    }


def missing_fields(payload: Any, required: Iterable[str]) -> List[str]:
    if not isinstance(payload, dict):
        return list(required)
    return [name for name in required if name not in payload]


def require_fields(resource: str, payload: Any, required: Iterable[str]) -> None:
    """
    Raises:
        InvalidResponseShape: If the payload lacks any required field
    """
    missing = missing_fields(payload, required)
    if missing:
        raise InvalidResponseShape(resource, missing)
