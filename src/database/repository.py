"""
Repository Layer - Catalog Queries and Mutations

Plain functions over a SQLAlchemy session. Reads return JSON-ready dicts
so results can be cached as-is; mutations return a `ProductChange` /
`CategoryChange` describing what the cache layer must invalidate.

Callers own the session and its transaction.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Tuple

from sqlalchemy import func, or_, desc
from sqlalchemy.orm import Session, joinedload

from .models import Category, Product, OrderItem

logger = logging.getLogger(__name__)


# Number of products ranked as best sellers
BEST_SELLER_LIMIT = 50

PRODUCT_FIELDS = {
    "name_en", "name_ar", "description_en", "description_ar", "slug",
    "price", "sale_price", "is_on_sale", "is_featured", "is_active",
    "stock", "unit", "rating", "review_count", "image", "images", "tags",
    "category_id", "vendor_id",
}

CATEGORY_FIELDS = {"name_en", "name_ar", "slug", "image", "color"}


def slugify(value: str) -> str:
    value = re.sub(r"[^\w\s-]", "", value.strip().lower())
    return re.sub(r"[\s_-]+", "-", value).strip("-")


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# SERIALIZATION
# =============================================================================

def serialize_category(category: Optional[Category]) -> Optional[Dict[str, Any]]:
    if category is None:
        return None
    return category.to_dict()


def serialize_product(product: Product, view: str = "card") -> Dict[str, Any]:
    """
    Serialize a product for one of three views.

    - listing: compact fields for category pages and related lists
    - card: home page sections (at most 3 images, 5 tags)
    - detail: everything the product page renders
    """
    data = {
        "_id": product.id,
        "name": {"en": product.name_en, "ar": product.name_ar},
        "slug": product.slug,
        "price": product.price,
        "salePrice": product.sale_price or 0,
        "isOnSale": bool(product.is_on_sale),
        "image": product.image,
        "stock": product.stock,
        "category": (
            {
                "_id": product.category.id,
                "name": {"en": product.category.name_en, "ar": product.category.name_ar},
                "slug": product.category.slug,
            }
            if product.category else None
        ),
    }
    if view == "listing":
        return data

    data.update({
        "description": {"en": product.description_en, "ar": product.description_ar},
        "isFeatured": bool(product.is_featured),
        "rating": product.rating or 0,
        "reviewCount": product.review_count or 0,
        "createdAt": _iso(product.created_at),
        "vendor": product.vendor.to_dict() if product.vendor else None,
    })

    if view == "card":
        data["images"] = list(product.images or [])[:3]
        data["tags"] = list(product.tags or [])[:5]
        return data

    data.update({
        "images": list(product.images or []),
        "tags": list(product.tags or []),
        "unit": product.unit,
        "isActive": bool(product.is_active),
        "updatedAt": _iso(product.updated_at),
    })
    return data


def _with_relations(query):
    return query.options(joinedload(Product.category), joinedload(Product.vendor))


def _available(query):
    """Only products a shopper can buy."""
    return query.filter(Product.is_active.is_(True), Product.stock > 0)


# =============================================================================
# CATEGORY READS
# =============================================================================

def find_category_by_slug(db: Session, slug: str) -> Optional[Dict[str, Any]]:
    category = db.query(Category).filter(Category.slug == slug).first()
    return serialize_category(category)


def get_category_slug(db: Session, category_id: str) -> Optional[str]:
    """Slug of a category, None when it does not exist."""
    row = db.query(Category.slug).filter(Category.id == category_id).first()
    return row[0] if row else None


def list_categories(db: Session) -> List[Dict[str, Any]]:
    categories = db.query(Category).order_by(Category.name_en).all()
    return [serialize_category(c) for c in categories]


# =============================================================================
# PRODUCT READS
# =============================================================================

def get_best_seller_ids(db: Session, limit: int = BEST_SELLER_LIMIT) -> List[str]:
    """Product ids ranked by total quantity sold across all orders."""
    total_sold = func.sum(OrderItem.quantity).label("total_sold")
    rows = (
        db.query(OrderItem.product_id, total_sold)
        .filter(OrderItem.product_id.isnot(None))
        .group_by(OrderItem.product_id)
        .order_by(desc(total_sold), OrderItem.product_id)
        .limit(limit)
        .all()
    )
    return [row[0] for row in rows]


def get_home_sections(
    db: Session,
    limit: int,
    best_seller_ids: List[str],
    search: str = "",
    category_id: str = "",
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Build the four home page product sections.

    Best sellers fall back to featured products when no sales exist yet.
    """
    base = _with_relations(_available(db.query(Product)))
    if search:
        pattern = f"%{search}%"
        base = base.filter(or_(
            Product.name_en.ilike(pattern),
            Product.name_ar.ilike(pattern),
            Product.description_en.ilike(pattern),
            Product.description_ar.ilike(pattern),
        ))
    if category_id:
        base = base.filter(Product.category_id == category_id)

    newest = (desc(Product.created_at), Product.id)

    top_deals = (
        base.filter(
            Product.is_on_sale.is_(True),
            Product.sale_price > 0,
            Product.price > Product.sale_price,
        )
        .order_by(desc(Product.is_featured), *newest)
        .limit(limit)
        .all()
    )
    new_arrivals = base.order_by(*newest).limit(limit).all()

    if best_seller_ids:
        best_query = base.filter(Product.id.in_(best_seller_ids))
    else:
        best_query = base.filter(Product.is_featured.is_(True))
    best_sellers = best_query.order_by(*newest).limit(limit).all()

    featured = base.filter(Product.is_featured.is_(True)).order_by(*newest).limit(limit).all()

    return {
        "topDeals": [serialize_product(p) for p in top_deals],
        "newArrivals": [serialize_product(p) for p in new_arrivals],
        "bestSellers": [serialize_product(p) for p in best_sellers],
        "featured": [serialize_product(p) for p in featured],
    }


def get_category_products_page(
    db: Session,
    category_id: str,
    page: int,
    limit: int,
) -> Tuple[List[Dict[str, Any]], int]:
    """
    One page of a category listing, newest first.

    Fetches limit + 1 rows so the caller can detect a next page.

    Returns:
        (products, total)
    """
    query = _available(db.query(Product)).filter(Product.category_id == category_id)
    total = query.count()
    products = (
        _with_relations(query)
        .order_by(desc(Product.created_at), Product.id)
        .offset((page - 1) * limit)
        .limit(limit + 1)
        .all()
    )
    return [serialize_product(p, "listing") for p in products], total


def find_active_product_by_slug(db: Session, slug: str) -> Optional[Dict[str, Any]]:
    product = (
        _with_relations(db.query(Product))
        .filter(Product.slug == slug, Product.is_active.is_(True))
        .first()
    )
    return serialize_product(product, "detail") if product else None


def get_related_products(
    db: Session,
    category_id: str,
    exclude_id: Optional[str],
    limit: int,
) -> List[Dict[str, Any]]:
    query = _available(db.query(Product)).filter(Product.category_id == category_id)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    products = (
        _with_relations(query)
        .order_by(desc(Product.created_at), Product.id)
        .limit(limit)
        .all()
    )
    return [serialize_product(p, "listing") for p in products]


def get_product_ref(db: Session, product_id: str) -> Optional[Dict[str, Any]]:
    """The identifiers the cache layer keys a product by."""
    row = (
        db.query(Product.id, Product.slug, Product.category_id)
        .filter(Product.id == product_id)
        .first()
    )
    if row is None:
        return None
    return {"id": row[0], "slug": row[1], "category_id": row[2]}


# =============================================================================
# MUTATIONS
# =============================================================================

@dataclass
class ProductChange:
    """Identifiers of a mutated product, before and after the write."""
    product_id: str
    slug: str
    category_id: Optional[str]
    previous_slug: Optional[str] = None
    previous_category_id: Optional[str] = None


@dataclass
class CategoryChange:
    category_id: str
    slug: str
    previous_slug: Optional[str] = None


def _apply(entity, changes: Dict[str, Any], allowed: set):
    for field_name, value in changes.items():
        if field_name in allowed:
            setattr(entity, field_name, value)


def create_product(db: Session, data: Dict[str, Any]) -> ProductChange:
    data = dict(data)
    data.setdefault("slug", slugify(data.get("name_en", "")))
    product = Product()
    _apply(product, data, PRODUCT_FIELDS)
    db.add(product)
    db.flush()

    logger.info(f"Created product {product.id} ({product.slug})")
    return ProductChange(product.id, product.slug, product.category_id)


def update_product(db: Session, product_id: str, changes: Dict[str, Any]) -> Optional[ProductChange]:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        return None

    previous_slug, previous_category_id = product.slug, product.category_id
    _apply(product, changes, PRODUCT_FIELDS)
    db.flush()

    logger.info(f"Updated product {product.id} ({product.slug})")
    return ProductChange(
        product.id,
        product.slug,
        product.category_id,
        previous_slug=previous_slug if previous_slug != product.slug else None,
        previous_category_id=(
            previous_category_id if previous_category_id != product.category_id else None
        ),
    )


def toggle_product(db: Session, product_id: str) -> Optional[ProductChange]:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        return None

    product.is_active = not product.is_active
    db.flush()
    logger.info(f"Product {product.id} is now {'active' if product.is_active else 'inactive'}")
    return ProductChange(product.id, product.slug, product.category_id)


def delete_product(db: Session, product_id: str) -> Optional[ProductChange]:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        return None

    change = ProductChange(product.id, product.slug, product.category_id)
    db.query(OrderItem).filter(OrderItem.product_id == product_id).update(
        {OrderItem.product_id: None}, synchronize_session=False
    )
    db.delete(product)
    db.flush()
    logger.info(f"Deleted product {change.product_id} ({change.slug})")
    return change


def bulk_set_products_active(db: Session, product_ids: List[str], is_active: bool) -> List[str]:
    """Set the active flag on many products. Returns the ids that existed."""
    if not product_ids:
        return []
    products = db.query(Product).filter(Product.id.in_(product_ids)).all()
    for product in products:
        product.is_active = is_active
    db.flush()

    logger.info(f"Set is_active={is_active} on {len(products)}/{len(product_ids)} products")
    return [p.id for p in products]


def create_category(db: Session, data: Dict[str, Any]) -> CategoryChange:
    data = dict(data)
    data.setdefault("slug", slugify(data.get("name_en", "")))
    category = Category()
    _apply(category, data, CATEGORY_FIELDS)
    db.add(category)
    db.flush()

    logger.info(f"Created category {category.id} ({category.slug})")
    return CategoryChange(category.id, category.slug)


def update_category(db: Session, category_id: str, changes: Dict[str, Any]) -> Optional[CategoryChange]:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        return None

    previous_slug = category.slug
    _apply(category, changes, CATEGORY_FIELDS)
    db.flush()

    logger.info(f"Updated category {category.id} ({category.slug})")
    return CategoryChange(
        category.id,
        category.slug,
        previous_slug=previous_slug if previous_slug != category.slug else None,
    )


def delete_category(db: Session, category_id: str) -> Optional[CategoryChange]:
    """Delete a category. Its products stay in the catalog, uncategorized."""
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        return None

    change = CategoryChange(category.id, category.slug)
    db.query(Product).filter(Product.category_id == category_id).update(
        {Product.category_id: None}, synchronize_session=False
    )
    db.delete(category)
    db.flush()
    logger.info(f"Deleted category {change.category_id} ({change.slug})")
    return change
