"""
Storefront Catalog API

Read endpoints served through the read-through cache:
- GET /api/home
- GET /api/category/{slug}
- GET /api/product/{slug}
- GET /api/product/category/{category_id}

Pagination and limits are taken as raw strings so malformed values are
clamped to defaults instead of rejected.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from src.cache.headers import add_cache_headers
from src.catalog import CategoryPageAccessor, HomeFeedAccessor, ProductAccessor

from api.dependencies import get_category_accessor, get_home_accessor, get_product_accessor


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Catalog"])


@router.get("/home")
async def get_home(
    response: Response,
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None, description="Category id to filter by"),
    limit: Optional[str] = Query(None, description="Products per section (max 20)"),
    accessor: HomeFeedAccessor = Depends(get_home_accessor),
):
    """Home page feed: deals, new arrivals, best sellers, featured, categories."""
    envelope = await accessor.get_home_page(search=search, category=category, limit=limit)
    add_cache_headers(response, "catalog")
    return envelope


@router.get("/category/{slug}")
async def get_category(
    slug: str,
    response: Response,
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    accessor: CategoryPageAccessor = Depends(get_category_accessor),
):
    """One page of a category listing."""
    envelope = await accessor.get_category_page(slug, page=page, limit=limit)
    add_cache_headers(response, "catalog")
    return envelope


@router.get("/product/category/{category_id}")
async def get_related_products(
    category_id: str,
    response: Response,
    exclude: Optional[str] = Query(None, description="Product id to leave out"),
    limit: Optional[str] = Query(None),
    accessor: ProductAccessor = Depends(get_product_accessor),
):
    """Products from the same category, for "you may also like" lists."""
    envelope = await accessor.get_related_products(category_id, exclude_id=exclude, limit=limit)
    add_cache_headers(response, "catalog")
    return envelope


@router.get("/product/{slug}")
async def get_product(
    slug: str,
    response: Response,
    accessor: ProductAccessor = Depends(get_product_accessor),
):
    envelope = await accessor.get_product_by_slug(slug)
    add_cache_headers(response, "catalog")
    return envelope
