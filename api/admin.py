"""
Admin Catalog Mutations

Handles:
1. Create, update, toggle and delete products
2. Bulk activate / deactivate products
3. Create, update and delete categories

Each route commits the database write first, then runs the matching
cache invalidation and reports its summary. Invalidation problems never
fail the request: the write already succeeded.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from src.cache.headers import add_cache_headers
from src.cache.invalidation import CacheEvent, CacheInvalidator
from src.database import repository
from src.database.session import session_scope

from api.dependencies import get_invalidator, get_session_factory


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ProductCreate(BaseModel):
    name_en: str = Field(..., min_length=1)
    name_ar: Optional[str] = None
    description_en: Optional[str] = None
    description_ar: Optional[str] = None
    slug: Optional[str] = None
    price: float = Field(..., ge=0)
    sale_price: float = Field(default=0.0, ge=0)
    is_on_sale: bool = False
    is_featured: bool = False
    is_active: bool = True
    stock: int = Field(default=0, ge=0)
    unit: Optional[str] = None
    image: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    category_id: Optional[str] = None
    vendor_id: Optional[str] = None


class ProductUpdate(BaseModel):
    name_en: Optional[str] = None
    name_ar: Optional[str] = None
    description_en: Optional[str] = None
    description_ar: Optional[str] = None
    slug: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    sale_price: Optional[float] = Field(default=None, ge=0)
    is_on_sale: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None
    stock: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = None
    image: Optional[str] = None
    images: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    category_id: Optional[str] = None
    vendor_id: Optional[str] = None


class BulkToggleRequest(BaseModel):
    product_ids: List[str] = Field(..., min_length=1)
    is_active: bool


class CategoryCreate(BaseModel):
    name_en: str = Field(..., min_length=1)
    name_ar: Optional[str] = None
    slug: Optional[str] = None
    image: Optional[str] = None
    color: Optional[str] = None


class CategoryUpdate(BaseModel):
    name_en: Optional[str] = None
    name_ar: Optional[str] = None
    slug: Optional[str] = None
    image: Optional[str] = None
    color: Optional[str] = None


# =============================================================================
# HELPERS
# =============================================================================

async def _write(session_factory: sessionmaker, fn: Callable, *args) -> Any:
    """Run a repository mutation in its own committed transaction."""
    def run():
        with session_scope(session_factory) as db:
            return fn(db, *args)

    return await asyncio.to_thread(run)


def _not_found(resource: str, identifier: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{resource} not found: {identifier}")


def _product_response(change: repository.ProductChange, result) -> Dict[str, Any]:
    return {
        "success": True,
        "product": {"id": change.product_id, "slug": change.slug, "category_id": change.category_id},
        "invalidation": result.to_dict(),
    }


def _category_response(change: repository.CategoryChange, result) -> Dict[str, Any]:
    return {
        "success": True,
        "category": {"id": change.category_id, "slug": change.slug},
        "invalidation": result.to_dict(),
    }


async def _invalidate_product(
    invalidator: CacheInvalidator,
    event: CacheEvent,
    change: repository.ProductChange,
):
    return await invalidator.handle_event(
        event,
        product_id=change.product_id,
        product_slug=change.slug,
        category_id=change.category_id,
        previous_slug=change.previous_slug,
        previous_category_id=change.previous_category_id,
    )


# =============================================================================
# PRODUCTS
# =============================================================================

@router.post("/products", status_code=201)
async def create_product(
    payload: ProductCreate,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    data = payload.model_dump(exclude_none=True)
    change = await _write(session_factory, repository.create_product, data)
    result = await _invalidate_product(invalidator, CacheEvent.PRODUCT_CREATED, change)
    add_cache_headers(response, "admin")
    return _product_response(change, result)


@router.patch("/products/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    changes = payload.model_dump(exclude_unset=True)
    change = await _write(session_factory, repository.update_product, product_id, changes)
    if change is None:
        raise _not_found("Product", product_id)

    result = await _invalidate_product(invalidator, CacheEvent.PRODUCT_UPDATED, change)
    add_cache_headers(response, "admin")
    return _product_response(change, result)


@router.post("/products/bulk-toggle")
async def bulk_toggle_products(
    payload: BulkToggleRequest,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    updated = await _write(
        session_factory,
        repository.bulk_set_products_active,
        payload.product_ids,
        payload.is_active,
    )
    result = await invalidator.handle_event(CacheEvent.PRODUCTS_BULK_TOGGLED, product_ids=updated)
    add_cache_headers(response, "admin")
    return {
        "success": True,
        "updated": len(updated),
        "product_ids": updated,
        "invalidation": result.to_dict(),
    }


@router.post("/products/{product_id}/toggle")
async def toggle_product(
    product_id: str,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    change = await _write(session_factory, repository.toggle_product, product_id)
    if change is None:
        raise _not_found("Product", product_id)

    result = await _invalidate_product(invalidator, CacheEvent.PRODUCT_TOGGLED, change)
    add_cache_headers(response, "admin")
    return _product_response(change, result)


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    change = await _write(session_factory, repository.delete_product, product_id)
    if change is None:
        raise _not_found("Product", product_id)

    result = await _invalidate_product(invalidator, CacheEvent.PRODUCT_DELETED, change)
    add_cache_headers(response, "admin")
    return _product_response(change, result)


# =============================================================================
# CATEGORIES
# =============================================================================

@router.post("/categories", status_code=201)
async def create_category(
    payload: CategoryCreate,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    change = await _write(session_factory, repository.create_category, payload.model_dump(exclude_none=True))
    result = await invalidator.handle_event(
        CacheEvent.CATEGORY_CREATED,
        category_id=change.category_id,
        category_slug=change.slug,
    )
    add_cache_headers(response, "admin")
    return _category_response(change, result)


@router.patch("/categories/{category_id}")
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    change = await _write(
        session_factory,
        repository.update_category,
        category_id,
        payload.model_dump(exclude_unset=True),
    )
    if change is None:
        raise _not_found("Category", category_id)

    result = await invalidator.handle_event(
        CacheEvent.CATEGORY_UPDATED,
        category_id=change.category_id,
        category_slug=change.slug,
        previous_slug=change.previous_slug,
    )
    add_cache_headers(response, "admin")
    return _category_response(change, result)


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    response: Response,
    session_factory: sessionmaker = Depends(get_session_factory),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    change = await _write(session_factory, repository.delete_category, category_id)
    if change is None:
        raise _not_found("Category", category_id)

    result = await invalidator.handle_event(
        CacheEvent.CATEGORY_DELETED,
        category_id=change.category_id,
        category_slug=change.slug,
    )
    add_cache_headers(response, "admin")
    return _category_response(change, result)
