"""
Cache Management API

Provides endpoints for cache monitoring and manual operations.

Endpoints:
- Health check for monitoring/alerting
- Statistics for dashboard insights
- Manual invalidation for debugging
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.cache.invalidation import CacheEvent, CacheInvalidator
from src.cache.keys import CacheKeys
from src.cache.redis_cache import RedisCache
from src.database import repository

from api.dependencies import get_cache, get_db, get_invalidator


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class CacheHealthResponse(BaseModel):
    """Cache health check response."""
    status: str = Field(..., description="healthy, degraded or disabled")
    backend: str = Field(default="redis", description="Cache backend type")
    latency_ms: Optional[float] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class CacheStatsResponse(BaseModel):
    """Cache statistics response."""
    enabled: bool
    connected: bool
    hits: int
    misses: int
    errors: int
    writes: int
    deletes: int
    hit_rate_percent: float
    avg_latency_ms: float
    circuit_breaker_open: bool


class InvalidationResponse(BaseModel):
    """Cache invalidation response."""
    success: bool
    keys_invalidated: int
    paths_revalidated: int = 0
    duration_ms: float
    errors: List[str] = []


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/health", response_model=CacheHealthResponse)
async def cache_health_check(cache: RedisCache = Depends(get_cache)):
    """
    Check cache infrastructure health.

    Use this endpoint for monitoring and alerting systems. An unhealthy
    cache does not break the storefront; reads fall back to the database.
    """
    health = await cache.health_check()

    if health["status"] == "disabled":
        status = "disabled"
    else:
        status = "healthy" if health["healthy"] else "degraded"

    return CacheHealthResponse(
        status=status,
        latency_ms=health.get("latency_ms"),
        error=health.get("error"),
        timestamp=datetime.utcnow(),
    )


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(cache: RedisCache = Depends(get_cache)):
    """
    Get current cache statistics.

    Note: Stats are per process and reset on application restart.
    """
    return CacheStatsResponse(**cache.get_stats())


@router.post("/invalidate/product/{product_id}", response_model=InvalidationResponse)
async def invalidate_product_cache(
    product_id: str,
    db: Session = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    """
    Invalidate everything derived from one product.

    Use this after manual data corrections made outside the admin API.
    """
    ref = await asyncio.to_thread(repository.get_product_ref, db, product_id)
    if ref is None:
        raise HTTPException(status_code=404, detail="Product not found")

    result = await invalidator.invalidate_product(
        ref["id"], ref["slug"], ref["category_id"], event=CacheEvent.PRODUCT_UPDATED,
    )
    return InvalidationResponse(**result.to_dict())


@router.post("/invalidate/category/{category_id}", response_model=InvalidationResponse)
async def invalidate_category_cache(
    category_id: str,
    slug: Optional[str] = None,
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    """
    Invalidate everything derived from one category.

    Pass `slug` for a category that no longer exists.
    """
    result = await invalidator.invalidate_category(category_id, category_slug=slug)
    return InvalidationResponse(**result.to_dict())


@router.post("/invalidate/home", response_model=InvalidationResponse)
async def invalidate_home_cache(cache: RedisCache = Depends(get_cache)):
    """Drop every home feed variant and the aggregates it is built from."""
    start = time.monotonic()

    counts = [
        await cache.delete_pattern(CacheKeys.home_main_pattern()),
        await cache.delete_pattern(CacheKeys.home_products_pattern()),
        await cache.delete_many(CacheKeys.best_seller_ids(), CacheKeys.categories_all()),
    ]

    errors = [] if min(counts) >= 0 else ["cache store unavailable"]
    return InvalidationResponse(
        success=not errors,
        keys_invalidated=sum(c for c in counts if c > 0),
        duration_ms=(time.monotonic() - start) * 1000,
        errors=errors,
    )
