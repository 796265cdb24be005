"""
Storefront Catalog API

FastAPI application serving:
1. Storefront catalog reads through the Redis read-through cache
2. Admin mutations that invalidate the cache and revalidate pages
3. The protected page revalidation endpoint
4. Cache health, statistics and manual invalidation

The process owns the cache connection: it connects on startup and
closes on shutdown.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from src.cache.config import CacheConfig, get_cache_config
from src.cache.events import EventSink, RedisEventSink
from src.cache.exceptions import CatalogCacheError
from src.cache.invalidation import CacheInvalidator
from src.cache.redis_cache import RedisCache
from src.cache.revalidation import (
    CDNPathRevalidator,
    HTTPPathRevalidator,
    PageRevalidator,
    PathRevalidator,
)
from src.cache.warming import CacheWarmer
from src.catalog import CategoryPageAccessor, HomeFeedAccessor, ProductAccessor
from src.database.session import get_engine, get_session_factory, init_db, check_db_connection
from src.utils.config import Settings, get_settings

from api import admin, cache as cache_routes, catalog, revalidate

# Configure logging to stdout
logging.basicConfig(
    level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    cache: Optional[RedisCache] = None,
    session_factory: Optional[sessionmaker] = None,
    event_sink: Optional[EventSink] = None,
    path_revalidator: Optional[PathRevalidator] = None,
    page_revalidator: Optional[PageRevalidator] = None,
    config: Optional[CacheConfig] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application with its collaborators.

    Anything not passed in is built from the environment. Tests inject
    an in-memory cache and a SQLite session factory.
    """
    settings = settings or get_settings()
    config = config or get_cache_config()
    cache = cache or RedisCache(config)
    owns_database = session_factory is None
    session_factory = session_factory or get_session_factory()
    event_sink = event_sink or RedisEventSink(cache)
    path_revalidator = path_revalidator or CDNPathRevalidator(config)
    page_revalidator = page_revalidator or PageRevalidator(
        local=path_revalidator,
        http=HTTPPathRevalidator(config),
        warmer=CacheWarmer(config),
        config=config,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            logger.info("Initializing database...")
            try:
                init_db(get_engine())
                if not check_db_connection():
                    logger.warning("Database connection check failed - continuing anyway")
            except Exception as e:
                logger.error(f"Database initialization failed: {e}")

        await cache.initialize()
        try:
            yield
        finally:
            await cache.close()

    app = FastAPI(
        title="Storefront Catalog API",
        description="Catalog reads behind a Redis read-through cache with mutation-driven invalidation",
        version="0.1.0",
        lifespan=lifespan,
    )

    accessor_args = dict(
        cache=cache,
        session_factory=session_factory,
        config=config,
        store_name=settings.STORE_NAME,
    )
    app.state.settings = settings
    app.state.cache_config = config
    app.state.cache = cache
    app.state.session_factory = session_factory
    app.state.path_revalidator = path_revalidator
    app.state.invalidator = CacheInvalidator(
        cache,
        session_factory,
        event_sink=event_sink,
        revalidator=page_revalidator,
    )
    app.state.home_accessor = HomeFeedAccessor(**accessor_args)
    app.state.category_accessor = CategoryPageAccessor(**accessor_args)
    app.state.product_accessor = ProductAccessor(**accessor_args)

    @app.exception_handler(CatalogCacheError)
    async def catalog_error_handler(request: Request, exc: CatalogCacheError):
        status_code = getattr(exc, "status_code", 500)
        message = "Internal Server Error" if status_code == 500 else str(exc)
        logger.error(f"{request.method} {request.url.path} failed ({status_code}): {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": message},
        )

    app.include_router(catalog.router)
    app.include_router(admin.router)
    app.include_router(revalidate.router)
    app.include_router(cache_routes.router)

    @app.get("/")
    async def root():
        return {"service": "storefront-catalog", "version": app.version}

    @app.get("/api/health")
    async def health():
        cache_health = await cache.health_check()
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "cache": cache_health["status"],
        }

    return app


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
