"""
Shared FastAPI dependencies.

Every collaborator is built once in `create_app` and stored on
`app.state`; routes pull them from there instead of module globals.
"""

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker

from src.cache.config import CacheConfig
from src.cache.invalidation import CacheInvalidator
from src.cache.redis_cache import RedisCache
from src.cache.revalidation import PathRevalidator
from src.catalog import CategoryPageAccessor, HomeFeedAccessor, ProductAccessor


def get_cache(request: Request) -> RedisCache:
    return request.app.state.cache


def get_cache_config(request: Request) -> CacheConfig:
    return request.app.state.cache_config


def get_session_factory(request: Request) -> sessionmaker:
    return request.app.state.session_factory


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_invalidator(request: Request) -> CacheInvalidator:
    return request.app.state.invalidator


def get_path_revalidator(request: Request) -> PathRevalidator:
    return request.app.state.path_revalidator


def get_home_accessor(request: Request) -> HomeFeedAccessor:
    return request.app.state.home_accessor


def get_category_accessor(request: Request) -> CategoryPageAccessor:
    return request.app.state.category_accessor


def get_product_accessor(request: Request) -> ProductAccessor:
    return request.app.state.product_accessor
