"""
Storefront Database Layer

Usage:
    from src.database import init_db, get_db_context, repository

    init_db()

    with get_db_context() as db:
        product = repository.find_active_product_by_slug(db, "fresh-milk")
"""

from .models import Base, Category, Vendor, Product, Order, OrderItem
from .session import (
    get_database_url,
    create_db_engine,
    get_engine,
    build_session_factory,
    get_session_factory,
    get_db,
    get_db_context,
    session_scope,
    init_db,
    check_db_connection,
)
from . import repository

__all__ = [
    "Base",
    "Category",
    "Vendor",
    "Product",
    "Order",
    "OrderItem",
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "build_session_factory",
    "get_session_factory",
    "get_db",
    "get_db_context",
    "session_scope",
    "init_db",
    "check_db_connection",
    "repository",
]
