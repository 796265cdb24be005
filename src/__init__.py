"""
Storefront Catalog Service

Serves the storefront catalog (home feed, categories, products) through
a Redis read-through cache and keeps that cache consistent with the
database after admin mutations.
"""

__version__ = "0.1.0"
