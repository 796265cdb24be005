#!/usr/bin/env python3
"""
Catalog Cache Invalidation CLI

Invalidates catalog cache entries from outside the API process, e.g.
after a data import or a manual database fix. Page revalidation goes
through the HTTP revalidation endpoint of the running storefront, so
APP_BASE_URL and REVALIDATE_SECRET must be set.

Usage:
    python scripts/invalidate_cache.py product <product_id>
    python scripts/invalidate_cache.py products <id> <id> ...
    python scripts/invalidate_cache.py category <category_id> [--slug dairy]

    # Check what the storefront serves (and whether it came from cache):
    python scripts/invalidate_cache.py fetch product fresh-milk
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def run_invalidation(args) -> int:
    from src.cache import (
        CacheConfig,
        CacheInvalidator,
        PageRevalidator,
        RedisCache,
        RedisEventSink,
    )
    from src.database import get_session_factory, get_db_context, repository

    config = CacheConfig()
    if not config.can_revalidate_over_http:
        logger.warning("APP_BASE_URL / REVALIDATE_SECRET not set: pages will not be revalidated")

    cache = RedisCache(config)
    if not await cache.initialize():
        logger.warning("Redis unreachable: only events and page revalidation will run")

    invalidator = CacheInvalidator(
        cache,
        get_session_factory(),
        event_sink=RedisEventSink(cache),
        # No in-process page cache here, so revalidation goes over HTTP
        revalidator=PageRevalidator(local=None, config=config),
    )

    try:
        if args.command == "product":
            with get_db_context() as db:
                ref = repository.get_product_ref(db, args.product_id)
            if ref is None:
                print(f"Product not found: {args.product_id}")
                return 1
            result = await invalidator.invalidate_product(ref["id"], ref["slug"], ref["category_id"])
        elif args.command == "products":
            result = await invalidator.invalidate_products_bulk(args.product_ids)
        else:
            result = await invalidator.invalidate_category(args.category_id, category_slug=args.slug)
    finally:
        await cache.close()

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 2


async def run_fetch(args) -> int:
    from src.cache import CacheConfig, UpstreamFetchError, ResourceNotFound
    from src.catalog import StorefrontClient

    config = CacheConfig()
    if not config.app_base_url:
        print("ERROR: APP_BASE_URL is not set")
        return 1

    async with StorefrontClient(config.app_base_url, timeout=config.fetch_timeout) as client:
        try:
            if args.resource == "home":
                payload = await client.get_home()
            elif args.resource == "category":
                payload = await client.get_category(args.identifier)
            else:
                payload = await client.get_product(args.identifier)
        except (UpstreamFetchError, ResourceNotFound) as e:
            print(f"✗ {e}")
            return 1

    print(f"✓ {args.resource} served from {payload.get('source')}")
    return 0


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Invalidate catalog cache entries")
    subparsers = parser.add_subparsers(dest="command", required=True)

    product = subparsers.add_parser("product", help="Invalidate one product")
    product.add_argument("product_id")

    products = subparsers.add_parser("products", help="Invalidate many products at once")
    products.add_argument("product_ids", nargs="+")

    category = subparsers.add_parser("category", help="Invalidate one category")
    category.add_argument("category_id")
    category.add_argument("--slug", help="Slug to use when the category no longer exists")

    fetch = subparsers.add_parser("fetch", help="Fetch a resource from the storefront API")
    fetch.add_argument("resource", choices=["home", "category", "product"])
    fetch.add_argument("identifier", nargs="?", default="")

    args = parser.parse_args()

    if args.command == "fetch":
        return asyncio.run(run_fetch(args))
    return asyncio.run(run_invalidation(args))


if __name__ == "__main__":
    sys.exit(main())
