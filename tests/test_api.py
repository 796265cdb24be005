"""
Tests for the HTTP surface.

Runs the full application against the in-memory Redis and a seeded
SQLite catalog: catalog reads, admin mutations with their invalidation,
the revalidation endpoint and cache management.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from src.cache.events import PRODUCT_BULK_INVALIDATE_CHANNEL
from src.cache.redis_cache import RedisCache
from src.cache.revalidation import PathRevalidator


class StubPathRevalidator(PathRevalidator):
    """Records revalidated paths; `outcome` may be a bool or an exception."""

    def __init__(self):
        self.paths = []
        self.outcome = True

    async def revalidate_many(self, paths):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        self.paths.extend(paths)
        return {path: self.outcome for path in paths}


@pytest.fixture
def path_revalidator():
    return StubPathRevalidator()


@pytest.fixture
def app(cache_config, fake_redis, session_factory, event_sink, revalidator, path_revalidator):
    return create_app(
        cache=RedisCache(cache_config, client=fake_redis),
        session_factory=session_factory,
        event_sink=event_sink,
        path_revalidator=path_revalidator,
        page_revalidator=revalidator,
        config=cache_config,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


# =============================================================================
# SERVICE
# =============================================================================

class TestService:

    def test_root(self, client):
        assert client.get("/").json()["service"] == "storefront-catalog"

    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "healthy"
        assert data["cache"] == "connected"


# =============================================================================
# CATALOG READS
# =============================================================================

class TestCatalogRoutes:

    def test_product_miss_then_hit(self, client):
        first = client.get("/api/product/fresh-milk")
        second = client.get("/api/product/fresh-milk")

        assert first.status_code == 200
        assert first.json()["source"] == "api"
        assert second.json()["source"] == "cache"
        assert first.json()["product"]["discountPercentage"] == 20

    def test_catalog_cache_headers(self, client):
        response = client.get("/api/product/fresh-milk")
        assert response.headers["Cache-Control"] == "public, s-maxage=60, stale-while-revalidate=300"

    def test_unknown_product_is_404(self, client):
        response = client.get("/api/product/hidden-honey")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Product not found: hidden-honey"}

    def test_category_page_clamps_pagination(self, client):
        response = client.get("/api/category/dairy", params={"page": "-3", "limit": "abc"})

        assert response.status_code == 200
        pagination = response.json()["pagination"]
        assert pagination["page"] == 1
        assert pagination["limit"] == 3

    def test_unknown_category_is_404(self, client):
        response = client.get("/api/category/nothing")

        assert response.status_code == 404
        assert response.json()["error"] == "Category not found: nothing"

    def test_related_products(self, client):
        data = client.get("/api/product/category/cat-dairy", params={"exclude": "p-milk"}).json()

        assert data["count"] == 2
        assert "fresh-milk" not in [p["slug"] for p in data["products"]]

    def test_home(self, client):
        data = client.get("/api/home", params={"limit": "5"}).json()

        assert set(data["products"]) == {"topDeals", "newArrivals", "bestSellers", "featured"}
        assert data["metadata"]["limit"] == 5

    def test_source_failure_is_500(self, client):
        with patch(
            "src.catalog.product.repository.find_active_product_by_slug",
            side_effect=RuntimeError("connection reset"),
        ):
            response = client.get("/api/product/fresh-milk")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal Server Error"}

    def test_reads_survive_store_outage(self, client, fake_redis):
        fake_redis.fail = True

        response = client.get("/api/category/dairy")

        assert response.status_code == 200
        assert response.json()["source"] == "api"


# =============================================================================
# REVALIDATION ENDPOINT
# =============================================================================

class TestRevalidateRoute:

    def test_missing_secret(self, client):
        response = client.get("/api/revalidate", params={"path": "/"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid token"}

    def test_wrong_secret(self, client, path_revalidator):
        response = client.get("/api/revalidate", params={"secret": "guess", "path": "/"})

        assert response.status_code == 401
        assert path_revalidator.paths == []

    @pytest.mark.parametrize("path", [None, "", "product/fresh-milk"])
    def test_bad_path(self, client, path):
        params = {"secret": "s3cret"}
        if path is not None:
            params["path"] = path
        assert client.get("/api/revalidate", params=params).status_code == 400

    def test_revalidates(self, client, path_revalidator):
        response = client.get(
            "/api/revalidate", params={"secret": "s3cret", "path": "/product/fresh-milk"}
        )

        assert response.status_code == 200
        assert response.json() == {"revalidated": True, "path": "/product/fresh-milk"}
        assert path_revalidator.paths == ["/product/fresh-milk"]

    def test_revalidator_error(self, client, path_revalidator):
        path_revalidator.outcome = RuntimeError("purge failed")

        response = client.get("/api/revalidate", params={"secret": "s3cret", "path": "/"})

        assert response.status_code == 500
        assert response.json()["success"] is False

    def test_revalidator_refusal(self, client, path_revalidator):
        path_revalidator.outcome = False
        response = client.get("/api/revalidate", params={"secret": "s3cret", "path": "/"})
        assert response.status_code == 500


# =============================================================================
# ADMIN MUTATIONS
# =============================================================================

class TestAdminProducts:

    def test_price_update_is_visible_immediately(self, client, revalidator):
        assert client.get("/api/product/fresh-milk").json()["product"]["price"] == 10.0
        assert client.get("/api/product/fresh-milk").json()["source"] == "cache"

        response = client.patch("/api/admin/products/p-milk", json={"price": 12.5})

        assert response.status_code == 200
        assert response.json()["invalidation"]["success"] is True
        assert response.headers["Cache-Control"] == "no-store"
        assert "/product/fresh-milk" in revalidator.paths

        fresh = client.get("/api/product/fresh-milk").json()
        assert fresh["product"]["price"] == 12.5
        assert fresh["source"] == "api"

    def test_slug_change_clears_old_slug(self, client, fake_redis):
        client.get("/api/product/fresh-milk")

        response = client.patch("/api/admin/products/p-milk", json={"slug": "whole-milk"})

        assert response.json()["product"]["slug"] == "whole-milk"
        assert "product:slug:fresh-milk" not in fake_redis.store
        assert client.get("/api/product/fresh-milk").status_code == 404
        assert client.get("/api/product/whole-milk").status_code == 200

    def test_update_unknown_product(self, client):
        assert client.patch("/api/admin/products/p-nope", json={"price": 1}).status_code == 404

    def test_create_product(self, client, event_sink, fake_redis):
        client.get("/api/category/produce")
        assert fake_redis.keys_matching("category:slug:produce:*")

        response = client.post("/api/admin/products", json={
            "name_en": "Honey Jar",
            "price": 15,
            "stock": 5,
            "category_id": "cat-produce",
            "vendor_id": "vendor-farm",
        })

        assert response.status_code == 201
        assert response.json()["product"]["slug"] == "honey-jar"
        assert event_sink.events[-1][1]["action"] == "created"
        assert fake_redis.keys_matching("category:slug:produce:*") == []

        slugs = [p["slug"] for p in client.get("/api/category/produce").json()["products"]]
        assert "honey-jar" in slugs

    def test_toggle_hides_product(self, client):
        client.get("/api/product/apples")

        response = client.post("/api/admin/products/p-apples/toggle")

        assert response.status_code == 200
        assert client.get("/api/product/apples").status_code == 404

    def test_delete_product(self, client):
        client.get("/api/product/fresh-milk")

        assert client.delete("/api/admin/products/p-milk").status_code == 200
        assert client.get("/api/product/fresh-milk").status_code == 404
        assert client.delete("/api/admin/products/p-milk").status_code == 404

    def test_bulk_toggle(self, client, fake_redis, event_sink, revalidator):
        client.get("/api/category/dairy")
        client.get("/api/category/bakery")
        client.get("/api/category/produce")
        client.get("/api/home")

        response = client.post("/api/admin/products/bulk-toggle", json={
            "product_ids": ["p-milk", "p-yogurt", "p-cheddar", "p-sourdough", "p-croissant"],
            "is_active": False,
        })

        assert response.status_code == 200
        assert response.json()["updated"] == 5
        assert fake_redis.keys_matching("category:slug:dairy:*") == []
        assert fake_redis.keys_matching("category:slug:bakery:*") == []
        assert fake_redis.keys_matching("category:slug:produce:*") != []
        assert fake_redis.keys_matching("home:*") == []

        assert [c for c, _ in event_sink.events] == [PRODUCT_BULK_INVALIDATE_CHANNEL]
        assert len(revalidator.batches) == 1

        dairy = client.get("/api/category/dairy").json()
        assert dairy["products"] == []
        assert dairy["source"] == "api"

    def test_bulk_toggle_requires_ids(self, client):
        response = client.post("/api/admin/products/bulk-toggle", json={"product_ids": [], "is_active": True})
        assert response.status_code == 422


class TestAdminCategories:

    def test_create_category(self, client, fake_redis):
        client.get("/api/home")

        response = client.post("/api/admin/categories", json={"name_en": "Spices"})

        assert response.status_code == 201
        assert response.json()["category"]["slug"] == "spices"
        assert "categories:all" not in fake_redis.store
        assert client.get("/api/category/spices").json()["products"] == []

    def test_rename_category(self, client, fake_redis):
        client.get("/api/category/dairy")

        response = client.patch("/api/admin/categories/cat-dairy", json={"slug": "milk-and-cheese"})

        assert response.status_code == 200
        assert fake_redis.keys_matching("category:slug:dairy:*") == []
        assert client.get("/api/category/dairy").status_code == 404
        assert client.get("/api/category/milk-and-cheese").json()["pagination"]["total"] == 3

    def test_delete_category(self, client, fake_redis):
        client.get("/api/category/bakery")

        response = client.delete("/api/admin/categories/cat-bakery")

        assert response.status_code == 200
        assert response.json()["invalidation"]["event"] == "category_deleted"
        assert fake_redis.keys_matching("category:slug:bakery:*") == []
        assert client.get("/api/category/bakery").status_code == 404

    def test_update_unknown_category(self, client):
        assert client.patch("/api/admin/categories/cat-nope", json={"name_en": "X"}).status_code == 404


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

class TestCacheRoutes:

    def test_health(self, client):
        assert client.get("/api/cache/health").json()["status"] == "healthy"

    def test_health_degraded(self, client, fake_redis):
        fake_redis.fail = True
        data = client.get("/api/cache/health").json()
        assert data["status"] == "degraded"
        assert data["error"]

    def test_stats(self, client):
        client.get("/api/product/fresh-milk")
        client.get("/api/product/fresh-milk")

        stats = client.get("/api/cache/stats").json()
        assert stats["hits"] >= 1
        assert stats["misses"] >= 1
        assert stats["circuit_breaker_open"] is False

    def test_invalidate_product(self, client, fake_redis):
        client.get("/api/product/fresh-milk")

        response = client.post("/api/cache/invalidate/product/p-milk")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert "product:slug:fresh-milk" not in fake_redis.store

    def test_invalidate_unknown_product(self, client):
        assert client.post("/api/cache/invalidate/product/p-nope").status_code == 404

    def test_invalidate_category(self, client, fake_redis):
        client.get("/api/category/dairy")

        response = client.post("/api/cache/invalidate/category/cat-dairy")

        assert response.json()["success"] is True
        assert fake_redis.keys_matching("category:slug:dairy:*") == []

    def test_invalidate_home(self, client, fake_redis):
        client.get("/api/home")
        client.get("/api/home", params={"search": "milk"})

        response = client.post("/api/cache/invalidate/home")

        assert response.json()["success"] is True
        assert fake_redis.keys_matching("home:*") == []
        assert "bestSellers:ids" not in fake_redis.store

    def test_invalidate_home_reports_outage(self, client, fake_redis):
        fake_redis.fail = True

        data = client.post("/api/cache/invalidate/home").json()

        assert data["success"] is False
        assert data["errors"] == ["cache store unavailable"]
