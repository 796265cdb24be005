"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules:
- FakeRedis: in-memory stand-in for the redis.asyncio client
- A seeded SQLite catalog
- Recording event sink and page revalidator
"""

import re
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.cache.config import CacheConfig
from src.cache.events import EventSink
from src.cache.invalidation import CacheInvalidator
from src.cache.redis_cache import RedisCache
from src.database.models import Category, Vendor, Product, Order, OrderItem
from src.database.session import build_session_factory, create_db_engine, init_db


# ============================================================================
# Redis Double
# ============================================================================

def redis_glob_match(key: str, pattern: str) -> bool:
    """Match the way Redis MATCH does: `*`, `?`, `[...]` and backslash escapes."""
    regex, i = "", 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            i += 1
            regex += re.escape(pattern[i])
        elif char == "*":
            regex += ".*"
        elif char == "?":
            regex += "."
        elif char == "[":
            end = pattern.find("]", i + 1)
            while end != -1 and pattern[end - 1] == "\\":
                end = pattern.find("]", end + 1)
            if end == -1:
                regex += re.escape(char)
            else:
                body = pattern[i + 1:end]
                negate = body.startswith("^")
                if negate:
                    body = body[1:]
                members, j = "", 0
                while j < len(body):
                    if body[j] == "\\" and j + 1 < len(body):
                        j += 1
                    members += "-" if body[j] == "-" else re.escape(body[j])
                    j += 1
                regex += "[" + ("^" if negate else "") + members + "]"
                i = end
        else:
            regex += re.escape(char)
        i += 1
    return re.fullmatch(regex, key, re.DOTALL) is not None


class FakeRedis:
    """
    Async in-memory Redis covering the commands the cache facade uses.

    Set `fail = True` to simulate an unreachable server; `advance()` moves
    the expiry clock forward without sleeping.
    """

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.expires: Dict[str, float] = {}
        self.published: List[tuple] = []
        self.fail = False
        self.closed = False
        self._offset = 0.0

    def _now(self) -> float:
        return time.monotonic() + self._offset

    def advance(self, seconds: float):
        self._offset += seconds

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _purge(self, key: str):
        deadline = self.expires.get(key)
        if deadline is not None and deadline <= self._now():
            self.store.pop(key, None)
            self.expires.pop(key, None)

    async def ping(self):
        self._check()
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        self._purge(key)
        return self.store.get(key)

    async def set(self, key: str, value: str):
        self._check()
        self.store[key] = value
        self.expires.pop(key, None)
        return True

    async def setex(self, key: str, seconds: int, value: str):
        self._check()
        self.store[key] = value
        self.expires[key] = self._now() + seconds
        return True

    async def unlink(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self.store:
                del self.store[key]
                self.expires.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*", count: int = 10):
        self._check()
        for key in list(self.store):
            self._purge(key)
            if key in self.store and redis_glob_match(key, match):
                yield key

    async def exists(self, *keys: str) -> int:
        self._check()
        for key in keys:
            self._purge(key)
        return sum(1 for key in keys if key in self.store)

    async def ttl(self, key: str) -> int:
        self._check()
        self._purge(key)
        if key not in self.store:
            return -2
        if key not in self.expires:
            return -1
        return int(self.expires[key] - self._now())

    async def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        return 0

    async def aclose(self):
        self.closed = True

    def keys_matching(self, pattern: str) -> List[str]:
        return sorted(k for k in self.store if redis_glob_match(k, pattern))


class RecordingEventSink(EventSink):
    """Keeps every published event in memory."""

    def __init__(self):
        self.events: List[tuple] = []

    async def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        self.events.append((channel, payload))
        return True


class RecordingRevalidator:
    """Stands in for PageRevalidator and records each batch of paths."""

    def __init__(self):
        self.batches: List[List[str]] = []

    @property
    def paths(self) -> List[str]:
        return [p for batch in self.batches for p in batch]

    async def revalidate_paths(self, paths: List[str]) -> Dict[str, bool]:
        batch = list(dict.fromkeys(paths))
        self.batches.append(batch)
        return {path: True for path in batch}


# ============================================================================
# Cache Fixtures
# ============================================================================

@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(
        enabled=True,
        redis_url="redis://localhost:6379/15",
        circuit_breaker_enabled=True,
        circuit_breaker_threshold=5,
        circuit_breaker_timeout=30,
        fetch_timeout=2.0,
        app_base_url="http://shop.test",
        revalidate_secret="s3cret",
        warming_enabled=False,
        http_timeout=2.0,
        cdn_purge_enabled=False,
        cloudflare_zone_id=None,
        cloudflare_api_token=None,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def glob_match():
    return redis_glob_match


@pytest.fixture
async def cache(cache_config, fake_redis):
    cache = RedisCache(cache_config, client=fake_redis)
    await cache.initialize()
    yield cache
    await cache.close()


# ============================================================================
# Database Fixtures
# ============================================================================

def _seed(db):
    base = datetime(2024, 1, 1, 8, 0, 0)

    dairy = Category(id="cat-dairy", name_en="Dairy", name_ar="ألبان", slug="dairy", color="#ffffff")
    bakery = Category(id="cat-bakery", name_en="Bakery", name_ar="مخبوزات", slug="bakery")
    produce = Category(id="cat-produce", name_en="Produce", name_ar="خضار", slug="produce")
    farm = Vendor(id="vendor-farm", name="Green Farm", store_name="Green Farm Store")
    db.add_all([dairy, bakery, produce, farm])

    def product(pid, slug, name, category, minutes, **fields):
        defaults = dict(price=10.0, sale_price=0.0, is_on_sale=False, stock=20, is_active=True)
        defaults.update(fields)
        return Product(
            id=pid,
            slug=slug,
            name_en=name,
            name_ar=name,
            description_en=f"{name} from the farm",
            category_id=category.id,
            vendor_id=farm.id,
            created_at=base + timedelta(minutes=minutes),
            tags=["fresh", "local", "organic", "farm", "daily", "extra"],
            images=["a.jpg", "b.jpg", "c.jpg", "d.jpg"],
            **defaults,
        )

    db.add_all([
        product("p-milk", "fresh-milk", "Fresh Milk", dairy, 1,
                price=10.0, sale_price=8.0, is_on_sale=True, is_featured=True),
        product("p-yogurt", "greek-yogurt", "Greek Yogurt", dairy, 2),
        product("p-cheddar", "cheddar", "Cheddar", dairy, 3,
                price=30.0, sale_price=25.0, is_on_sale=True),
        product("p-sourdough", "sourdough", "Sourdough", bakery, 4, is_featured=True),
        product("p-croissant", "croissant", "Croissant", bakery, 5),
        product("p-apples", "apples", "Apples", produce, 6),
        product("p-pears", "pears", "Pears", produce, 7, stock=0),
        product("p-hidden", "hidden-honey", "Hidden Honey", produce, 8, is_active=False),
    ])
    db.flush()

    order = Order(id="order-1", status="delivered", total=100.0)
    order.items = [
        OrderItem(product_id="p-sourdough", quantity=7, price=10.0),
        OrderItem(product_id="p-milk", quantity=3, price=8.0),
    ]
    second = Order(id="order-2", status="delivered", total=20.0)
    second.items = [OrderItem(product_id="p-milk", quantity=2, price=8.0)]
    db.add_all([order, second])


@pytest.fixture
def db_engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    factory = build_session_factory(db_engine)
    db = factory()
    try:
        _seed(db)
        db.commit()
    finally:
        db.close()
    return factory


# ============================================================================
# Invalidation Fixtures
# ============================================================================

@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def revalidator() -> RecordingRevalidator:
    return RecordingRevalidator()


@pytest.fixture
def invalidator(cache, session_factory, event_sink, revalidator) -> CacheInvalidator:
    return CacheInvalidator(
        cache,
        session_factory,
        event_sink=event_sink,
        revalidator=revalidator,
    )
