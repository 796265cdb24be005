"""
Invalidation Events

Best-effort broadcast of catalog mutations. Events carry no persistence
and no delivery guarantee; listeners (other instances, warmers) treat
them as hints, never as a source of truth.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.cache.redis_cache import RedisCache


logger = logging.getLogger(__name__)


PRODUCT_INVALIDATE_CHANNEL = "product:invalidate"
PRODUCT_BULK_INVALIDATE_CHANNEL = "product:bulk_invalidate"
CATEGORY_INVALIDATE_CHANNEL = "category:invalidate"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class InvalidationEvent:
    """One mutation broadcast on an invalidation channel."""
    channel: str
    action: str
    resource_id: Optional[str] = None
    resource_slug: Optional[str] = None
    related_id: Optional[str] = None
    resource_ids: List[str] = field(default_factory=list)
    timestamp: str = field(default_factory=_utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "resourceId": self.resource_id,
            "resourceSlug": self.resource_slug,
            "relatedId": self.related_id,
            "action": self.action,
            "timestamp": self.timestamp,
        }
        if self.channel == PRODUCT_BULK_INVALIDATE_CHANNEL:
            payload["resourceIds"] = self.resource_ids
            payload["count"] = len(self.resource_ids)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class EventSink(ABC):
    """Destination for invalidation events."""

    @abstractmethod
    async def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        """Publish a payload. Returns False if the event could not be sent."""

    async def emit(self, event: InvalidationEvent) -> bool:
        return await self.publish(event.channel, event.to_dict())


class RedisEventSink(EventSink):
    """Publishes events over Redis pub/sub through the cache facade."""

    def __init__(self, cache: RedisCache):
        self._cache = cache

    async def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        sent = await self._cache.publish(channel, json.dumps(payload))
        if sent:
            logger.info(f"Published invalidation event on {channel}: {payload.get('action')}")
        return sent


class NullEventSink(EventSink):
    """Discards every event."""

    async def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        logger.debug(f"Dropping event for {channel}")
        return True
