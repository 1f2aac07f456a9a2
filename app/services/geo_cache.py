from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import redis.asyncio as redis


log = logging.getLogger(__name__)


class KeyValueCache(Protocol):
    async def get_json(self, key: str) -> Any | None: ...
    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None: ...


def geocode_cache_key(provider: str, lat: float, lng: float) -> str:
    return f"geocode:{provider}:{lat:.6f}:{lng:.6f}"


class GeoCache:
    """
    Best-effort redis cache. An outage means "always recompute": reads turn
    into misses and writes into no-ops, both logged.
    """

    def __init__(self, redis_url: str | None = None, *, client: redis.Redis | None = None):
        if client is None and redis_url is None:
            raise ValueError("redis_url or client is required")
        self.r = client or redis.from_url(redis_url, decode_responses=True, socket_timeout=1.0)

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self.r.get(key)
        except Exception as e:
            log.warning("cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("cache entry %s is not JSON, ignoring", key)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.r.set(key, json.dumps(value, default=str), ex=ttl_seconds)
        except Exception as e:
            log.warning("cache write failed for %s: %s", key, e)

    async def aclose(self) -> None:
        await self.r.aclose()
