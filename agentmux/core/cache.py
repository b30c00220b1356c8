"""Result cache collaborators used by the dispatcher."""
from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from typing import TYPE_CHECKING, Any, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .errors import CacheUnavailable
from .logging import get_logger

if TYPE_CHECKING:
    from agentmux.config import Settings

logger = get_logger(__name__)

KEY_PREFIX = "agentmux:result:"


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys so structurally equal payloads serialize identically."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def make_cache_key(agent_id: str, task: Any) -> str:
    if hasattr(task, "model_dump"):
        task = task.model_dump(mode="json")
    digest = hashlib.sha256(f"{agent_id}\n{canonical_json(task)}".encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}{digest}"


class ResultCache(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    async def close(self) -> None:
        ...


class InMemoryResultCache:
    """Process-local TTL cache, oldest entry evicted first when full.

    Values are held as canonical JSON, like the Redis backend, so every hit
    decodes a fresh copy.
    """

    def __init__(self, max_entries: int = 1024) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if time.monotonic() >= expires_at:
            self._entries.pop(key, None)
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (time.monotonic() + ttl_seconds, canonical_json(value))
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisResultCache:
    """Redis-backed cache storing JSON values with ``SET ... EX``."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client = aioredis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            raise CacheUnavailable(f"Redis GET failed: {exc}", url=self._url) from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("cache_entry_corrupt", key=key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, canonical_json(value), ex=ttl_seconds)
        except RedisError as exc:
            raise CacheUnavailable(f"Redis SET failed: {exc}", url=self._url) from exc

    async def close(self) -> None:
        await self._client.aclose()


def build_result_cache(settings: "Settings") -> ResultCache:
    if settings.redis_url:
        logger.info("result_cache_configured", backend="redis")
        return RedisResultCache(settings.redis_url)
    logger.info("result_cache_configured", backend="memory")
    return InMemoryResultCache()
