from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, TypeVar

from leadflow.config import Settings
from leadflow.metrics import increment_cache_error

from .backends import CacheBackend, InMemoryBackend, NoopBackend, RedisBackend, UpstashRestBackend, create_redis_client

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheClient:
    """Best-effort access to the shared key-value cache.

    Every operation is bounded by ``timeout`` and fails open: a backend error or
    a stalled call is logged and turned into the value a cold cache would give
    (``None``, ``False``, ``0``). Callers never see cache exceptions.
    """

    def __init__(self, backend: CacheBackend, timeout: float = 3.0) -> None:
        self.backend = backend
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.backend.enabled

    @property
    def backend_name(self) -> str:
        return self.backend.name

    async def _call(self, operation: str, call: Awaitable[T], fallback: T) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("cache %s timed out after %ss on %s backend", operation, self.timeout, self.backend.name)
        except Exception as exc:
            logger.warning("cache %s failed on %s backend: %s", operation, self.backend.name, exc)
        increment_cache_error(backend=self.backend.name, operation=operation)
        return fallback

    async def get(self, key: str) -> str | None:
        return await self._call("get", self.backend.get(key), None)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        return bool(await self._call("set", self.backend.set(key, value, ttl), False))

    async def delete(self, key: str) -> bool:
        return await self._call("delete", self.backend.delete(key), 0) > 0

    async def delete_many(self, keys: list[str]) -> int | None:
        """Delete ``keys`` in one round trip; ``None`` means the backend call failed."""
        if not keys:
            return 0
        return await self._call("delete", self.backend.delete(*keys), None)

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", self.backend.exists(key), False))

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        values = await self._call("mget", self.backend.mget(keys), None)
        if values is None:
            return [None for _ in keys]
        return values

    async def mset(self, mapping: dict[str, str]) -> bool:
        return bool(await self._call("mset", self.backend.mset(mapping), False))

    async def incr(self, key: str) -> int | None:
        return await self._call("incr", self.backend.incr(key), None)

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._call("expire", self.backend.expire(key, ttl), False))

    async def ping(self) -> bool:
        if not self.enabled:
            return False
        return bool(await self._call("ping", self.backend.ping(), False))

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as exc:
            logger.warning("cache backend close failed: %s", exc)

    def describe(self) -> dict[str, Any]:
        return {"backend": self.backend.name, "enabled": self.enabled, "timeout": self.timeout}


def build_cache_backend(settings: Settings, *, timeout: float = 3.0, memory_max_size: int = 10_000) -> CacheBackend:
    if settings.upstash_redis_rest_url and settings.upstash_redis_rest_token:
        logger.info("cache backend: upstash rest")
        return UpstashRestBackend(settings.upstash_redis_rest_url, settings.upstash_redis_rest_token, timeout=timeout)

    if settings.redis_url:
        logger.info("cache backend: redis")
        return RedisBackend(create_redis_client(settings.redis_url, socket_timeout=timeout))

    if settings.use_memory_cache:
        logger.info("cache backend: in-process memory")
        return InMemoryBackend(max_size=memory_max_size)

    logger.warning(
        "no cache backend configured, caching disabled; "
        "set REDIS_URL or UPSTASH_REDIS_REST_URL + UPSTASH_REDIS_REST_TOKEN to enable it"
    )
    return NoopBackend()
