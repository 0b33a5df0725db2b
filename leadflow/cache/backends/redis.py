from __future__ import annotations

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .base import CacheBackend

MAX_BACKOFF_SECONDS = 2.0
MAX_ATTEMPTS = 3


def create_redis_client(url: str, *, socket_timeout: float = 3.0) -> Redis:
    # Attempts include the first try; backoff grows from 50ms and is capped at 2s.
    retry = Retry(ExponentialBackoff(cap=MAX_BACKOFF_SECONDS, base=0.05), retries=MAX_ATTEMPTS - 1)
    return Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=retry,
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
        health_check_interval=30,
    )


class RedisBackend(CacheBackend):
    name = "redis"

    def __init__(self, redis_client: Redis) -> None:
        self.redis = redis_client

    async def get(self, key: str) -> str | None:
        raw = await self.redis.get(key)
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        if ttl:
            result = await self.redis.set(key, value, ex=int(ttl))
        else:
            result = await self.redis.set(key, value)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.redis.delete(*keys) or 0)

    async def exists(self, key: str) -> bool:
        return int(await self.redis.exists(key) or 0) == 1

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        values = await self.redis.mget(keys)
        return [v.decode("utf-8") if isinstance(v, bytes) else v for v in values]

    async def mset(self, mapping: dict[str, str]) -> bool:
        if not mapping:
            return True
        return bool(await self.redis.mset(mapping))

    async def incr(self, key: str) -> int:
        return int(await self.redis.incr(key))

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self.redis.expire(key, int(ttl)))

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()
