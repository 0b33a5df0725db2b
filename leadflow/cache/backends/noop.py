from __future__ import annotations

from .base import CacheBackend


class NoopBackend(CacheBackend):
    name = "noop"
    enabled = False

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        return False

    async def delete(self, *keys: str) -> int:
        return 0

    async def exists(self, key: str) -> bool:
        return False

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [None for _ in keys]

    async def mset(self, mapping: dict[str, str]) -> bool:
        return False

    async def incr(self, key: str) -> int | None:
        return None

    async def expire(self, key: str, ttl: int) -> bool:
        return False

    async def ping(self) -> bool:
        return False
