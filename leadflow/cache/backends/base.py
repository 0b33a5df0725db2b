from __future__ import annotations

from abc import ABC, abstractmethod


class CacheBackend(ABC):
    """Raw key-value operations against one cache store.

    Backends raise on failure. Fail-open handling lives in ``CacheClient``.
    """

    name: str = "base"
    enabled: bool = True

    @abstractmethod
    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def exists(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def mget(self, keys: list[str]) -> list[str | None]:
        raise NotImplementedError

    @abstractmethod
    async def mset(self, mapping: dict[str, str]) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def incr(self, key: str) -> int | None:
        raise NotImplementedError

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
