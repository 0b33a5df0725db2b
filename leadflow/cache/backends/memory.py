from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from typing import Callable

from .base import CacheBackend


class InMemoryBackend(CacheBackend):
    name = "memory"

    def __init__(self, max_size: int = 10_000, clock: Callable[[], float] = time.time) -> None:
        self.max_size = max_size
        self._clock = clock
        self._store: OrderedDict[str, tuple[str, float | None]] = OrderedDict()
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> str | None:
        item = self._store.get(key)
        if item is None:
            return None

        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            self._store.pop(key, None)
            return None

        self._store.move_to_end(key)
        return value

    def _put(self, key: str, value: str, ttl: int | None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        if key in self._store:
            self._store.move_to_end(key)
        self._store[key] = (value, expires_at)
        while len(self._store) > self.max_size:
            self._store.popitem(last=False)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._live(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        async with self._lock:
            self._put(key, value, ttl)
            return True

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if self._live(key) is not None:
                    removed += 1
                self._store.pop(key, None)
            return removed

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def mget(self, keys: list[str]) -> list[str | None]:
        async with self._lock:
            return [self._live(key) for key in keys]

    async def mset(self, mapping: dict[str, str]) -> bool:
        async with self._lock:
            for key, value in mapping.items():
                self._put(key, value, None)
            return True

    async def incr(self, key: str) -> int:
        async with self._lock:
            current = self._live(key)
            expires_at = self._store[key][1] if current is not None else None
            value = int(current or 0) + 1
            self._store[key] = (str(value), expires_at)
            return value

    async def expire(self, key: str, ttl: int) -> bool:
        async with self._lock:
            current = self._live(key)
            if current is None:
                return False
            self._store[key] = (current, self._clock() + ttl)
            return True

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()
