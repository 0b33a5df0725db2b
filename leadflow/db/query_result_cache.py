from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from leadflow.metrics import increment_cache_hit, increment_cache_miss
from leadflow.models.errors import CacheMissError, DatastoreUnavailableError

logger = logging.getLogger(__name__)


class CachePolicy(str, Enum):
    IGNORE_CACHE = "ignoreCache"
    CACHE_ONLY = "cacheOnly"
    NETWORK_ONLY = "networkOnly"
    CACHE_ELSE_NETWORK = "cacheElseNetwork"
    NETWORK_ELSE_CACHE = "networkElseCache"
    CACHE_THEN_NETWORK = "cacheThenNetwork"


@dataclass
class _CachedResult:
    value: Any
    stored_at: float
    class_name: str


class QueryResultCache:
    """Client-side cache of datastore query results, honouring a per-call ``CachePolicy``.

    - ``ignoreCache`` never reads or writes the cache.
    - ``networkOnly`` always queries the datastore and stores the result.
    - ``cacheOnly`` serves a fresh cached result or raises ``CacheMissError``.
    - ``cacheElseNetwork`` serves a fresh cached result, else queries and stores.
    - ``networkElseCache`` queries first; if the datastore is unavailable it
      serves a cached result of any age.
    - ``cacheThenNetwork`` serves a fresh cached result immediately and refreshes
      it in the background; with nothing cached it queries like ``networkOnly``.
    """

    def __init__(self, max_entries: int = 1000, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _CachedResult] = OrderedDict()
        self._refreshes: dict[str, asyncio.Task[None]] = {}

    def _lookup(self, key: str, max_age: float | None) -> _CachedResult | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if max_age is not None and self._clock() - entry.stored_at > max_age:
            return None
        self._entries.move_to_end(key)
        return entry

    def _store(self, key: str, class_name: str, value: Any) -> None:
        self._entries[key] = _CachedResult(value=copy.deepcopy(value), stored_at=self._clock(), class_name=class_name)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def execute(
        self,
        key: str,
        class_name: str,
        fetch: Callable[[], Awaitable[Any]],
        policy: CachePolicy | str = CachePolicy.CACHE_ELSE_NETWORK,
        max_age: float | None = 300,
    ) -> Any:
        policy = CachePolicy(policy)

        if policy == CachePolicy.IGNORE_CACHE:
            return await fetch()

        if policy == CachePolicy.NETWORK_ONLY:
            value = await fetch()
            self._store(key, class_name, value)
            return value

        if policy == CachePolicy.NETWORK_ELSE_CACHE:
            try:
                value = await fetch()
            except DatastoreUnavailableError:
                stale = self._lookup(key, None)
                if stale is None:
                    raise
                logger.warning("datastore unavailable, serving cached result for %s", class_name)
                increment_cache_hit(tier="query", scope=class_name)
                return copy.deepcopy(stale.value)
            self._store(key, class_name, value)
            return value

        cached = self._lookup(key, max_age)
        if cached is not None:
            increment_cache_hit(tier="query", scope=class_name)
            if policy == CachePolicy.CACHE_THEN_NETWORK:
                self._schedule_refresh(key, class_name, fetch)
            return copy.deepcopy(cached.value)

        increment_cache_miss(tier="query", scope=class_name)
        if policy == CachePolicy.CACHE_ONLY:
            raise CacheMissError(f"No cached results for {class_name} query")

        value = await fetch()
        self._store(key, class_name, value)
        return value

    def _schedule_refresh(self, key: str, class_name: str, fetch: Callable[[], Awaitable[Any]]) -> None:
        if key in self._refreshes:
            return

        async def _refresh() -> None:
            try:
                self._store(key, class_name, await fetch())
            except Exception as exc:
                logger.warning("background refresh of %s query failed: %s", class_name, exc)
            finally:
                self._refreshes.pop(key, None)

        self._refreshes[key] = asyncio.create_task(_refresh())

    def invalidate(self, class_name: str | None = None) -> int:
        if class_name is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        doomed = [key for key, entry in self._entries.items() if entry.class_name == class_name]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def wait_for_refreshes(self) -> None:
        if self._refreshes:
            await asyncio.gather(*list(self._refreshes.values()), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._refreshes.values()):
            task.cancel()
        await self.wait_for_refreshes()
        self._refreshes.clear()

    def __len__(self) -> int:
        return len(self._entries)
