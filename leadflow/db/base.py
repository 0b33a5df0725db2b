from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .query import Query
from .query_result_cache import CachePolicy


class Datastore(ABC):
    """Document store holding Parse-shaped records (``objectId``, ``createdAt``, ``updatedAt``).

    ``cache_policy`` and ``max_cache_age`` select how a read uses the
    datastore client's own query result cache. ``None`` bypasses it.
    """

    name = "datastore"

    @abstractmethod
    async def find(
        self,
        query: Query,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def count(
        self,
        query: Query,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get(
        self,
        class_name: str,
        object_id: str,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def save(self, class_name: str, record: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def save_all(self, class_name: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def destroy(self, class_name: str, object_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def destroy_all(self, class_name: str, object_ids: list[str]) -> int:
        raise NotImplementedError

    async def first(
        self,
        query: Query,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> dict[str, Any] | None:
        results = await self.find(query.clone().limit(1), cache_policy=cache_policy, max_cache_age=max_cache_age)
        return results[0] if results else None

    async def find_all(self, query: Query, page_size: int = 1000) -> list[dict[str, Any]]:
        """Every match for ``query``, fetched in ``page_size`` pages with ``skip``."""
        results: list[dict[str, Any]] = []
        while True:
            page = await self.find(query.clone().skip(len(results)).limit(page_size))
            results.extend(page)
            if len(page) < page_size:
                return results

    def invalidate_query_cache(self, class_name: str | None = None) -> int:
        return 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
