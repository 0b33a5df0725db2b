from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from leadflow.db.base import Datastore
from leadflow.db.query import Query
from leadflow.db.query_result_cache import CachePolicy

logger = logging.getLogger(__name__)

DEFAULT_CACHE_POLICY = CachePolicy.CACHE_ELSE_NETWORK
DEFAULT_MAX_CACHE_AGE = 300


async def find_with_cache(
    store: Datastore,
    query: Query,
    cache_policy: CachePolicy | str = DEFAULT_CACHE_POLICY,
    max_cache_age: float = DEFAULT_MAX_CACHE_AGE,
) -> list[dict[str, Any]]:
    """Run ``query`` through the datastore client's own query cache.

    This holds no state: the policy and max age are forwarded to the client.
    """
    results = await store.find(query, cache_policy=cache_policy, max_cache_age=max_cache_age)
    logger.debug("find on %s with cache policy %s", query.class_name, CachePolicy(cache_policy).value)
    return results


async def count_with_cache(
    store: Datastore,
    query: Query,
    cache_policy: CachePolicy | str = DEFAULT_CACHE_POLICY,
    max_cache_age: float = DEFAULT_MAX_CACHE_AGE,
) -> int:
    return await store.count(query, cache_policy=cache_policy, max_cache_age=max_cache_age)


async def get_with_cache(
    store: Datastore,
    class_name: str,
    object_id: str,
    cache_policy: CachePolicy | str = DEFAULT_CACHE_POLICY,
    max_cache_age: float = DEFAULT_MAX_CACHE_AGE,
) -> dict[str, Any] | None:
    query = Query(class_name).equal_to("objectId", object_id)
    return await store.first(query, cache_policy=cache_policy, max_cache_age=max_cache_age)


@dataclass
class CachedQuery:
    store: Datastore
    query: Query
    cache_policy: CachePolicy | str = DEFAULT_CACHE_POLICY
    max_cache_age: float = DEFAULT_MAX_CACHE_AGE

    async def find(self) -> list[dict[str, Any]]:
        return await find_with_cache(self.store, self.query, self.cache_policy, self.max_cache_age)

    async def count(self) -> int:
        return await count_with_cache(self.store, self.query, self.cache_policy, self.max_cache_age)

    async def get(self, object_id: str) -> dict[str, Any] | None:
        query = self.query.clone().equal_to("objectId", object_id)
        return await self.store.first(query, cache_policy=self.cache_policy, max_cache_age=self.max_cache_age)


def with_cache(
    store: Datastore,
    query: Query,
    cache_policy: CachePolicy | str = DEFAULT_CACHE_POLICY,
    max_cache_age: float = DEFAULT_MAX_CACHE_AGE,
) -> CachedQuery:
    return CachedQuery(store=store, query=query, cache_policy=cache_policy, max_cache_age=max_cache_age)
