from __future__ import annotations

from typing import Any

from leadflow.cache.query_cache import find_with_cache
from leadflow.db import collections
from leadflow.db.base import Datastore
from leadflow.db.query import Query
from leadflow.db.query_result_cache import CachePolicy


class AppConfigService:
    """Key/value application settings stored in the ``Config`` class. Secret entries are never listed."""

    def __init__(self, store: Datastore, *, max_cache_age: float = 300) -> None:
        self.store = store
        self.max_cache_age = max_cache_age

    async def get_all(self) -> dict[str, Any]:
        query = Query(collections.CONFIG).not_equal_to("isSecret", True).ascending("key").limit(1000)
        records = await find_with_cache(self.store, query, CachePolicy.CACHE_ELSE_NETWORK, self.max_cache_age)
        return {record["key"]: record.get("value") for record in records if record.get("key")}

    async def payload(self) -> dict[str, Any]:
        return {"success": True, "config": await self.get_all()}
