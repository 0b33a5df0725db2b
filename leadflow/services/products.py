from __future__ import annotations

import logging
from typing import Any

from leadflow.cache.memo import ProductCatalogCache
from leadflow.cache.query_cache import DEFAULT_MAX_CACHE_AGE, find_with_cache
from leadflow.db import collections
from leadflow.db.base import Datastore
from leadflow.db.query import Query
from leadflow.db.query_result_cache import CachePolicy
from leadflow.pagination import apply_cursor, format_paginated_response, get_next_cursor

logger = logging.getLogger(__name__)

SORT_FIELD = "createdAt"
SORT_ORDER = "desc"

PRODUCT_FIELDS = ("name", "description", "price", "category", "tags", "photos", "status")


def format_product(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record.get("objectId"),
        "name": record.get("name"),
        "description": record.get("description"),
        "price": record.get("price"),
        "category": record.get("category"),
        "tags": record.get("tags") or [],
        "photos": record.get("photos") or [],
        "status": record.get("status"),
        "createdAt": record.get("createdAt"),
        "updatedAt": record.get("updatedAt"),
    }


def split_tags(tags: str | list[str] | None) -> list[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [tag.strip() for tag in tags if tag.strip()]


class ProductCatalogService:
    """Lists and mutates products for the products routes and the cache-warming job.

    Unfiltered first pages are served from the in-process catalog cache when it
    holds a page of the same size.
    """

    def __init__(
        self,
        store: Datastore,
        catalog_cache: ProductCatalogCache,
        *,
        cache_policy: CachePolicy = CachePolicy.CACHE_ELSE_NETWORK,
        max_cache_age: float = DEFAULT_MAX_CACHE_AGE,
    ) -> None:
        self.store = store
        self.catalog_cache = catalog_cache
        self.cache_policy = cache_policy
        self.max_cache_age = max_cache_age

    async def list_products(
        self,
        *,
        limit: int,
        cursor: str | None = None,
        category: str | None = None,
        status: str | None = None,
        tags: str | list[str] | None = None,
        search: str | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        tag_list = split_tags(tags)
        first_catalog_page = not (category or status or tag_list or search or cursor)

        if first_catalog_page:
            cached = self.catalog_cache.get(user_id)
            if cached is not None and cached["pagination"]["limit"] == limit:
                return cached

        query = Query(collections.PRODUCT)
        if category:
            query.equal_to("category", category)
        if status:
            query.equal_to("status", status)
        if tag_list:
            query.contains_all("tags", tag_list)
        if search:
            query.matches("name", search, "i")
        apply_cursor(query, cursor, SORT_FIELD, SORT_ORDER)
        query.limit(limit + 1)

        records = await find_with_cache(self.store, query, self.cache_policy, self.max_cache_age)
        has_more = len(records) > limit
        page = records[:limit]
        next_cursor = get_next_cursor(page, SORT_FIELD, SORT_ORDER) if has_more else None

        response = format_paginated_response([format_product(record) for record in page], next_cursor, limit)
        if first_catalog_page:
            self.catalog_cache.set(response, user_id)
        return response

    async def get_product(self, product_id: str) -> dict[str, Any]:
        record = await self.store.get(
            collections.PRODUCT,
            product_id,
            cache_policy=self.cache_policy,
            max_cache_age=self.max_cache_age,
        )
        return format_product(record)

    async def create_product(self, fields: dict[str, Any]) -> dict[str, Any]:
        record = {field: fields.get(field) for field in PRODUCT_FIELDS}
        record["tags"] = record["tags"] or []
        record["photos"] = record["photos"] or []
        record["status"] = record["status"] or "active"
        saved = await self.store.save(collections.PRODUCT, record)
        self.invalidate_local()
        return format_product(saved)

    async def update_product(self, product_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        current = await self.store.get(collections.PRODUCT, product_id)
        changes = {field: value for field, value in fields.items() if field in PRODUCT_FIELDS}
        saved = await self.store.save(collections.PRODUCT, {**current, **changes, "objectId": product_id})
        self.invalidate_local()
        return format_product(saved)

    async def delete_product(self, product_id: str) -> bool:
        deleted = await self.store.destroy(collections.PRODUCT, product_id)
        self.invalidate_local()
        return deleted

    def invalidate_local(self) -> None:
        self.catalog_cache.invalidate()
        self.store.invalidate_query_cache(collections.PRODUCT)
