from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from leadflow.models.errors import DatastoreUnavailableError, InvalidRequestError, NotFoundError

from .base import Datastore
from .encoding import decode_record, encode_record
from .query import Query
from .query_result_cache import CachePolicy, QueryResultCache

logger = logging.getLogger(__name__)

BATCH_SIZE = 50
OBJECT_NOT_FOUND = 101


class ParseRestClient(Datastore):
    """Parse Server REST API client (Back4App by default)."""

    name = "parse"

    def __init__(
        self,
        server_url: str,
        application_id: str,
        *,
        rest_api_key: str | None = None,
        master_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        query_cache: QueryResultCache | None = None,
        timeout: float = 15.0,
    ) -> None:
        if not (rest_api_key or master_key):
            raise ValueError("a REST API key or a master key is required")
        self.server_url = server_url.rstrip("/")
        self._mount_path = urlparse(self.server_url).path.rstrip("/")
        self.application_id = application_id
        self.rest_api_key = rest_api_key
        self.master_key = master_key
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.query_cache = query_cache if query_cache is not None else QueryResultCache()

    def _headers(self) -> dict[str, str]:
        headers = {"X-Parse-Application-Id": self.application_id}
        if self.master_key:
            headers["X-Parse-Master-Key"] = self.master_key
        else:
            headers["X-Parse-REST-API-Key"] = self.rest_api_key or ""
        return headers

    def _class_url(self, class_name: str) -> str:
        return f"{self.server_url}/classes/{class_name}"

    def _batch_path(self, class_name: str, object_id: str | None = None) -> str:
        path = f"{self._mount_path}/classes/{class_name}"
        return f"{path}/{object_id}" if object_id else path

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self.http_client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise self.map_error(exc) from exc

        if response.status_code >= 400:
            raise self._error_from_response(response)
        return response.json() if response.content else {}

    def _error_from_response(self, response: httpx.Response) -> Exception:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        message = payload.get("error") if isinstance(payload, dict) else None
        code = payload.get("code") if isinstance(payload, dict) else None
        if response.status_code == 404 or code == OBJECT_NOT_FOUND:
            return NotFoundError(message=message or "Object not found")
        if response.status_code >= 500 or response.status_code == 429:
            return DatastoreUnavailableError(message=f"Datastore error {response.status_code}: {message or 'unknown'}")
        return InvalidRequestError(message=f"Datastore rejected request: {message or response.status_code}")

    def map_error(self, error: Exception) -> Exception:
        if isinstance(error, httpx.TimeoutException):
            return DatastoreUnavailableError(message="Datastore request timed out")
        return DatastoreUnavailableError(message=f"Datastore unreachable: {error}")

    async def _cached(
        self,
        key: str,
        class_name: str,
        fetch,
        cache_policy: CachePolicy | str | None,
        max_cache_age: float | None,
    ) -> Any:
        if cache_policy is None:
            return await fetch()
        return await self.query_cache.execute(key, class_name, fetch, cache_policy, max_cache_age)

    async def _find_remote(self, query: Query) -> list[dict[str, Any]]:
        payload = await self._request("GET", self._class_url(query.class_name), params=query.to_params())
        return [decode_record(item) for item in payload.get("results", [])]

    async def find(
        self,
        query: Query,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> list[dict[str, Any]]:
        return await self._cached(
            query.cache_key("find"),
            query.class_name,
            lambda: self._find_remote(query),
            cache_policy,
            max_cache_age,
        )

    async def _count_remote(self, query: Query) -> int:
        payload = await self._request("GET", self._class_url(query.class_name), params=query.to_params(count=True))
        return int(payload.get("count", 0))

    async def count(
        self,
        query: Query,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> int:
        return await self._cached(
            query.cache_key("count"),
            query.class_name,
            lambda: self._count_remote(query),
            cache_policy,
            max_cache_age,
        )

    async def _get_remote(self, class_name: str, object_id: str) -> dict[str, Any]:
        payload = await self._request("GET", f"{self._class_url(class_name)}/{object_id}")
        return decode_record(payload)

    async def get(
        self,
        class_name: str,
        object_id: str,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> dict[str, Any]:
        return await self._cached(
            f"get:{class_name}:{object_id}",
            class_name,
            lambda: self._get_remote(class_name, object_id),
            cache_policy,
            max_cache_age,
        )

    async def save(self, class_name: str, record: dict[str, Any]) -> dict[str, Any]:
        body = encode_record(record)
        object_id = record.get("objectId")
        if object_id:
            payload = await self._request("PUT", f"{self._class_url(class_name)}/{object_id}", json=body)
        else:
            payload = await self._request("POST", self._class_url(class_name), json=body)
        self.invalidate_query_cache(class_name)
        return decode_record({**record, **payload})

    async def _batch(self, requests: list[dict[str, Any]]) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for start in range(0, len(requests), BATCH_SIZE):
            chunk = requests[start : start + BATCH_SIZE]
            payload = await self._request("POST", f"{self.server_url}/batch", json={"requests": chunk})
            for item in payload:
                if "error" in item:
                    error = item["error"]
                    raise DatastoreUnavailableError(
                        message=f"Batch operation failed: {error.get('error', 'unknown')} (code {error.get('code')})"
                    )
                results.append(item.get("success") or {})
        return results

    async def save_all(self, class_name: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not records:
            return []
        requests = []
        for record in records:
            object_id = record.get("objectId")
            requests.append(
                {
                    "method": "PUT" if object_id else "POST",
                    "path": self._batch_path(class_name, object_id),
                    "body": encode_record(record),
                }
            )
        try:
            results = await self._batch(requests)
        finally:
            self.invalidate_query_cache(class_name)
        return [decode_record({**record, **result}) for record, result in zip(records, results)]

    async def destroy(self, class_name: str, object_id: str) -> bool:
        try:
            await self._request("DELETE", f"{self._class_url(class_name)}/{object_id}")
        except NotFoundError:
            return False
        finally:
            self.invalidate_query_cache(class_name)
        return True

    async def destroy_all(self, class_name: str, object_ids: list[str]) -> int:
        if not object_ids:
            return 0
        requests = [{"method": "DELETE", "path": self._batch_path(class_name, object_id)} for object_id in object_ids]
        try:
            results = await self._batch(requests)
        finally:
            self.invalidate_query_cache(class_name)
        return len(results)

    def invalidate_query_cache(self, class_name: str | None = None) -> int:
        return self.query_cache.invalidate(class_name)

    async def ping(self) -> bool:
        try:
            await self._request("GET", f"{self.server_url}/health")
        except Exception as exc:
            logger.warning("datastore health check failed: %s", exc)
            return False
        return True

    async def close(self) -> None:
        await self.query_cache.close()
        if self._owns_client:
            await self.http_client.aclose()
