from __future__ import annotations

import asyncio
import copy
import secrets
import string
from collections import Counter
from datetime import datetime
from typing import Any, Callable

from leadflow.models.errors import DatastoreUnavailableError, NotFoundError

from .base import Datastore
from .encoding import truncate_to_millis, utcnow
from .query import Query, sort_records
from .query_result_cache import CachePolicy

_ID_ALPHABET = string.ascii_letters + string.digits


def _new_object_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(10))


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        return truncate_to_millis(value)
    if isinstance(value, dict):
        return {key: _normalize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    return value


class InMemoryDatastore(Datastore):
    """Process-local datastore with the same query semantics as the Parse client.

    Dates are kept at millisecond precision like Parse. Cache policies are
    accepted and ignored. ``fail_saves_for`` makes writes to the named classes
    raise, to exercise partial-failure paths.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._classes: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self.calls: Counter[str] = Counter()
        self.fail_saves_for: set[str] = set()

    @property
    def read_count(self) -> int:
        return self.calls["find"] + self.calls["count"] + self.calls["get"]

    def _table(self, class_name: str) -> dict[str, dict[str, Any]]:
        return self._classes.setdefault(class_name, {})

    def _select(self, query: Query) -> list[dict[str, Any]]:
        rows = [row for row in self._table(query.class_name).values() if query.matches_record(row)]
        rows = sort_records(rows, query.order)
        if query.skip_value:
            rows = rows[query.skip_value :]
        if query.limit_value is not None:
            rows = rows[: query.limit_value]
        return [copy.deepcopy(row) for row in rows]

    async def find(
        self,
        query: Query,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> list[dict[str, Any]]:
        self.calls["find"] += 1
        return self._select(query)

    async def count(
        self,
        query: Query,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> int:
        self.calls["count"] += 1
        return sum(1 for row in self._table(query.class_name).values() if query.matches_record(row))

    async def get(
        self,
        class_name: str,
        object_id: str,
        *,
        cache_policy: CachePolicy | str | None = None,
        max_cache_age: float | None = None,
    ) -> dict[str, Any]:
        self.calls["get"] += 1
        row = self._table(class_name).get(object_id)
        if row is None:
            raise NotFoundError(message=f"{class_name} {object_id} not found")
        return copy.deepcopy(row)

    def _write(self, class_name: str, record: dict[str, Any]) -> dict[str, Any]:
        table = self._table(class_name)
        now = truncate_to_millis(self._clock())
        object_id = record.get("objectId")
        if object_id and object_id in table:
            row = table[object_id]
            row.update(_normalize({k: v for k, v in record.items() if k not in ("objectId", "createdAt")}))
            row["updatedAt"] = now
        else:
            row = _normalize(copy.deepcopy(record))
            row["objectId"] = object_id or _new_object_id()
            row["createdAt"] = _normalize(record.get("createdAt") or now)
            row["updatedAt"] = _normalize(record.get("updatedAt") or row["createdAt"])
            table[row["objectId"]] = row
        return copy.deepcopy(row)

    def _check_writable(self, class_name: str) -> None:
        if class_name in self.fail_saves_for:
            raise DatastoreUnavailableError(message=f"writes to {class_name} are failing")

    async def save(self, class_name: str, record: dict[str, Any]) -> dict[str, Any]:
        self.calls["save"] += 1
        self._check_writable(class_name)
        async with self._lock:
            return self._write(class_name, record)

    async def save_all(self, class_name: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self.calls["save_all"] += 1
        self._check_writable(class_name)
        async with self._lock:
            return [self._write(class_name, record) for record in records]

    async def destroy(self, class_name: str, object_id: str) -> bool:
        self.calls["destroy"] += 1
        async with self._lock:
            return self._table(class_name).pop(object_id, None) is not None

    async def destroy_all(self, class_name: str, object_ids: list[str]) -> int:
        self.calls["destroy_all"] += 1
        async with self._lock:
            table = self._table(class_name)
            return sum(1 for object_id in object_ids if table.pop(object_id, None) is not None)

    def seed(self, class_name: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert records synchronously, keeping any ``objectId``/``createdAt`` they carry."""
        return [self._write(class_name, record) for record in records]

    def all(self, class_name: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(row) for row in self._table(class_name).values()]

    def reset_calls(self) -> None:
        self.calls.clear()
