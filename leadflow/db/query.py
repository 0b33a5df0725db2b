from __future__ import annotations

import copy
import json
import re
from datetime import datetime
from typing import Any, Iterable

from .encoding import encode_value


class Query:
    """A Parse-style query on one class, serialised to REST ``where``/``order`` parameters."""

    def __init__(self, class_name: str) -> None:
        self.class_name = class_name
        self._where: dict[str, dict[str, Any]] = {}
        self._or: list[Query] = []
        self._order: list[str] = []
        self._limit: int | None = None
        self._skip: int = 0

    def clone(self) -> Query:
        return copy.deepcopy(self)

    def _add(self, field: str, op: str, value: Any) -> Query:
        conditions = self._where.setdefault(field, {})
        if op == "$eq":
            conditions.clear()
        else:
            conditions.pop("$eq", None)
        conditions[op] = value
        return self

    def equal_to(self, field: str, value: Any) -> Query:
        return self._add(field, "$eq", value)

    def not_equal_to(self, field: str, value: Any) -> Query:
        return self._add(field, "$ne", value)

    def less_than(self, field: str, value: Any) -> Query:
        return self._add(field, "$lt", value)

    def less_than_or_equal_to(self, field: str, value: Any) -> Query:
        return self._add(field, "$lte", value)

    def greater_than(self, field: str, value: Any) -> Query:
        return self._add(field, "$gt", value)

    def greater_than_or_equal_to(self, field: str, value: Any) -> Query:
        return self._add(field, "$gte", value)

    def contained_in(self, field: str, values: Iterable[Any]) -> Query:
        return self._add(field, "$in", list(values))

    def contains_all(self, field: str, values: Iterable[Any]) -> Query:
        return self._add(field, "$all", list(values))

    def matches(self, field: str, pattern: str, modifiers: str = "") -> Query:
        self._add(field, "$regex", pattern)
        if modifiers:
            self._where[field]["$options"] = modifiers
        return self

    def exists(self, field: str) -> Query:
        return self._add(field, "$exists", True)

    def does_not_exist(self, field: str) -> Query:
        return self._add(field, "$exists", False)

    @classmethod
    def or_(cls, *queries: Query) -> Query:
        if not queries:
            raise ValueError("or_ needs at least one query")
        class_names = {query.class_name for query in queries}
        if len(class_names) != 1:
            raise ValueError("all queries in or_ must target the same class")
        combined = cls(queries[0].class_name)
        combined._or = [query.clone() for query in queries]
        return combined

    def ascending(self, field: str) -> Query:
        self._order = [field]
        return self

    def descending(self, field: str) -> Query:
        self._order = [f"-{field}"]
        return self

    def add_ascending(self, field: str) -> Query:
        self._order.append(field)
        return self

    def add_descending(self, field: str) -> Query:
        self._order.append(f"-{field}")
        return self

    def limit(self, value: int) -> Query:
        self._limit = value
        return self

    def skip(self, value: int) -> Query:
        self._skip = value
        return self

    @property
    def limit_value(self) -> int | None:
        return self._limit

    @property
    def skip_value(self) -> int:
        return self._skip

    @property
    def order(self) -> list[str]:
        return list(self._order)

    def conditions(self, field: str) -> dict[str, Any]:
        return dict(self._where.get(field, {}))

    def where(self) -> dict[str, Any]:
        where: dict[str, Any] = {}
        for field, conditions in self._where.items():
            if set(conditions) == {"$eq"}:
                where[field] = encode_value(conditions["$eq"])
            else:
                where[field] = encode_value(conditions)
        if self._or:
            where["$or"] = [query.where() for query in self._or]
        return where

    def to_params(self, *, count: bool = False) -> dict[str, str]:
        params: dict[str, str] = {}
        where = self.where()
        if where:
            params["where"] = json.dumps(where, separators=(",", ":"), sort_keys=True)
        if count:
            params["count"] = "1"
            params["limit"] = "0"
            return params
        if self._order:
            params["order"] = ",".join(self._order)
        if self._limit is not None:
            params["limit"] = str(self._limit)
        if self._skip:
            params["skip"] = str(self._skip)
        return params

    def cache_key(self, operation: str = "find") -> str:
        return f"{operation}:{self.class_name}:{json.dumps(self.to_params(), sort_keys=True)}"

    def matches_record(self, record: dict[str, Any]) -> bool:
        for field, conditions in self._where.items():
            if not all(_check(record, field, op, operand, conditions) for op, operand in conditions.items()):
                return False
        if self._or and not any(query.matches_record(record) for query in self._or):
            return False
        return True

    def __repr__(self) -> str:
        return f"Query({self.class_name!r}, {self.to_params()!r})"


def _comparable(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    if isinstance(left, datetime) or isinstance(right, datetime):
        return isinstance(left, datetime) and isinstance(right, datetime)
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return True
    return type(left) is type(right)


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def _check(record: dict[str, Any], field: str, op: str, operand: Any, conditions: dict[str, Any]) -> bool:
    present = field in record and record[field] is not None
    actual = record.get(field)

    if op == "$exists":
        return present is bool(operand)
    if op == "$eq":
        return _equals(actual, operand)
    if op == "$ne":
        return not _equals(actual, operand)
    if op in ("$lt", "$lte", "$gt", "$gte"):
        if not _comparable(actual, operand):
            return False
        if op == "$lt":
            return actual < operand
        if op == "$lte":
            return actual <= operand
        if op == "$gt":
            return actual > operand
        return actual >= operand
    if op == "$in":
        if isinstance(actual, list):
            return any(item in operand for item in actual)
        return actual in operand
    if op == "$all":
        return isinstance(actual, list) and all(item in actual for item in operand)
    if op == "$regex":
        if not isinstance(actual, str):
            return False
        flags = re.IGNORECASE if "i" in conditions.get("$options", "") else 0
        return re.search(operand, actual, flags) is not None
    if op == "$options":
        return True
    raise ValueError(f"Unsupported query operator: {op}")


def sort_records(records: list[dict[str, Any]], order: list[str]) -> list[dict[str, Any]]:
    ordered = list(records)
    for key in reversed(order):
        field = key.lstrip("-")
        reverse = key.startswith("-")
        present = [record for record in ordered if record.get(field) is not None]
        missing = [record for record in ordered if record.get(field) is None]
        present.sort(key=lambda record: record[field], reverse=reverse)
        ordered = missing + present if not reverse else present + missing
    return ordered
