from __future__ import annotations

import base64
import binascii
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from fastapi import Query as QueryParam
from fastapi import Request

from leadflow.db.encoding import from_epoch_ms, to_epoch_ms
from leadflow.db.query import Query
from leadflow.models.errors import InvalidCursorError, InvalidRequestError

SortOrder = Literal["asc", "desc"]

DATE_SORT_FIELDS = frozenset({"createdAt", "updatedAt"})
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200

_BASE64URL = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class Cursor:
    field: str
    value: Any
    order: SortOrder
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value, "order": self.order, "timestamp": self.timestamp}


def _sort_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_epoch_ms(value)
    return value


def create_cursor(field: str, value: Any, order: SortOrder = "desc", *, now: float | None = None) -> str:
    """Encode the position after ``value`` as unpadded base64url JSON; datetimes become epoch ms."""
    payload = {
        "field": field,
        "value": _sort_value(value),
        "order": order,
        "timestamp": int((time.time() if now is None else now) * 1000),
    }
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def parse_cursor(token: str) -> Cursor:
    if not isinstance(token, str) or not _BASE64URL.match(token):
        raise InvalidCursorError()
    try:
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError):
        raise InvalidCursorError() from None

    if not isinstance(data, dict):
        raise InvalidCursorError()
    field, order = data.get("field"), data.get("order")
    if not isinstance(field, str) or not field or order not in ("asc", "desc") or "value" not in data:
        raise InvalidCursorError()
    timestamp = data.get("timestamp", 0)
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        raise InvalidCursorError()
    return Cursor(field=field, value=data["value"], order=order, timestamp=int(timestamp))


def apply_cursor(query: Query, cursor: str | Cursor | None, field: str, order: SortOrder = "desc") -> Query:
    """Sort ``query`` by ``field`` and, given a cursor, restrict it to rows after the cursor.

    A cursor only continues the sort it was created for; any other field or
    order is rejected. Rows inserted behind the cursor while a client pages
    are not seen, and rows sharing a sort value with the cursor row are
    skipped, so the sort field should be strictly increasing (timestamps).
    """
    if order == "desc":
        query.descending(field)
    else:
        query.ascending(field)

    if cursor is None:
        return query

    parsed = parse_cursor(cursor) if isinstance(cursor, str) else cursor
    if parsed.field != field or parsed.order != order:
        raise InvalidCursorError(message="Cursor does not match the requested sort")

    value = parsed.value
    if field in DATE_SORT_FIELDS:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise InvalidCursorError()
        value = from_epoch_ms(value)

    if order == "desc":
        query.less_than(field, value)
    else:
        query.greater_than(field, value)
    return query


def get_next_cursor(
    results: list[dict[str, Any]],
    field: str,
    order: SortOrder = "desc",
    limit: int | None = None,
) -> str | None:
    """Cursor after the last row, or ``None`` when the page is empty or not full."""
    if not results:
        return None
    if limit is not None and len(results) < limit:
        return None
    return create_cursor(field, results[-1].get(field), order)


def format_paginated_response(data: list[Any], next_cursor: str | None, limit: int) -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "pagination": {
            "limit": int(limit),
            "hasMore": bool(next_cursor),
            "nextCursor": next_cursor or None,
        },
    }


@dataclass(frozen=True)
class PaginationParams:
    limit: int
    cursor: str | None = None


def resolve_limit(raw: str | None, default_limit: int, max_limit: int) -> int:
    if raw is None or raw == "":
        return default_limit
    try:
        limit = int(raw)
    except ValueError:
        raise InvalidRequestError(
            message="Invalid limit parameter. Must be a positive integer.", param="limit", code="invalid_limit"
        ) from None
    if limit < 1:
        raise InvalidRequestError(
            message="Invalid limit parameter. Must be a positive integer.", param="limit", code="invalid_limit"
        )
    return min(limit, max_limit)


def pagination_params(
    request: Request,
    limit: str | None = QueryParam(default=None),
    cursor: str | None = QueryParam(default=None),
) -> PaginationParams:
    default_limit, max_limit = getattr(request.app.state, "pagination_limits", (DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT))
    return PaginationParams(limit=resolve_limit(limit, default_limit, max_limit), cursor=cursor or None)
