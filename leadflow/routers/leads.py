from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from leadflow.db import collections
from leadflow.db.query import Query
from leadflow.pagination import (
    PaginationParams,
    apply_cursor,
    format_paginated_response,
    get_next_cursor,
    pagination_params,
)

from .deps import get_store

router = APIRouter(prefix="/api/leads", tags=["leads"])

SORT_FIELD = "createdAt"


def format_lead(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record.get("objectId"),
        "companyName": record.get("companyName"),
        "country": record.get("country"),
        "status": record.get("status"),
        "leadScore": record.get("leadScore"),
        "scoreReason": record.get("scoreReason"),
        "scoreUpdatedAt": record.get("scoreUpdatedAt"),
        "createdAt": record.get("createdAt"),
    }


@router.get("")
async def list_leads(
    request: Request,
    page: PaginationParams = Depends(pagination_params),
    status: str | None = None,
    country: str | None = None,
    min_score: int | None = None,
) -> dict[str, Any]:
    query = Query(collections.LEAD)
    if status:
        query.equal_to("status", status)
    if country:
        query.equal_to("country", country)
    if min_score is not None:
        query.greater_than_or_equal_to("leadScore", min_score)
    apply_cursor(query, page.cursor, SORT_FIELD, "desc")
    records = await get_store(request).find(query.limit(page.limit + 1))

    rows = records[: page.limit]
    next_cursor = get_next_cursor(rows, SORT_FIELD, "desc") if len(records) > page.limit else None
    return format_paginated_response([format_lead(row) for row in rows], next_cursor, page.limit)
