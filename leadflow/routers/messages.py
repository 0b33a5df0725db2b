from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from leadflow.db import collections
from leadflow.db.encoding import to_epoch_ms, utcnow
from leadflow.db.query import Query
from leadflow.pagination import (
    PaginationParams,
    apply_cursor,
    format_paginated_response,
    get_next_cursor,
    pagination_params,
)

from .deps import get_store, invalidate_tags

router = APIRouter(prefix="/api/messages", tags=["messages"])

SORT_FIELD = "createdAt"


class MessageCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    channel: str = Field(min_length=1)
    content: str
    importer_id: str | None = Field(default=None, alias="importerId")
    direction: str = "outbound"
    status: str = "active"
    subject: str | None = None


def format_message(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": record.get("objectId"),
        "channel": record.get("channel"),
        "direction": record.get("direction"),
        "status": record.get("status"),
        "subject": record.get("subject"),
        "content": record.get("content"),
        "importerId": record.get("importerId"),
        "timestamp": record.get("timestamp"),
        "createdAt": record.get("createdAt"),
    }


@router.get("")
async def list_messages(
    request: Request,
    page: PaginationParams = Depends(pagination_params),
    channel: str | None = None,
    status: str | None = None,
    importer_id: str | None = None,
) -> dict[str, Any]:
    store = get_store(request)
    query = Query(collections.MESSAGE)
    if channel:
        query.equal_to("channel", channel)
    if status:
        query.equal_to("status", status)
    if importer_id:
        query.equal_to("importerId", importer_id)
    apply_cursor(query, page.cursor, SORT_FIELD, "desc")
    records = await store.find(query.limit(page.limit + 1))

    rows = records[: page.limit]
    next_cursor = get_next_cursor(rows, SORT_FIELD, "desc") if len(records) > page.limit else None
    return format_paginated_response([format_message(row) for row in rows], next_cursor, page.limit)


@router.get("/{message_id}")
async def get_message(request: Request, message_id: str) -> dict[str, Any]:
    record = await get_store(request).get(collections.MESSAGE, message_id)
    return {"success": True, "data": format_message(record)}


@router.post("", status_code=201)
async def create_message(request: Request, body: MessageCreate) -> dict[str, Any]:
    record = body.model_dump(by_alias=True)
    record["timestamp"] = to_epoch_ms(utcnow())
    saved = await get_store(request).save(collections.MESSAGE, record)
    await invalidate_tags(request, "messages")
    return {"success": True, "data": format_message(saved)}
