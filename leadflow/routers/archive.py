from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query as QueryParam, Request

from leadflow.models.errors import NotFoundError

from .deps import app_state, invalidate_tags
from .messages import format_message

router = APIRouter(prefix="/api/archive", tags=["archive"])


@router.get("/messages")
async def list_archived_messages(
    request: Request,
    importer_id: str | None = None,
    channel: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = QueryParam(default=100, ge=1, le=1000),
) -> dict[str, Any]:
    records = await app_state(request, "archive_service").query_archived_messages(
        importer_id=importer_id,
        channel=channel,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    data = [
        {**format_message(record), "originalId": record.get("originalId"), "archivedAt": record.get("archivedAt")}
        for record in records
    ]
    return {"success": True, "data": data}


@router.post("/messages/{original_id}/restore")
async def restore_message(request: Request, original_id: str) -> dict[str, Any]:
    restored = await app_state(request, "archive_service").restore_message(original_id)
    if restored is None:
        raise NotFoundError(message=f"No archived message for {original_id}", param="original_id")
    await invalidate_tags(request, "messages")
    return {"success": True, "data": format_message(restored)}


@router.post("/campaigns/{original_id}/restore")
async def restore_campaign(request: Request, original_id: str) -> dict[str, Any]:
    restored = await app_state(request, "archive_service").restore_campaign(original_id)
    if restored is None:
        raise NotFoundError(message=f"No archived campaign for {original_id}", param="original_id")
    await invalidate_tags(request, "campaigns")
    return {"success": True, "data": {"id": restored.get("objectId"), "name": restored.get("name")}}


@router.post("/run")
async def run_archive(request: Request, dry_run: bool = True) -> dict[str, Any]:
    """Archive aged messages and campaigns now; a dry run only reports the counts."""
    service = app_state(request, "archive_service")
    messages = await service.archive_old_messages(dry_run=dry_run)
    campaigns = await service.archive_old_campaigns(dry_run=dry_run)
    if not dry_run:
        if messages.archived:
            await invalidate_tags(request, "messages")
        if campaigns.archived:
            await invalidate_tags(request, "campaigns")
    return {"success": True, "messages": messages.as_dict(), "campaigns": campaigns.as_dict()}
