from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query as QueryParam, Request

from leadflow.db import collections
from leadflow.db.query import Query

from .deps import get_store

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/daily")
async def daily_analytics(request: Request, days: int = QueryParam(default=7, ge=1, le=90)) -> dict[str, Any]:
    rows = await get_store(request).find(Query(collections.ANALYTICS_DAILY).descending("day").limit(days))
    return {
        "success": True,
        "data": [
            {"day": row.get("day"), "metrics": row.get("metrics") or {}, "computedAt": row.get("computedAt")}
            for row in rows
        ],
    }
