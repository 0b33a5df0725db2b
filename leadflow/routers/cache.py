from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from .deps import app_state, get_response_cache

router = APIRouter(prefix="/api/cache", tags=["cache"])


class InvalidateRequest(BaseModel):
    tags: list[str] = Field(min_length=1)


@router.get("/stats")
async def cache_stats(request: Request) -> dict[str, Any]:
    client = app_state(request, "cache_client")
    return {
        "success": True,
        "backend": client.describe(),
        "productCatalog": app_state(request, "product_catalog_cache").get_stats(),
        "templates": app_state(request, "template_cache").get_stats(),
        "aiResponses": app_state(request, "ai_cache").get_stats(),
    }


@router.post("/invalidate")
async def invalidate(request: Request, body: InvalidateRequest) -> dict[str, Any]:
    response_cache = get_response_cache(request)
    deleted = await response_cache.invalidate(body.tags) if response_cache is not None else 0
    if "products" in body.tags:
        app_state(request, "product_service").invalidate_local()
    return {"success": True, "deleted": deleted}
