from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from .deps import app_state

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("")
async def get_config(request: Request) -> dict[str, Any]:
    return await app_state(request, "config_service").payload()
