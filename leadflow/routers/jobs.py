from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from .deps import app_state

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("")
async def list_jobs(request: Request) -> dict[str, Any]:
    scheduler = app_state(request, "scheduler")
    return {"success": True, "running": scheduler.running, "jobs": scheduler.status()}


@router.post("/{name}/run")
async def run_job(request: Request, name: str) -> dict[str, Any]:
    run = await app_state(request, "scheduler").run_now(name)
    return {"success": run.status == "success", "run": run.as_dict()}
