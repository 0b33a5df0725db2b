from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    ready_payload = await _readiness_payload(request)
    status = 200 if ready_payload["status"] == "ok" else 503
    payload = {"liveliness": "ok", "readiness": ready_payload}
    return JSONResponse(status_code=status, content=payload)


@router.get("/health/liveliness")
async def liveliness() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/readiness")
async def readiness(request: Request) -> JSONResponse:
    payload = await _readiness_payload(request)
    status = 200 if payload["status"] == "ok" else 503
    return JSONResponse(status_code=status, content=payload)


async def _readiness_payload(request: Request) -> dict[str, object]:
    checks: dict[str, bool] = {}

    # A disabled cache is a supported mode, not an outage.
    cache_client = getattr(request.app.state, "cache_client", None)
    checks["cache"] = cache_client is None or not cache_client.enabled or await cache_client.ping()

    datastore = getattr(request.app.state, "datastore", None)
    if datastore is None:
        checks["datastore"] = False
    else:
        try:
            checks["datastore"] = bool(await datastore.ping())
        except Exception as exc:
            logger.warning("datastore readiness check failed: %s", exc)
            checks["datastore"] = False

    scheduler = getattr(request.app.state, "scheduler", None)
    status = "ok" if all(checks.values()) else "degraded"
    return {
        "status": status,
        "checks": checks,
        "cacheBackend": cache_client.backend_name if cache_client is not None else None,
        "scheduler": bool(scheduler and scheduler.running),
    }
