from __future__ import annotations

from typing import Any

from fastapi import Request

from leadflow.models.errors import ServiceUnavailableError


def app_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise ServiceUnavailableError(message=f"{name.replace('_', ' ')} is not available")
    return value


def get_store(request: Request) -> Any:
    return app_state(request, "datastore")


def get_response_cache(request: Request) -> Any:
    return getattr(request.app.state, "response_cache", None)


async def invalidate_tags(request: Request, *tags: str) -> int:
    response_cache = get_response_cache(request)
    if response_cache is None:
        return 0
    return await response_cache.invalidate(list(tags))
