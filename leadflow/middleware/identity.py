from __future__ import annotations

from fastapi import Request

DEFAULT_IDENTITY_HEADER = "x-user-id"


async def attach_identity(request: Request) -> None:
    """Record the caller identity used to scope per-user responses and cache entries."""
    header = getattr(request.app.state, "identity_header", DEFAULT_IDENTITY_HEADER)
    value = (request.headers.get(header) or "").strip()
    request.state.identity = value or None


def get_identity(request: Request) -> str | None:
    return getattr(request.state, "identity", None)
