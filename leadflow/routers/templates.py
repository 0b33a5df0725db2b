from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from .deps import app_state

router = APIRouter(prefix="/api/templates", tags=["templates"])


class TemplateRenderRequest(BaseModel):
    content: str
    variables: dict[str, Any] = Field(default_factory=dict)


@router.post("/{template_id}/render")
async def render_template(request: Request, template_id: str, body: TemplateRenderRequest) -> dict[str, Any]:
    template_cache = app_state(request, "template_cache")
    rendered = template_cache.get_compiled(template_id, body.content, body.variables)
    return {"success": True, "data": {"templateId": template_id, "rendered": rendered}}
