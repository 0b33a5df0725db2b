from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from leadflow.middleware.identity import get_identity
from leadflow.pagination import PaginationParams, pagination_params

from .deps import app_state, invalidate_tags

router = APIRouter(prefix="/api/products", tags=["products"])


class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)
    status: str = "active"


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    category: str | None = None
    tags: list[str] | None = None
    photos: list[str] | None = None
    status: str | None = None


@router.get("")
async def list_products(
    request: Request,
    page: PaginationParams = Depends(pagination_params),
    category: str | None = None,
    status: str | None = None,
    tags: str | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    service = app_state(request, "product_service")
    return await service.list_products(
        limit=page.limit,
        cursor=page.cursor,
        category=category,
        status=status,
        tags=tags,
        search=search,
        user_id=get_identity(request),
    )


@router.get("/{product_id}")
async def get_product(request: Request, product_id: str) -> dict[str, Any]:
    service = app_state(request, "product_service")
    return {"success": True, "data": await service.get_product(product_id)}


@router.post("", status_code=201)
async def create_product(request: Request, body: ProductCreate) -> dict[str, Any]:
    service = app_state(request, "product_service")
    product = await service.create_product(body.model_dump())
    await invalidate_tags(request, "products")
    return {"success": True, "data": product}


@router.put("/{product_id}")
async def update_product(request: Request, product_id: str, body: ProductUpdate) -> dict[str, Any]:
    service = app_state(request, "product_service")
    product = await service.update_product(product_id, body.model_dump(exclude_unset=True))
    await invalidate_tags(request, "products")
    return {"success": True, "data": product}


@router.delete("/{product_id}")
async def delete_product(request: Request, product_id: str) -> dict[str, Any]:
    service = app_state(request, "product_service")
    deleted = await service.delete_product(product_id)
    await invalidate_tags(request, "products")
    return {"success": True, "deleted": deleted}
