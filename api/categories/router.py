"""
Category API endpoints.

Reads are public (mobile client); writes need the `write` / `delete`
permission (CMS client).
"""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query

from auth import dependencies as auth_dependencies
from core import db

from . import schemas, service
from .repository import CategoryRepository

router = APIRouter(prefix="/categories")


def get_category_repository() -> CategoryRepository:
    return CategoryRepository(db.pool())


@router.get("")
async def list_categories(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    repository: CategoryRepository = Depends(get_category_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    result = await repository.list_page(page=page, limit=limit)
    return {"success": True, "data": result["data"], "pagination": result["pagination"]}


@router.get("/with-counts")
async def categories_with_counts(
    repository: CategoryRepository = Depends(get_category_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    rows = await repository.with_prompt_counts()
    return {"success": True, "data": rows}


@router.get("/{category_id}")
async def get_category(
    category_id: str,
    repository: CategoryRepository = Depends(get_category_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    row = await service.get_category(repository, category_id)
    return {"success": True, "data": row}


@router.post("", status_code=201)
async def create_category(
    payload: schemas.CategoryCreateRequest,
    repository: CategoryRepository = Depends(get_category_repository),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    row = await service.create_category(repository, payload)
    return {"success": True, "data": row, "message": "Category created successfully"}


@router.put("/reorder")
async def reorder_categories(
    payload: schemas.ReorderRequest,
    repository: CategoryRepository = Depends(get_category_repository),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    touched = await service.reorder_categories(repository, payload)
    return {"success": True, "affected": touched, "message": "Categories reordered successfully"}


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    payload: schemas.CategoryUpdateRequest,
    repository: CategoryRepository = Depends(get_category_repository),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    row = await service.update_category(repository, category_id, payload)
    return {"success": True, "data": row, "message": "Category updated successfully"}


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    move_to_category: str | None = Query(default=None, alias="moveToCategory", max_length=36),
    payload: schemas.DeleteCategoryRequest | None = Body(default=None),
    repository: CategoryRepository = Depends(get_category_repository),
    _: dict = Depends(auth_dependencies.require_permission("delete")),
) -> dict:
    move_to = move_to_category or (payload.move_to_category if payload is not None else None)
    await service.delete_category(repository, category_id, move_to=move_to)
    return {"success": True, "message": "Category deleted successfully"}
