"""
Prompt API endpoints.

Reads and usage tracking are public (mobile client); edits need the
`write` / `delete` permission (CMS client).
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Body, Depends, Query

from auth import dependencies as auth_dependencies
from core import db

from . import schemas, service
from .repository import SORT_COLUMNS, PromptRepository

router = APIRouter(prefix="/prompts")


def get_prompt_repository() -> PromptRepository:
    return PromptRepository(db.pool())


@router.get("")
async def list_prompts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category_id: str | None = Query(default=None, alias="categoryId", max_length=36),
    search: str | None = Query(default=None, max_length=500),
    tags: str | None = Query(default=None),
    exclude_tags: str | None = Query(default=None, alias="excludeTags"),
    updated_after: datetime | None = Query(default=None, alias="updatedAfter"),
    sort_by: str = Query("updated_at", alias="sortBy", pattern="^(" + "|".join(SORT_COLUMNS) + ")$"),
    sort_order: str = Query("DESC", alias="sortOrder", pattern="^(ASC|DESC|asc|desc)$"),
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    result = await service.list_prompts(
        repository,
        page=page,
        limit=limit,
        category_id=category_id,
        search=search,
        tags=tags,
        exclude_tags=exclude_tags,
        updated_after=updated_after,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {"success": True, "data": result["data"], "pagination": result["pagination"]}


@router.get("/recent")
async def recently_used(
    limit: int = Query(10, ge=1, le=100),
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    rows = await repository.recently_used(limit=limit)
    return {"success": True, "data": rows}


@router.get("/tags")
async def list_tags(
    q: str = Query(default="", max_length=100),
    limit: int = Query(100, ge=1, le=500),
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    rows = await repository.list_tags(search=q, limit=limit)
    return {"success": True, "data": rows, "count": len(rows)}


@router.post("/parse-variables")
async def parse_variables(payload: schemas.ParseVariablesRequest) -> dict:
    return {"success": True, "data": service.variables_for(payload)}


@router.post("/bulk")
async def bulk_operation(
    payload: schemas.BulkRequest,
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    affected = await service.bulk_operation(repository, payload)
    return {"success": True, "affected": affected, "message": f"Bulk {payload.operation} completed"}


@router.get("/{prompt_id}")
async def get_prompt(
    prompt_id: str,
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    row = await service.get_prompt(repository, prompt_id)
    return {"success": True, "data": row}


@router.put("/{prompt_id}/usage")
async def increment_usage(
    prompt_id: str,
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    await service.increment_usage(repository, prompt_id)
    return {"success": True, "message": "Usage count incremented"}


@router.post("", status_code=201)
async def create_prompt(
    payload: schemas.PromptCreateRequest,
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    row = await service.create_prompt(repository, payload)
    return {"success": True, "data": row, "message": "Prompt created successfully"}


@router.put("/{prompt_id}")
async def update_prompt(
    prompt_id: str,
    payload: schemas.PromptUpdateRequest,
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    row = await service.update_prompt(repository, prompt_id, payload)
    return {"success": True, "data": row, "message": "Prompt updated successfully"}


@router.post("/{prompt_id}/duplicate", status_code=201)
async def duplicate_prompt(
    prompt_id: str,
    payload: schemas.DuplicateRequest | None = Body(default=None),
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    row = await service.duplicate_prompt(repository, prompt_id, payload)
    return {"success": True, "data": row, "message": "Prompt duplicated successfully"}


@router.delete("/{prompt_id}")
async def delete_prompt(
    prompt_id: str,
    repository: PromptRepository = Depends(get_prompt_repository),
    _: dict = Depends(auth_dependencies.require_permission("delete")),
) -> dict:
    await service.delete_prompt(repository, prompt_id)
    return {"success": True, "message": "Prompt deleted successfully"}
