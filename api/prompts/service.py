"""
Prompt business logic.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import HTTPException, status

from core.http import domain_errors

from . import schemas
from .repository import PromptRepository
from .variables import parse_variables

logger = logging.getLogger(__name__)


def split_tags(raw: str | None) -> list[str]:
    """
    Comma-separated query value -> list of non-empty, trimmed tags.
    """
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


async def list_prompts(
    repository: PromptRepository,
    *,
    page: int,
    limit: int,
    category_id: str | None,
    search: str | None,
    tags: str | None,
    exclude_tags: str | None,
    updated_after: datetime | None,
    sort_by: str,
    sort_order: str,
) -> dict:
    return await repository.list_page(
        page=page,
        limit=limit,
        category_id=category_id,
        search=search,
        tags=split_tags(tags),
        exclude_tags=split_tags(exclude_tags),
        updated_after=updated_after,
        sort_by=sort_by,
        sort_order=sort_order,
    )


async def get_prompt(repository: PromptRepository, prompt_id: str) -> dict:
    row = await repository.get_by_id(prompt_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prompt not found")
    return row


async def create_prompt(repository: PromptRepository, payload: schemas.PromptCreateRequest) -> dict:
    with domain_errors():
        row = await repository.create(
            title=payload.title.strip(),
            body=payload.body,
            category_id=payload.category_id,
            language=payload.language,
            tags=list(payload.tags),
        )
    logger.info("prompt_created prompt_id=%s variables=%s", row["id"], len(row["variables"]))
    return row


async def update_prompt(
    repository: PromptRepository,
    prompt_id: str,
    payload: schemas.PromptUpdateRequest,
) -> dict:
    with domain_errors():
        row = await repository.update(
            prompt_id,
            payload.changes(),
            expected_updated_at=payload.updated_at,
        )
    logger.info("prompt_updated prompt_id=%s", prompt_id)
    return row


async def delete_prompt(repository: PromptRepository, prompt_id: str) -> None:
    with domain_errors():
        await repository.delete(prompt_id)
    logger.info("prompt_deleted prompt_id=%s", prompt_id)


async def duplicate_prompt(
    repository: PromptRepository,
    prompt_id: str,
    payload: schemas.DuplicateRequest | None,
) -> dict:
    with domain_errors():
        return await repository.duplicate(prompt_id, title=payload.title if payload else None)


async def increment_usage(repository: PromptRepository, prompt_id: str) -> None:
    with domain_errors():
        await repository.increment_usage(prompt_id)


async def bulk_operation(repository: PromptRepository, payload: schemas.BulkRequest) -> int:
    with domain_errors():
        affected = await repository.bulk(payload.operation, payload.prompt_ids, payload.data)
    logger.info("prompt_bulk operation=%s requested=%s affected=%s", payload.operation, len(payload.prompt_ids), affected)
    return affected


def variables_for(payload: schemas.ParseVariablesRequest) -> dict:
    if not payload.body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body text is required")
    variables = parse_variables(payload.body)
    return {"variables": variables, "count": len(variables)}
