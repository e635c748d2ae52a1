"""
Category business logic.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from core.http import domain_errors

from . import schemas
from .repository import CategoryRepository

logger = logging.getLogger(__name__)


def _strip(value: str | None) -> str | None:
    return value.strip() if isinstance(value, str) else value


async def get_category(repository: CategoryRepository, category_id: str) -> dict:
    row = await repository.get_by_id(category_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return row


async def create_category(repository: CategoryRepository, payload: schemas.CategoryCreateRequest) -> dict:
    name = _strip(payload.name)
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required.")
    row = await repository.create(name=name, icon=_strip(payload.icon), color=payload.color)
    logger.info("category_created category_id=%s", row["id"])
    return row


async def update_category(
    repository: CategoryRepository,
    category_id: str,
    payload: schemas.CategoryUpdateRequest,
) -> dict:
    with domain_errors():
        return await repository.update(
            category_id,
            name=_strip(payload.name),
            icon=_strip(payload.icon),
            color=payload.color,
        )


async def delete_category(repository: CategoryRepository, category_id: str, *, move_to: str | None = None) -> None:
    with domain_errors():
        await repository.delete(category_id, move_to=move_to)
    logger.info("category_deleted category_id=%s move_to=%s", category_id, move_to)


async def reorder_categories(repository: CategoryRepository, payload: schemas.ReorderRequest) -> int:
    orders = [(item.id, item.order_index) for item in payload.category_orders]
    with domain_errors():
        return await repository.reorder(orders)
