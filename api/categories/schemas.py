"""
Pydantic schemas for category endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

MAX_COLOR = 0xFFFFFFFF


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    icon: str | None = Field(default=None, max_length=100)
    color: int | None = Field(default=None, ge=0, le=MAX_COLOR)


class CategoryUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    icon: str | None = Field(default=None, max_length=100)
    color: int | None = Field(default=None, ge=0, le=MAX_COLOR)


class CategoryOrder(BaseModel):
    id: str = Field(..., min_length=1, max_length=36)
    order_index: int = Field(..., ge=0)


class ReorderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_orders: list[CategoryOrder] = Field(..., alias="categoryOrders", min_length=1)


class DeleteCategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    move_to_category: str | None = Field(default=None, alias="moveToCategory", max_length=36)
