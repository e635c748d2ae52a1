"""
Pydantic schemas for prompt endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

TagName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class PromptCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    category_id: str | None = Field(default=None, alias="categoryId", max_length=36)
    language: str | None = Field(default=None, max_length=10)
    tags: list[TagName] = Field(default_factory=list)


class PromptUpdateRequest(BaseModel):
    """
    Partial update: only fields present in the request body are written.
    `updatedAt` is the client's last-seen version for conflict detection.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, min_length=1, max_length=500)
    body: str | None = Field(default=None, min_length=1)
    category_id: str | None = Field(default=None, alias="categoryId", max_length=36)
    language: str | None = Field(default=None, max_length=10)
    tags: list[TagName] | None = None
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        data.pop("updated_at", None)
        # Explicit null clears a nullable column; for the others it means "unchanged".
        return {k: v for k, v in data.items() if v is not None or k == "category_id"}


class DuplicateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)


class BulkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    operation: Literal["delete", "move_category"]
    prompt_ids: list[str] = Field(..., alias="promptIds", min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class ParseVariablesRequest(BaseModel):
    body: str | None = None
