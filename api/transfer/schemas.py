"""
Pydantic schemas for import/export endpoints.

`data` stays a loose mapping: per-record problems are reported in the import
result instead of failing the whole request.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ImportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: dict[str, Any]
    dry_run: bool = Field(default=False, alias="dryRun")


class ValidateImportRequest(BaseModel):
    data: dict[str, Any]


class ExportDownloadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    categories: bool = True
    prompts: bool = True
    category_id: str | None = Field(default=None, alias="categoryId", max_length=36)
    filename: str | None = Field(default=None, max_length=255)
