"""
Import / export endpoints.

`GET /export` is public (mobile sync); downloading needs `read`, importing
and validating need `write`.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Body, Depends, Query, Response

from auth import dependencies as auth_dependencies
from core import db
from core.http import domain_errors

from . import schemas, service
from .store import EntityStore

router = APIRouter()


def get_entity_store() -> EntityStore:
    return EntityStore(db.pool())


@router.get("/export")
async def export_data(
    categories: bool = Query(True),
    prompts: bool = Query(True),
    category_id: str | None = Query(default=None, alias="categoryId", max_length=36),
    store: EntityStore = Depends(get_entity_store),
    _: dict | None = Depends(auth_dependencies.get_optional_user),
) -> dict:
    document = await service.export_document(
        store,
        include_categories=categories,
        include_prompts=prompts,
        category_id=category_id,
    )
    return {"success": True, "data": document, "message": "Export completed successfully"}


@router.post("/export/download")
async def download_export(
    payload: schemas.ExportDownloadRequest | None = Body(default=None),
    store: EntityStore = Depends(get_entity_store),
    _: dict = Depends(auth_dependencies.require_permission("read")),
) -> Response:
    payload = payload or schemas.ExportDownloadRequest()
    document = await service.export_document(
        store,
        include_categories=payload.categories,
        include_prompts=payload.prompts,
        category_id=payload.category_id,
    )
    filename = service.download_filename(payload.filename)
    return Response(
        content=json.dumps(document, indent=2, ensure_ascii=False),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
async def import_data(
    payload: schemas.ImportRequest,
    store: EntityStore = Depends(get_entity_store),
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    with domain_errors():
        report = await service.import_dataset(store, payload.data, dry_run=payload.dry_run)
    message = "Import preview completed" if payload.dry_run else "Import completed successfully"
    return {"success": True, "data": report.as_dict(), "message": message}


@router.post("/validate-import")
async def validate_import(
    payload: schemas.ValidateImportRequest,
    _: dict = Depends(auth_dependencies.require_permission("write")),
) -> dict:
    with domain_errors():
        report = service.validate_dataset(payload.data)
    message = "Data is valid for import" if report.valid else "Data has validation errors"
    return {"success": True, "data": report.as_dict(), "message": message}
