"""
Import / export / validate orchestration.

- `import_dataset`: one transaction for the whole run (none in dry-run),
  categories before prompts, commit or roll back as a unit
- `export_document`: versioned snapshot of the store, raw id references
- `validate_dataset`: side-effect-free preview of an import payload
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from core import errors
from prompts.variables import parse_variables

from . import records
from .reconciler import ImportReport, Reconciler
from .store import EntityStore

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_FILENAME_PREFIX = "promptbuddy-export"


def export_max_prompts() -> int:
    raw = os.environ.get("EXPORT_MAX_PROMPTS", "").strip()
    try:
        return int(raw) if raw else 10000
    except ValueError:
        return 10000


def dataset_sequences(data: Any) -> tuple[list[Any], list[Any]]:
    """
    Pull the `categories` and `prompts` sequences out of an import payload.

    Both are optional and default to empty; anything other than a list is a
    format error raised before the store is touched.
    """
    if not isinstance(data, dict):
        raise errors.DatasetFormatError("Invalid data format. Expected an object.")

    categories = data.get("categories")
    prompts = data.get("prompts")
    categories = [] if categories is None else categories
    prompts = [] if prompts is None else prompts
    if not isinstance(categories, list) or not isinstance(prompts, list):
        raise errors.DatasetFormatError("Invalid data format. Expected categories and prompts arrays.")
    return categories, prompts


async def import_dataset(store: EntityStore, data: Any, *, dry_run: bool = False) -> ImportReport:
    categories, prompts = dataset_sequences(data)
    logger.info(
        "import_started dry_run=%s categories=%s prompts=%s",
        dry_run,
        len(categories),
        len(prompts),
    )

    if dry_run:
        report = await Reconciler(store, dry_run=True).run(categories, prompts)
    else:
        try:
            async with store.transaction() as tx:
                report = await Reconciler(tx).run(categories, prompts)
        except Exception:
            logger.exception("import_failed rolled_back=true")
            raise

    logger.info(
        "import_complete dry_run=%s categories_new=%s categories_updated=%s categories_skipped=%s "
        "prompts_new=%s prompts_updated=%s prompts_skipped=%s errors=%s",
        dry_run,
        report.categories.new,
        report.categories.updated,
        report.categories.skipped,
        report.prompts.new,
        report.prompts.updated,
        report.prompts.skipped,
        len(report.categories.errors) + len(report.prompts.errors),
    )
    return report


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


def export_category(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "icon": row.get("icon"),
        "color": row.get("color"),
        "order_index": row.get("order_index"),
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
    }


def export_prompt(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "body": row["body"],
        "categoryId": row.get("category_id"),
        "language": row.get("language"),
        "tags": list(row.get("tags") or []),
        "variables": list(row.get("variables") or []),
        "usageCount": row.get("usage_count") or 0,
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
    }


async def export_document(
    store: EntityStore,
    *,
    include_categories: bool = True,
    include_prompts: bool = True,
    category_id: str | None = None,
) -> dict[str, Any]:
    document: dict[str, Any] = {
        "version": EXPORT_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "categories": [],
        "prompts": [],
    }
    if include_categories:
        rows = await store.categories.list_all()
        document["categories"] = [export_category(row) for row in rows]
    if include_prompts:
        rows = await store.prompts.list_all(category_id=category_id, limit=export_max_prompts())
        document["prompts"] = [export_prompt(row) for row in rows]

    logger.info(
        "export_complete categories=%s prompts=%s category_id=%s",
        len(document["categories"]),
        len(document["prompts"]),
        category_id,
    )
    return document


def download_filename(name: str | None = None, *, today: date | None = None) -> str:
    if name and name.strip():
        # Header-safe: no quotes or path separators.
        cleaned = "".join(ch for ch in name.strip() if ch not in '"\\/\r\n')
        if cleaned:
            return cleaned
    day = today or datetime.now(timezone.utc).date()
    return f"{EXPORT_FILENAME_PREFIX}-{day.isoformat()}.json"


@dataclass
class ValidationReport:
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    categories: int = 0
    prompts: int = 0
    variables: int = 0

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "summary": {
                "categories": self.categories,
                "prompts": self.prompts,
                "variables": self.variables,
            },
        }


def _duplicates(values: list[Any]) -> list[Any]:
    counts = Counter(v for v in values if isinstance(v, (str, int)) and v != "")
    return [value for value, n in counts.items() if n > 1]


def validate_dataset(data: Any) -> ValidationReport:
    """
    Check an import payload without touching the store.

    Uses the same per-record checks the reconciler applies, so a payload that
    validates cleanly imports without per-record shape errors.
    """
    categories, prompts = dataset_sequences(data)
    report = ValidationReport(categories=len(categories), prompts=len(prompts))

    for index, record in enumerate(categories, start=1):
        for problem in records.category_problems(record):
            report.error(f"Category {index}: {problem}")
        if isinstance(record, dict) and record.get("updatedAt") is not None:
            try:
                records.parse_timestamp(record["updatedAt"])
            except errors.RecordRejectedError as exc:
                report.error(f"Category {index}: {exc}")

    for index, record in enumerate(prompts, start=1):
        for problem in records.prompt_problems(record):
            report.error(f"Prompt {index}: {problem}")
        if isinstance(record, dict) and isinstance(record.get("body"), str):
            report.variables += len(parse_variables(record["body"]))
        if isinstance(record, dict) and record.get("updatedAt") is not None:
            try:
                records.parse_timestamp(record["updatedAt"])
            except errors.RecordRejectedError as exc:
                report.error(f"Prompt {index}: {exc}")

    category_dicts = [r for r in categories if isinstance(r, dict)]
    prompt_dicts = [r for r in prompts if isinstance(r, dict)]
    for name in _duplicates([r.get("name") for r in category_dicts]):
        report.warnings.append(f"Duplicate category name '{name}' will resolve to a single category")
    for value in _duplicates([r.get("id") for r in category_dicts]):
        report.warnings.append(f"Duplicate category id '{value}'")
    for value in _duplicates([r.get("id") for r in prompt_dicts]):
        report.warnings.append(f"Duplicate prompt id '{value}'")

    logger.info(
        "import_validated valid=%s errors=%s warnings=%s",
        report.valid,
        len(report.errors),
        len(report.warnings),
    )
    return report
