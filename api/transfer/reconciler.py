"""
Import reconciliation.

For every incoming record the reconciler decides CREATE, UPDATE or SKIP
against the store:

1) categories first, in input order; each resolved category is registered
   in a request-scoped identity map (incoming id, or name when no id)
2) prompts second, translating `categoryId` through that map

Per-record problems are collected into the report and never abort the
batch. Store failures other than a single row's constraint violation
propagate so the caller can roll back the whole import.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Union
from uuid import uuid4

from categories.repository import DEFAULT_COLOR, DEFAULT_ICON
from core import errors
from prompts.repository import DEFAULT_LANGUAGE

from . import records
from .store import EntityStore

logger = logging.getLogger(__name__)

# Raised for one record; reported and skipped, siblings continue.
RECORD_ERRORS = (
    errors.RecordRejectedError,
    errors.NotFoundError,
    errors.ConflictError,
    errors.InvalidOperationError,
)


class Decision(enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True)
class ExternalId:
    value: str


@dataclass(frozen=True)
class Name:
    value: str


IdentityKey = Union[ExternalId, Name]


@dataclass(frozen=True)
class PendingId:
    """
    Stand-in id for a category a dry run would create. Lives only inside the
    identity map; it is never written and never returned to a client.
    """

    token: str = field(default_factory=lambda: str(uuid4()))


ResolvedId = Union[str, PendingId]


class IdentityMap:
    def __init__(self) -> None:
        self._entries: dict[IdentityKey, ResolvedId] = {}

    @staticmethod
    def key_for(record: dict[str, Any]) -> IdentityKey:
        external_id = record.get("id")
        if external_id:
            return ExternalId(str(external_id))
        return Name(str(record["name"]))

    def register(self, record: dict[str, Any], resolved: ResolvedId) -> None:
        self._entries[self.key_for(record)] = resolved

    def translate(self, reference: Any) -> ResolvedId | None:
        """
        Resolve a prompt's category reference: incoming id first, then name.
        """
        ref = str(reference)
        for key in (ExternalId(ref), Name(ref)):
            if key in self._entries:
                return self._entries[key]
        return None

    def __len__(self) -> int:
        return len(self._entries)


class DryRunCategories:
    """
    Category lookups for a dry run.

    Starts from the store's rows and applies the creates and updates the
    import would have issued, so later records in the same payload match by
    id and name the way they would against the real table. Created rows
    carry a PendingId.
    """

    def __init__(self, rows: Iterable[dict[str, Any]]):
        self._rows: dict[ResolvedId, dict[str, Any]] = {row["id"]: dict(row) for row in rows}

    async def get_by_id(self, category_id: str) -> dict[str, Any] | None:
        row = self._rows.get(category_id)
        return dict(row) if row is not None else None

    async def find_by_name(self, name: str) -> dict[str, Any] | None:
        matches = [row for row in self._rows.values() if row["name"] == name]
        if not matches:
            return None
        # Oldest first, like the repository's ORDER BY created_at, id.
        return dict(min(matches, key=lambda row: (row["created_at"], str(row["id"]))))

    async def create(self, *, name: str, icon: str | None = None, color: int | None = None) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        row = {"id": PendingId(), "name": name, "icon": icon, "color": color, "created_at": now, "updated_at": now}
        self._rows[row["id"]] = row
        return dict(row)

    async def update(
        self,
        category_id: ResolvedId,
        *,
        name: str | None = None,
        icon: str | None = None,
        color: int | None = None,
    ) -> dict[str, Any]:
        row = self._rows[category_id]
        for column, value in (("name", name), ("icon", icon), ("color", color)):
            if value is not None:
                row[column] = value
        row["updated_at"] = datetime.now(timezone.utc)
        return dict(row)


@dataclass
class EntityOutcome:
    new: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def count(self, decision: Decision) -> None:
        if decision is Decision.CREATE:
            self.new += 1
        elif decision is Decision.UPDATE:
            self.updated += 1
        else:
            self.skipped += 1

    def reject(self, message: str) -> None:
        self.errors.append(message)
        self.skipped += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "new": self.new,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass
class ImportReport:
    categories: EntityOutcome = field(default_factory=EntityOutcome)
    prompts: EntityOutcome = field(default_factory=EntityOutcome)

    def as_dict(self) -> dict[str, Any]:
        return {"categories": self.categories.as_dict(), "prompts": self.prompts.as_dict()}


class Reconciler:
    """
    One import's worth of decisions. Not reusable across imports: the
    identity map and report belong to a single request.

    With `dry_run=True` every decision is made and counted, but no store
    write is issued. Category writes go to a DryRunCategories view and
    prompt updates are remembered, so a dry run reports the same counts a
    real run would from the same starting state.
    """

    def __init__(self, store: EntityStore, *, dry_run: bool = False):
        self.store = store
        self.dry_run = dry_run
        self.identity = IdentityMap()
        self.report = ImportReport()
        self._dry_categories: DryRunCategories | None = None
        # prompt id -> updated_at the real run would have written
        self._dry_prompt_writes: dict[str, datetime] = {}

    async def run(self, categories: Iterable[Any], prompts: Iterable[Any]) -> ImportReport:
        await self.reconcile_categories(categories)
        await self.reconcile_prompts(prompts)
        return self.report

    async def reconcile_categories(self, incoming: Iterable[Any]) -> None:
        outcome = self.report.categories
        for record in incoming:
            problems = records.category_problems(record)
            if problems:
                outcome.reject(f"Invalid category: {problems[0]}")
                continue

            try:
                async with self.store.savepoint():
                    decision = await self._reconcile_category(record)
            except RECORD_ERRORS as exc:
                logger.info("import_record_rejected entity=category name=%s error=%s", record["name"], exc)
                outcome.reject(f"Category '{record['name']}': {exc}")
                continue
            outcome.count(decision)

    async def reconcile_prompts(self, incoming: Iterable[Any]) -> None:
        outcome = self.report.prompts
        for record in incoming:
            problems = records.prompt_problems(record)
            if problems:
                outcome.reject(f"Invalid prompt: {problems[0]}")
                continue

            try:
                async with self.store.savepoint():
                    decision = await self._reconcile_prompt(record)
            except RECORD_ERRORS as exc:
                logger.info("import_record_rejected entity=prompt title=%s error=%s", record["title"], exc)
                outcome.reject(f"Prompt '{record['title']}': {exc}")
                continue
            outcome.count(decision)

    async def _category_table(self) -> Any:
        if not self.dry_run:
            return self.store.categories
        if self._dry_categories is None:
            self._dry_categories = DryRunCategories(await self.store.categories.list_all())
        return self._dry_categories

    async def _reconcile_category(self, record: dict[str, Any]) -> Decision:
        incoming_at = records.parse_timestamp(record.get("updatedAt"))
        categories = await self._category_table()

        existing = None
        if record.get("id"):
            existing = await categories.get_by_id(str(record["id"]))
        if existing is None:
            existing = await categories.find_by_name(record["name"])

        if existing is not None:
            self.identity.register(record, existing["id"])
            if not records.should_apply(incoming_at, existing.get("updated_at")):
                return Decision.SKIP
            await categories.update(
                existing["id"],
                name=record["name"],
                icon=record.get("icon"),
                color=record.get("color"),
            )
            return Decision.UPDATE

        created = await categories.create(
            name=record["name"],
            icon=record.get("icon") or DEFAULT_ICON,
            color=DEFAULT_COLOR if record.get("color") is None else record["color"],
        )
        self.identity.register(record, created["id"])
        return Decision.CREATE

    async def _translate_category(self, reference: Any) -> ResolvedId | None:
        if reference is None or reference == "":
            return None

        resolved = self.identity.translate(reference)
        if resolved is not None:
            return resolved

        # Not part of this import: must already exist in the store.
        category_id = str(reference)
        if not await self.store.categories.exists(category_id):
            raise errors.RecordRejectedError(f"category '{category_id}' does not exist")
        return category_id

    async def _reconcile_prompt(self, record: dict[str, Any]) -> Decision:
        incoming_at = records.parse_timestamp(record.get("updatedAt"))
        category_id = await self._translate_category(record.get("categoryId"))
        tags = record.get("tags") or []

        existing = None
        if record.get("id"):
            existing = await self.store.prompts.get_by_id(str(record["id"]))

        if existing is not None:
            prompt_id = str(existing["id"])
            stored_at = self._dry_prompt_writes.get(prompt_id, existing.get("updated_at"))
            if not records.should_apply(incoming_at, stored_at):
                return Decision.SKIP
            if self.dry_run:
                self._dry_prompt_writes[prompt_id] = datetime.now(timezone.utc)
            else:
                changes: dict[str, Any] = {"title": record["title"], "body": record["body"], "tags": tags}
                if "categoryId" in record:
                    changes["category_id"] = category_id
                if record.get("language"):
                    changes["language"] = record["language"]
                await self.store.prompts.update(prompt_id, changes)
            return Decision.UPDATE

        if not self.dry_run:
            await self.store.prompts.create(
                title=record["title"],
                body=record["body"],
                category_id=category_id,
                language=record.get("language") or DEFAULT_LANGUAGE,
                tags=tags,
            )
        return Decision.CREATE
