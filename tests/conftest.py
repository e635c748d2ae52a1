"""
Shared fixtures: an in-memory entity store and asyncpg connection doubles.
"""

from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from categories.repository import DEFAULT_COLOR, DEFAULT_ICON
from core import errors
from prompts.repository import DEFAULT_LANGUAGE, normalize_tags
from prompts.variables import parse_variables

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class StoreOutage(ConnectionError):
    """Injected infrastructure failure."""


class MemoryState:
    """
    Rows kept as plain dicts in the shape the repositories return.

    `clock` advances one second per write so `updated_at` values are ordered.
    `fail_on_prompt_create` makes the Nth prompt creation raise StoreOutage.
    """

    def __init__(self) -> None:
        self.categories: dict[str, dict[str, Any]] = {}
        self.prompts: dict[str, dict[str, Any]] = {}
        self.clock = T0
        self.writes = 0
        self.prompt_creates = 0
        self.fail_on_prompt_create: int | None = None

    def tick(self) -> datetime:
        self.clock += timedelta(seconds=1)
        self.writes += 1
        return self.clock

    def snapshot(self) -> tuple:
        return copy.deepcopy((self.categories, self.prompts))

    def restore(self, snap: tuple) -> None:
        self.categories, self.prompts = copy.deepcopy(snap)


class MemoryCategories:
    def __init__(self, state: MemoryState):
        self.state = state

    def _count(self, category_id: str) -> int:
        return sum(1 for p in self.state.prompts.values() if p["category_id"] == category_id)

    async def get_by_id(self, category_id: str) -> dict[str, Any] | None:
        row = self.state.categories.get(str(category_id))
        if row is None:
            return None
        return dict(row, prompt_count=self._count(row["id"]))

    async def find_by_name(self, name: str) -> dict[str, Any] | None:
        matches = [r for r in self.state.categories.values() if r["name"] == name]
        if not matches:
            return None
        return dict(min(matches, key=lambda r: r["created_at"]))

    async def exists(self, category_id: str) -> bool:
        return str(category_id) in self.state.categories

    async def list_all(self) -> list[dict[str, Any]]:
        rows = sorted(self.state.categories.values(), key=lambda r: (r["order_index"], r["name"]))
        return [dict(r) for r in rows]

    async def create(self, *, name: str, icon: str | None = None, color: int | None = None) -> dict[str, Any]:
        now = self.state.tick()
        order = max((r["order_index"] for r in self.state.categories.values()), default=-1) + 1
        row = {
            "id": str(uuid4()),
            "name": name,
            "icon": icon or DEFAULT_ICON,
            "color": DEFAULT_COLOR if color is None else color,
            "order_index": order,
            "created_at": now,
            "updated_at": now,
        }
        self.state.categories[row["id"]] = row
        return dict(row, prompt_count=0)

    async def update(
        self,
        category_id: str,
        *,
        name: str | None = None,
        icon: str | None = None,
        color: int | None = None,
    ) -> dict[str, Any]:
        fields = {k: v for k, v in (("name", name), ("icon", icon), ("color", color)) if v is not None}
        if not fields:
            raise errors.InvalidOperationError("No fields to update")
        row = self.state.categories.get(str(category_id))
        if row is None:
            raise errors.NotFoundError("Category", category_id)
        row.update(fields, updated_at=self.state.tick())
        return dict(row, prompt_count=self._count(row["id"]))


class MemoryPrompts:
    def __init__(self, state: MemoryState):
        self.state = state

    async def get_by_id(self, prompt_id: str) -> dict[str, Any] | None:
        row = self.state.prompts.get(str(prompt_id))
        return copy.deepcopy(row) if row else None

    async def list_all(self, *, category_id: str | None = None, limit: int = 10000) -> list[dict[str, Any]]:
        rows = [r for r in self.state.prompts.values() if not category_id or r["category_id"] == category_id]
        rows.sort(key=lambda r: r["updated_at"], reverse=True)
        return [copy.deepcopy(r) for r in rows[:limit]]

    def _check_category(self, category_id: str | None) -> None:
        if category_id and category_id not in self.state.categories:
            raise errors.NotFoundError("Category", category_id)

    async def create(
        self,
        *,
        title: str,
        body: str,
        category_id: str | None = None,
        language: str | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        self.state.prompt_creates += 1
        if self.state.fail_on_prompt_create == self.state.prompt_creates:
            raise StoreOutage("connection to store lost")
        self._check_category(category_id)

        now = self.state.tick()
        row = {
            "id": str(uuid4()),
            "title": title,
            "body": body,
            "category_id": category_id or None,
            "language": language or DEFAULT_LANGUAGE,
            "usage_count": 0,
            "tags": sorted(normalize_tags(tags)),
            "variables": parse_variables(body),
            "created_at": now,
            "updated_at": now,
        }
        self.state.prompts[row["id"]] = row
        return copy.deepcopy(row)

    async def update(
        self,
        prompt_id: str,
        changes: dict[str, Any],
        *,
        expected_updated_at: datetime | None = None,
    ) -> dict[str, Any]:
        row = self.state.prompts.get(str(prompt_id))
        if row is None:
            raise errors.NotFoundError("Prompt", prompt_id)
        if expected_updated_at is not None and row["updated_at"] > expected_updated_at:
            raise errors.ConflictError(current=row["updated_at"])

        if "category_id" in changes:
            self._check_category(changes["category_id"])
            row["category_id"] = changes["category_id"] or None
        for column in ("title", "body", "language"):
            if column in changes:
                row[column] = changes[column]
        if "body" in changes:
            row["variables"] = parse_variables(changes["body"])
        if "tags" in changes:
            row["tags"] = sorted(normalize_tags(changes["tags"]))
        row["updated_at"] = self.state.tick()
        return copy.deepcopy(row)


class MemoryEntityStore:
    """
    Stand-in for `transfer.store.EntityStore` with the same transaction
    semantics: a block that raises leaves the rows as they were.
    """

    def __init__(self, state: MemoryState | None = None):
        self.state = state or MemoryState()
        self.categories = MemoryCategories(self.state)
        self.prompts = MemoryPrompts(self.state)
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        snap = self.state.snapshot()
        try:
            yield self
        except BaseException:
            self.state.restore(snap)
            raise

    @asynccontextmanager
    async def savepoint(self):
        snap = self.state.snapshot()
        try:
            yield
        except BaseException:
            self.state.restore(snap)
            raise

    def add_category(self, name: str, *, updated_at: datetime = T0, **extra: Any) -> dict[str, Any]:
        row = {
            "id": extra.pop("id", str(uuid4())),
            "name": name,
            "icon": extra.pop("icon", DEFAULT_ICON),
            "color": extra.pop("color", DEFAULT_COLOR),
            "order_index": len(self.state.categories),
            "created_at": updated_at,
            "updated_at": updated_at,
        }
        self.state.categories[row["id"]] = row
        return row

    def add_prompt(self, title: str, body: str, *, updated_at: datetime = T0, **extra: Any) -> dict[str, Any]:
        row = {
            "id": extra.pop("id", str(uuid4())),
            "title": title,
            "body": body,
            "category_id": extra.pop("category_id", None),
            "language": extra.pop("language", DEFAULT_LANGUAGE),
            "usage_count": 0,
            "tags": sorted(extra.pop("tags", [])),
            "variables": parse_variables(body),
            "created_at": updated_at,
            "updated_at": updated_at,
        }
        self.state.prompts[row["id"]] = row
        return row


@pytest.fixture
def store() -> MemoryEntityStore:
    return MemoryEntityStore()


def mock_connection() -> MagicMock:
    """
    asyncpg.Connection double. `transaction()` is an async context manager
    that does not swallow exceptions.
    """
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="UPDATE 0")
    conn.executemany = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)

    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=None)
    tx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx)
    return conn


@pytest.fixture
def conn() -> MagicMock:
    return mock_connection()


@pytest.fixture(autouse=True)
def fast_auth_env(monkeypatch):
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("JWT_SECRET", "test-secret-key-with-at-least-32-bytes!!")
