"""
Category persistence (raw SQL).
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from core import db, errors, pagination

DEFAULT_ICON = "folder"
DEFAULT_COLOR = 0xFF2196F3

_SELECT_WITH_COUNT = """
    SELECT c.id, c.name, c.icon, c.color, c.order_index, c.created_at, c.updated_at,
           (SELECT count(*) FROM prompts p WHERE p.category_id = c.id) AS prompt_count
    FROM categories c
"""


class CategoryRepository:
    """
    Category CRUD over an executor: the pool, or a connection inside a
    caller's transaction.
    """

    def __init__(self, conn: db.Executor):
        self.conn = conn

    async def get_by_id(self, category_id: str) -> dict[str, Any] | None:
        return await db.fetch_one(
            self.conn,
            _SELECT_WITH_COUNT + "WHERE c.id = $1",
            str(category_id),
        )

    async def find_by_name(self, name: str) -> dict[str, Any] | None:
        """
        Exact-name lookup. Names are unique by convention only, so the oldest
        row wins when there are duplicates.
        """
        return await db.fetch_one(
            self.conn,
            """
            SELECT id, name, icon, color, order_index, created_at, updated_at
            FROM categories
            WHERE name = $1
            ORDER BY created_at ASC, id ASC
            LIMIT 1
            """,
            name,
        )

    async def exists(self, category_id: str) -> bool:
        row = await db.fetch_one(
            self.conn,
            "SELECT 1 AS ok FROM categories WHERE id = $1 LIMIT 1",
            str(category_id),
        )
        return row is not None

    async def list_page(self, *, page: int = 1, limit: int = 50) -> dict[str, Any]:
        return await pagination.paginate(
            self.conn,
            _SELECT_WITH_COUNT + "ORDER BY c.order_index ASC, c.name ASC",
            "SELECT count(*) FROM categories",
            [],
            page=page,
            limit=limit,
        )

    async def list_all(self) -> list[dict[str, Any]]:
        return await db.fetch_all(
            self.conn,
            """
            SELECT id, name, icon, color, order_index, created_at, updated_at
            FROM categories
            ORDER BY order_index ASC, name ASC
            """,
        )

    async def with_prompt_counts(self) -> list[dict[str, Any]]:
        return await db.fetch_all(
            self.conn,
            _SELECT_WITH_COUNT + "ORDER BY c.order_index ASC, c.name ASC",
        )

    async def create(
        self,
        *,
        name: str,
        icon: str | None = None,
        color: int | None = None,
    ) -> dict[str, Any]:
        category_id = str(uuid4())
        row = await db.fetch_one(
            self.conn,
            """
            INSERT INTO categories (id, name, icon, color, order_index)
            VALUES ($1, $2, $3, $4, (SELECT COALESCE(max(order_index), -1) + 1 FROM categories))
            RETURNING id, name, icon, color, order_index, created_at, updated_at
            """,
            category_id,
            name,
            icon or DEFAULT_ICON,
            DEFAULT_COLOR if color is None else int(color),
        )
        if row is None:
            raise RuntimeError("Failed to create category.")
        row["prompt_count"] = 0
        return row

    async def update(
        self,
        category_id: str,
        *,
        name: str | None = None,
        icon: str | None = None,
        color: int | None = None,
    ) -> dict[str, Any]:
        assignments: list[str] = []
        args: list[Any] = []
        for column, value in (("name", name), ("icon", icon), ("color", color)):
            if value is None:
                continue
            args.append(int(value) if column == "color" else value)
            assignments.append(f"{column} = ${len(args)}")

        if not assignments:
            raise errors.InvalidOperationError("No fields to update")

        args.append(str(category_id))
        row = await db.fetch_one(
            self.conn,
            f"""
            UPDATE categories
            SET {", ".join(assignments)}, updated_at = now()
            WHERE id = ${len(args)}
            RETURNING id
            """,
            *args,
        )
        if row is None:
            raise errors.NotFoundError("Category", category_id)

        updated = await self.get_by_id(category_id)
        if updated is None:
            raise errors.NotFoundError("Category", category_id)
        return updated

    async def delete(self, category_id: str, *, move_to: str | None = None) -> None:
        """
        Delete a category. Its prompts are reassigned to `move_to` when given,
        otherwise detached (category_id = NULL). Never deletes prompts.
        """
        async with db.transaction(self.conn) as conn:
            if move_to:
                if str(move_to) == str(category_id):
                    raise errors.InvalidOperationError("Cannot move prompts to the category being deleted")
                target = await db.fetch_one(conn, "SELECT 1 AS ok FROM categories WHERE id = $1", str(move_to))
                if target is None:
                    raise errors.NotFoundError("Category", move_to)
                await db.execute(
                    conn,
                    "UPDATE prompts SET category_id = $1, updated_at = now() WHERE category_id = $2",
                    str(move_to),
                    str(category_id),
                )
            else:
                await db.execute(
                    conn,
                    "UPDATE prompts SET category_id = NULL, updated_at = now() WHERE category_id = $1",
                    str(category_id),
                )

            deleted = await db.execute(conn, "DELETE FROM categories WHERE id = $1", str(category_id))
            if deleted == 0:
                raise errors.NotFoundError("Category", category_id)

    async def reorder(self, orders: list[tuple[str, int]]) -> int:
        """
        Apply explicit (id, order_index) pairs in one unit. Returns rows touched.
        """
        if not orders:
            raise errors.InvalidOperationError("categoryOrders must be a non-empty array")

        touched = 0
        async with db.transaction(self.conn) as conn:
            for category_id, order_index in orders:
                touched += await db.execute(
                    conn,
                    "UPDATE categories SET order_index = $1, updated_at = now() WHERE id = $2",
                    int(order_index),
                    str(category_id),
                )
        return touched
