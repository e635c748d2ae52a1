"""
Prompt persistence (raw SQL).

A prompt row owns two side tables:
- `prompt_variables`: placeholder names derived from the body, in order
- `prompt_tags`: links into the shared `tags` vocabulary

Both are rewritten in the same transaction as the prompt row itself.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import asyncpg

from core import db, errors, pagination

from .variables import parse_variables

DEFAULT_LANGUAGE = "en"
BULK_OPERATIONS = ("delete", "move_category")
SORT_COLUMNS = {
    "updated_at": "p.updated_at",
    "created_at": "p.created_at",
    "title": "p.title",
    "usage_count": "p.usage_count",
}
UPDATABLE_COLUMNS = ("title", "body", "category_id", "language")

_SELECT_PROMPT = """
    SELECT
      p.id,
      p.title,
      p.body,
      p.category_id,
      p.language,
      p.usage_count,
      p.created_at,
      p.updated_at,
      c.name AS category_name,
      c.color AS category_color,
      c.icon AS category_icon,
      COALESCE(
        (SELECT array_agg(t.name::text ORDER BY t.name)
         FROM prompt_tags pt
         JOIN tags t ON t.id = pt.tag_id
         WHERE pt.prompt_id = p.id),
        '{}'::text[]
      ) AS tags,
      COALESCE(
        (SELECT array_agg(pv.variable_name::text ORDER BY pv.position)
         FROM prompt_variables pv
         WHERE pv.prompt_id = p.id),
        '{}'::text[]
      ) AS variables
    FROM prompts p
    LEFT JOIN categories c ON c.id = p.category_id
"""


def normalize_tags(tags: list[str] | None) -> list[str]:
    """
    Trim, drop empties, dedupe (first occurrence wins).
    """
    seen: dict[str, None] = {}
    for tag in tags or []:
        name = str(tag).strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _shape(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    row["tags"] = list(row.get("tags") or [])
    row["variables"] = list(row.get("variables") or [])
    return row


async def _fetch_prompt(conn: db.Executor, prompt_id: str) -> dict[str, Any] | None:
    row = await db.fetch_one(conn, _SELECT_PROMPT + "WHERE p.id = $1", str(prompt_id))
    return _shape(row)


async def _require_category(conn: db.Executor, category_id: Any) -> None:
    found = await db.fetch_one(conn, "SELECT 1 AS ok FROM categories WHERE id = $1", str(category_id))
    if found is None:
        raise errors.NotFoundError("Category", category_id)


async def _save_variables(conn: asyncpg.Connection, prompt_id: str, body: str) -> list[str]:
    await conn.execute("DELETE FROM prompt_variables WHERE prompt_id = $1", prompt_id)
    variables = parse_variables(body)
    if variables:
        await conn.executemany(
            "INSERT INTO prompt_variables (prompt_id, variable_name, position) VALUES ($1, $2, $3)",
            [(prompt_id, name, i) for i, name in enumerate(variables)],
        )
    return variables


async def _replace_tags(conn: asyncpg.Connection, prompt_id: str, tags: list[str] | None) -> list[str]:
    await conn.execute("DELETE FROM prompt_tags WHERE prompt_id = $1", prompt_id)
    names = normalize_tags(tags)
    if not names:
        return names

    # Idempotent upsert: concurrent writers introducing the same tag both succeed.
    await conn.execute(
        """
        INSERT INTO tags (name)
        SELECT DISTINCT unnest($1::text[])
        ON CONFLICT (name) DO NOTHING
        """,
        names,
    )
    await conn.execute(
        """
        INSERT INTO prompt_tags (prompt_id, tag_id)
        SELECT $1, t.id
        FROM tags t
        WHERE t.name = ANY($2::text[])
        ON CONFLICT DO NOTHING
        """,
        prompt_id,
        names,
    )
    return names


class PromptRepository:
    """
    Prompt CRUD over an executor: the pool, or a connection inside a
    caller's transaction. Multi-statement operations open their own
    (nested) transaction on top of whatever the caller holds.
    """

    def __init__(self, conn: db.Executor):
        self.conn = conn

    async def get_by_id(self, prompt_id: str) -> dict[str, Any] | None:
        return await _fetch_prompt(self.conn, prompt_id)

    async def list_page(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        category_id: str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
        exclude_tags: list[str] | None = None,
        updated_after: datetime | None = None,
        sort_by: str = "updated_at",
        sort_order: str = "DESC",
    ) -> dict[str, Any]:
        clauses: list[str] = []
        args: list[Any] = []

        if category_id:
            args.append(str(category_id))
            clauses.append(f"p.category_id = ${len(args)}")

        search = (search or "").strip()
        if search:
            args.append(search)
            n = len(args)
            clauses.append(
                f"(p.tsv @@ websearch_to_tsquery('simple', ${n})"
                f" OR p.title ILIKE ('%' || ${n} || '%')"
                f" OR p.body ILIKE ('%' || ${n} || '%'))"
            )

        if updated_after is not None:
            args.append(_as_utc(updated_after))
            clauses.append(f"p.updated_at > ${len(args)}")

        include = normalize_tags(tags)
        if include:
            args.append(include)
            clauses.append(
                f"""p.id IN (
                  SELECT pt.prompt_id FROM prompt_tags pt
                  JOIN tags t ON t.id = pt.tag_id
                  WHERE t.name = ANY(${len(args)}::text[])
                )"""
            )

        exclude = normalize_tags(exclude_tags)
        if exclude:
            args.append(exclude)
            clauses.append(
                f"""p.id NOT IN (
                  SELECT pt.prompt_id FROM prompt_tags pt
                  JOIN tags t ON t.id = pt.tag_id
                  WHERE t.name = ANY(${len(args)}::text[])
                )"""
            )

        where = f"WHERE {' AND '.join(clauses)}\n" if clauses else ""
        column = SORT_COLUMNS.get(sort_by, SORT_COLUMNS["updated_at"])
        direction = "ASC" if str(sort_order).upper() == "ASC" else "DESC"

        result = await pagination.paginate(
            self.conn,
            _SELECT_PROMPT + where + f"ORDER BY {column} {direction}, p.id ASC",
            "SELECT count(*) FROM prompts p\n" + where,
            args,
            page=page,
            limit=limit,
        )
        result["data"] = [_shape(row) for row in result["data"]]
        return result

    async def list_all(self, *, category_id: str | None = None, limit: int = 10000) -> list[dict[str, Any]]:
        """
        Unpaginated listing for export, newest first.
        """
        if category_id:
            rows = await db.fetch_all(
                self.conn,
                _SELECT_PROMPT + "WHERE p.category_id = $1 ORDER BY p.updated_at DESC, p.id ASC LIMIT $2",
                str(category_id),
                limit,
            )
        else:
            rows = await db.fetch_all(
                self.conn,
                _SELECT_PROMPT + "ORDER BY p.updated_at DESC, p.id ASC LIMIT $1",
                limit,
            )
        return [_shape(row) for row in rows]

    async def create(
        self,
        *,
        title: str,
        body: str,
        category_id: str | None = None,
        language: str | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        prompt_id = str(uuid4())
        async with db.transaction(self.conn) as conn:
            if category_id:
                await _require_category(conn, category_id)
            await conn.execute(
                """
                INSERT INTO prompts (id, title, body, category_id, language)
                VALUES ($1, $2, $3, $4, $5)
                """,
                prompt_id,
                title,
                body,
                str(category_id) if category_id else None,
                language or DEFAULT_LANGUAGE,
            )
            await _save_variables(conn, prompt_id, body)
            await _replace_tags(conn, prompt_id, tags)
            created = await _fetch_prompt(conn, prompt_id)

        if created is None:
            raise RuntimeError("Failed to create prompt.")
        return created

    async def update(
        self,
        prompt_id: str,
        changes: dict[str, Any],
        *,
        expected_updated_at: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Partial update. Only keys present in `changes` are written; a present
        `category_id` of None detaches the prompt. Variables are re-derived
        only when `body` is present, tags replaced only when `tags` is present.

        With `expected_updated_at`, a stored version strictly newer than it
        raises ConflictError instead of overwriting.
        """
        columns = [c for c in UPDATABLE_COLUMNS if c in changes]
        if not columns and "tags" not in changes:
            raise errors.InvalidOperationError("No fields to update")

        prompt_id = str(prompt_id)
        async with db.transaction(self.conn) as conn:
            current = await conn.fetchrow(
                "SELECT updated_at FROM prompts WHERE id = $1 FOR UPDATE",
                prompt_id,
            )
            if current is None:
                raise errors.NotFoundError("Prompt", prompt_id)

            if expected_updated_at is not None and current["updated_at"] is not None:
                if current["updated_at"] > _as_utc(expected_updated_at):
                    raise errors.ConflictError(current=current["updated_at"])

            if changes.get("category_id"):
                await _require_category(conn, changes["category_id"])

            args: list[Any] = []
            assignments: list[str] = []
            for column in columns:
                value = changes[column]
                if column == "category_id":
                    value = str(value) if value else None
                elif column == "language":
                    value = value or DEFAULT_LANGUAGE
                args.append(value)
                assignments.append(f"{column} = ${len(args)}")

            args.append(prompt_id)
            await conn.execute(
                f"""
                UPDATE prompts
                SET {", ".join(assignments + ["updated_at = now()"])}
                WHERE id = ${len(args)}
                """,
                *args,
            )

            if "body" in changes:
                await _save_variables(conn, prompt_id, changes["body"])
            if "tags" in changes:
                await _replace_tags(conn, prompt_id, changes["tags"])

            updated = await _fetch_prompt(conn, prompt_id)

        if updated is None:
            raise errors.NotFoundError("Prompt", prompt_id)
        return updated

    async def delete(self, prompt_id: str) -> None:
        prompt_id = str(prompt_id)
        async with db.transaction(self.conn) as conn:
            await db.execute(conn, "DELETE FROM prompt_tags WHERE prompt_id = $1", prompt_id)
            await db.execute(conn, "DELETE FROM prompt_variables WHERE prompt_id = $1", prompt_id)
            deleted = await db.execute(conn, "DELETE FROM prompts WHERE id = $1", prompt_id)
            if deleted == 0:
                raise errors.NotFoundError("Prompt", prompt_id)

    async def bulk(self, operation: str, prompt_ids: list[str], data: dict[str, Any] | None = None) -> int:
        """
        Apply one bulk operation to many prompts in one unit. Returns the
        number of rows affected. Unknown operations are rejected before any
        statement runs.
        """
        if operation not in BULK_OPERATIONS:
            raise errors.InvalidOperationError("Invalid bulk operation")
        ids = [str(i) for i in prompt_ids or []]
        if not ids:
            raise errors.InvalidOperationError("promptIds must be a non-empty array")

        data = data or {}
        async with db.transaction(self.conn) as conn:
            if operation == "delete":
                await db.execute(conn, "DELETE FROM prompt_tags WHERE prompt_id = ANY($1::varchar[])", ids)
                await db.execute(conn, "DELETE FROM prompt_variables WHERE prompt_id = ANY($1::varchar[])", ids)
                return await db.execute(conn, "DELETE FROM prompts WHERE id = ANY($1::varchar[])", ids)

            target = data.get("categoryId") or data.get("category_id")
            if not target:
                raise errors.InvalidOperationError("Category ID required for move operation")
            await _require_category(conn, target)
            return await db.execute(
                conn,
                """
                UPDATE prompts
                SET category_id = $1, updated_at = now()
                WHERE id = ANY($2::varchar[])
                """,
                str(target),
                ids,
            )

    async def increment_usage(self, prompt_id: str) -> None:
        touched = await db.execute(
            self.conn,
            """
            UPDATE prompts
            SET usage_count = usage_count + 1,
                updated_at = now()
            WHERE id = $1
            """,
            str(prompt_id),
        )
        if touched == 0:
            raise errors.NotFoundError("Prompt", prompt_id)

    async def recently_used(self, *, limit: int = 10) -> list[dict[str, Any]]:
        rows = await db.fetch_all(
            self.conn,
            _SELECT_PROMPT + "WHERE p.usage_count > 0 ORDER BY p.updated_at DESC LIMIT $1",
            limit,
        )
        return [_shape(row) for row in rows]

    async def duplicate(self, prompt_id: str, *, title: str | None = None) -> dict[str, Any]:
        original = await self.get_by_id(prompt_id)
        if original is None:
            raise errors.NotFoundError("Prompt", prompt_id)
        return await self.create(
            title=title or f"{original['title']} (Copy)",
            body=original["body"],
            category_id=original["category_id"],
            language=original["language"],
            tags=original["tags"],
        )

    async def list_tags(self, *, search: str = "", limit: int = 100) -> list[dict[str, Any]]:
        q = (search or "").strip()
        return await db.fetch_all(
            self.conn,
            """
            SELECT t.name, count(pt.prompt_id) AS prompt_count
            FROM tags t
            LEFT JOIN prompt_tags pt ON pt.tag_id = t.id
            WHERE $1 = '' OR t.name ILIKE ('%' || $1 || '%')
            GROUP BY t.id, t.name
            ORDER BY prompt_count DESC, t.name ASC
            LIMIT $2
            """,
            q,
            limit,
        )
