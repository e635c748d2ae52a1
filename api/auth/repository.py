"""
User persistence helpers.
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from core import db

_USER_COLUMNS = "id, email, password_hash, name, role, created_at, updated_at"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserRepository:
    def __init__(self, conn: db.Executor):
        self.conn = conn

    async def create_user(self, *, email: str, password_hash: str, name: str, role: str) -> dict[str, Any]:
        row = await db.fetch_one(
            self.conn,
            f"""
            INSERT INTO users (id, email, password_hash, name, role)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {_USER_COLUMNS}
            """,
            str(uuid4()),
            normalize_email(email),
            password_hash,
            name,
            role,
        )
        if row is None:
            raise RuntimeError("Failed to create user.")
        return row

    async def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        return await db.fetch_one(
            self.conn,
            f"""
            SELECT {_USER_COLUMNS}
            FROM users
            WHERE lower(email) = lower($1)
            """,
            normalize_email(email),
        )

    async def get_user_by_id(self, user_id: str) -> dict[str, Any] | None:
        return await db.fetch_one(
            self.conn,
            f"""
            SELECT {_USER_COLUMNS}
            FROM users
            WHERE id = $1
            """,
            str(user_id),
        )

    async def list_users(self) -> list[dict[str, Any]]:
        return await db.fetch_all(
            self.conn,
            f"""
            SELECT {_USER_COLUMNS}
            FROM users
            ORDER BY created_at ASC
            """,
        )

    async def update_profile(
        self,
        user_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        password_hash: str | None = None,
    ) -> dict[str, Any] | None:
        return await db.fetch_one(
            self.conn,
            f"""
            UPDATE users
            SET name = COALESCE($2, name),
                email = COALESCE($3, email),
                password_hash = COALESCE($4, password_hash),
                updated_at = now()
            WHERE id = $1
            RETURNING {_USER_COLUMNS}
            """,
            str(user_id),
            name,
            normalize_email(email) if email else None,
            password_hash,
        )

    async def update_role(self, user_id: str, role: str) -> dict[str, Any] | None:
        return await db.fetch_one(
            self.conn,
            f"""
            UPDATE users
            SET role = $2,
                updated_at = now()
            WHERE id = $1
            RETURNING {_USER_COLUMNS}
            """,
            str(user_id),
            role,
        )
