"""
Async database access helpers (raw SQL) using asyncpg.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `api/main.py`).

Every helper takes an explicit executor: either the pool (each statement runs
on its own connection and commits immediately) or a connection that is already
inside a transaction. Repositories never reach for the pool on their own.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import errors

Executor = Union[asyncpg.Pool, asyncpg.Connection]

# Raised by Postgres for a single bad row (FK, unique, value too long, bad cast).
RECORD_LEVEL_ERRORS = (
    asyncpg.IntegrityConstraintViolationError,
    asyncpg.DataError,
)

_pool: asyncpg.Pool | None = None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def create_pool(dsn: str | None = None) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        dsn=dsn or database_url(),
        min_size=_env_int("DB_POOL_MIN_SIZE", 1),
        max_size=_env_int("DB_POOL_MAX_SIZE", 10),
        command_timeout=_env_int("DB_COMMAND_TIMEOUT_S", 30),
    )


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    _pool = await create_pool()


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


async def fetch_one(conn: Executor, sql: str, *args: Any) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    row = await conn.fetchrow(sql, *args)
    return _record_to_dict(row) if row is not None else None


async def fetch_all(conn: Executor, sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    rows = await conn.fetch(sql, *args)
    return [_record_to_dict(r) for r in rows]


async def fetch_value(conn: Executor, sql: str, *args: Any) -> Any:
    return await conn.fetchval(sql, *args)


async def execute(conn: Executor, sql: str, *args: Any) -> int:
    """
    Run a statement (INSERT/UPDATE/DELETE/DDL) and return the affected row count.

    asyncpg returns the command tag ("UPDATE 3", "INSERT 0 1"); the count is
    its last token. DDL tags carry no count and report 0.
    """
    status = await conn.execute(sql, *args)
    return affected_rows(status)


def affected_rows(status: str | None) -> int:
    tail = (status or "").rsplit(" ", 1)[-1]
    return int(tail) if tail.isdigit() else 0


@asynccontextmanager
async def transaction(conn: Executor) -> AsyncIterator[asyncpg.Connection]:
    """
    Open a transaction and yield the connection it runs on.

    Given the pool, a connection is acquired for the duration. Given a
    connection that is already in a transaction, asyncpg nests it as a
    savepoint, so multi-step repository operations compose with an outer
    import transaction.
    """
    if isinstance(conn, asyncpg.Pool):
        async with conn.acquire() as acquired:  # type: asyncpg.Connection
            async with acquired.transaction():
                yield acquired
        return

    async with conn.transaction():
        yield conn


@asynccontextmanager
async def record_unit(conn: Executor) -> AsyncIterator[None]:
    """
    Run one record's writes as an isolated unit.

    Constraint and data errors roll back only this unit and are re-raised as
    `RecordRejectedError`; everything else propagates unchanged.
    """
    try:
        if isinstance(conn, asyncpg.Pool):
            yield
        else:
            async with conn.transaction():
                yield
    except RECORD_LEVEL_ERRORS as exc:
        raise errors.RecordRejectedError(str(exc)) from exc
