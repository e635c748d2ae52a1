"""
Paginated listing helper used by the plain listing endpoints.
"""

from __future__ import annotations

import math
from typing import Any

from . import db


def page_bounds(page: int, limit: int) -> tuple[int, int]:
    page = max(int(page), 1)
    limit = max(int(limit), 1)
    return page, limit


async def paginate(
    conn: db.Executor,
    base_sql: str,
    count_sql: str,
    args: list[Any],
    *,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """
    Run `count_sql` for the total and `base_sql` with LIMIT/OFFSET appended.

    Both queries receive the same positional `args`; the page query gets
    limit and offset as the next two placeholders.
    """
    page, limit = page_bounds(page, limit)
    total = int(await db.fetch_value(conn, count_sql, *args) or 0)

    n = len(args)
    rows = await db.fetch_all(
        conn,
        f"{base_sql}\nLIMIT ${n + 1} OFFSET ${n + 2}",
        *args,
        limit,
        (page - 1) * limit,
    )
    return {
        "data": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }
