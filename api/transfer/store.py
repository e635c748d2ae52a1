"""
Entity store handed to the import/export engine.

Bundles the category and prompt repositories over one executor so the
engine can run every write of an import on the same transaction.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from categories.repository import CategoryRepository
from core import db
from prompts.repository import PromptRepository


class EntityStore:
    def __init__(self, conn: db.Executor):
        self.conn = conn
        self.categories = CategoryRepository(conn)
        self.prompts = PromptRepository(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["EntityStore"]:
        """
        Yield a store bound to a single transaction. Commits when the block
        exits normally, rolls back when it raises.
        """
        async with db.transaction(self.conn) as conn:
            yield EntityStore(conn)

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """
        Per-record unit of work; a constraint violation inside rolls back just
        this record and surfaces as RecordRejectedError.
        """
        async with db.record_unit(self.conn):
            yield
