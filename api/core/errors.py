"""
Domain errors shared by the store, the sync engine and the HTTP layer.

Infrastructure failures (pool exhausted, connection lost, query errors) are
not listed here: they stay asyncpg/OS exceptions and abort whatever
transaction is open.
"""

from __future__ import annotations


class NotFoundError(LookupError):
    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(RuntimeError):
    """Stored version is newer than the version the caller last saw."""

    def __init__(self, message: str = "Conflict: Server version is newer", *, current: object = None):
        super().__init__(message)
        self.current = current


class InvalidOperationError(ValueError):
    pass


class RecordRejectedError(ValueError):
    """A single row violated a store constraint; only that row is rolled back."""


class DatasetFormatError(ValueError):
    pass
