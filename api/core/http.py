"""
Mapping from domain errors to HTTP responses.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status

from . import errors


@contextmanager
def domain_errors() -> Iterator[None]:
    """
    Translate store errors raised inside the block into HTTPException.

    Anything not listed (asyncpg/OS failures) propagates and becomes a 500.
    """
    try:
        yield
    except errors.NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except errors.ConflictError as exc:
        current = exc.current.isoformat() if hasattr(exc.current, "isoformat") else exc.current
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "type": "conflict", "serverUpdatedAt": current},
        ) from exc
    except (errors.InvalidOperationError, errors.DatasetFormatError, errors.RecordRejectedError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
