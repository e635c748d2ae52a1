"""
Auth dependencies for FastAPI routes.

- `get_current_user`: requires a valid bearer token
- `get_optional_user`: public routes that behave the same with or without one
- `require_permission("write")`: role gate on top of `get_current_user`
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status

from core import db

from . import security, service
from .repository import UserRepository


def get_user_repository() -> UserRepository:
    return UserRepository(db.pool())


def _extract_bearer_token(authorization: str | None) -> str:
    raw = (authorization or "").strip()
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
        )

    parts = raw.split(" ", 1)
    if len(parts) != 2:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format.",
        )

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization must be: Bearer <token>.",
        )
    return token


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    return _extract_bearer_token(authorization)


async def get_current_user(
    access_token: str = Depends(get_bearer_token),
    repository: UserRepository = Depends(get_user_repository),
) -> dict:
    return await service.get_user_from_access_token(repository, access_token)


async def get_optional_user(
    authorization: str | None = Header(default=None),
    repository: UserRepository = Depends(get_user_repository),
) -> dict | None:
    # A bad token on a public route is treated as anonymous.
    if not (authorization or "").strip():
        return None
    try:
        token = _extract_bearer_token(authorization)
        return await service.get_user_from_access_token(repository, token)
    except HTTPException:
        return None


def require_permission(permission: str) -> Callable[..., Awaitable[dict]]:
    async def dependency(current_user: dict = Depends(get_current_user)) -> dict:
        if not security.has_permission(current_user.get("role"), permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions.",
            )
        return current_user

    return dependency
