"""
Auth business logic.
"""

from __future__ import annotations

import logging
import os

from fastapi import HTTPException, status

from . import schemas, security
from .repository import UserRepository

logger = logging.getLogger(__name__)


def to_user_response(user_row: dict) -> schemas.UserResponse:
    return schemas.UserResponse(
        id=str(user_row["id"]),
        email=str(user_row["email"]),
        name=str(user_row["name"]),
        role=str(user_row["role"]),
        created_at=user_row["created_at"],
    )


async def login(repository: UserRepository, payload: schemas.LoginRequest) -> schemas.LoginResponse:
    user_row = await repository.get_user_by_email(payload.email)
    # Same answer for unknown email and wrong password.
    if user_row is None or not security.verify_password(payload.password, str(user_row.get("password_hash") or "")):
        logger.info("login_failed email=%s", payload.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password.")

    logger.info("login_succeeded user_id=%s role=%s", user_row["id"], user_row["role"])
    return schemas.LoginResponse(user=to_user_response(user_row), token=security.issue_access_token(user_row))


async def register(repository: UserRepository, payload: schemas.RegisterRequest) -> schemas.UserResponse:
    existing = await repository.get_user_by_email(payload.email)
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email is already registered.",
        )

    user_row = await repository.create_user(
        email=payload.email,
        password_hash=security.hash_password(payload.password),
        name=payload.name,
        role=payload.role,
    )
    logger.info("user_registered user_id=%s role=%s", user_row["id"], user_row["role"])
    return to_user_response(user_row)


async def update_profile(
    repository: UserRepository,
    current_user: dict,
    payload: schemas.UpdateProfileRequest,
) -> schemas.UserResponse:
    password_hash = None
    if payload.new_password:
        if not security.verify_password(payload.current_password or "", str(current_user.get("password_hash") or "")):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect.",
            )
        password_hash = security.hash_password(payload.new_password)

    if payload.email:
        other = await repository.get_user_by_email(payload.email)
        if other is not None and str(other["id"]) != str(current_user["id"]):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email is already registered.",
            )

    user_row = await repository.update_profile(
        str(current_user["id"]),
        name=payload.name,
        email=payload.email,
        password_hash=password_hash,
    )
    if user_row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return to_user_response(user_row)


async def list_users(repository: UserRepository) -> list[schemas.UserResponse]:
    return [to_user_response(row) for row in await repository.list_users()]


async def update_role(
    repository: UserRepository,
    user_id: str,
    payload: schemas.UpdateRoleRequest,
    *,
    current_user: dict,
) -> schemas.UserResponse:
    if str(user_id) == str(current_user["id"]) and payload.role != security.ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot demote themselves.",
        )

    user_row = await repository.update_role(user_id, payload.role)
    if user_row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    logger.info("user_role_updated user_id=%s role=%s", user_id, payload.role)
    return to_user_response(user_row)


async def get_user_from_access_token(repository: UserRepository, access_token: str) -> dict:
    """
    Resolve a bearer token to the current user row (role included).
    """
    try:
        claims = security.decode_access_token(access_token)
    except security.AuthSecurityError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    user_id = str(claims.get("sub") or "").strip()
    user_row = await repository.get_user_by_id(user_id) if user_id else None
    if user_row is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer exists.")
    return user_row


async def ensure_bootstrap_admin(repository: UserRepository) -> None:
    """
    Create the admin from ADMIN_EMAIL / ADMIN_PASSWORD on startup when absent.
    """
    email = os.environ.get("ADMIN_EMAIL", "").strip()
    password = os.environ.get("ADMIN_PASSWORD", "")
    if not email or not password:
        return None

    if await repository.get_user_by_email(email) is not None:
        return None

    name = os.environ.get("ADMIN_NAME", "").strip() or "System Administrator"
    row = await repository.create_user(
        email=email,
        password_hash=security.hash_password(password),
        name=name,
        role=security.ROLE_ADMIN,
    )
    logger.info("bootstrap_admin_created user_id=%s email=%s", row["id"], row["email"])
