"""
Roles, password hashing and bearer tokens.

Tokens are stateless HS256 JWTs carrying the user's id, email and role; the
role is re-read from the database on every request, so a demoted user loses
access as soon as their row changes.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "dev-change-this-secret"
TOKEN_TYPE = "access"


class AuthSecurityError(RuntimeError):
    pass


ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"
ROLE_VIEWER = "viewer"
ROLES = (ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER)

PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_ADMIN: frozenset({"read", "write", "delete", "manage_users"}),
    ROLE_EDITOR: frozenset({"read", "write", "delete"}),
    ROLE_VIEWER: frozenset({"read"}),
}


def has_permission(role: str | None, permission: str) -> bool:
    return permission in PERMISSIONS.get(str(role or ""), frozenset())


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def jwt_secret() -> str:
    secret = os.environ.get("JWT_SECRET", "").strip()
    if not secret:
        logger.warning("jwt_secret_default_in_use set JWT_SECRET in production")
        return DEV_JWT_SECRET
    return secret


def jwt_algorithm() -> str:
    return os.environ.get("JWT_ALG", "").strip() or "HS256"


def token_lifetime() -> timedelta:
    # Mobile and CMS clients keep a session for a week by default.
    return timedelta(minutes=_env_int("ACCESS_TOKEN_EXPIRE_MIN", 7 * 24 * 60))


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise AuthSecurityError("Password is empty.")
    salt = bcrypt.gensalt(rounds=_env_int("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def issue_access_token(user: dict[str, Any], *, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": str(user["id"]),
        "email": str(user["email"]),
        "role": str(user["role"]),
        "type": TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + token_lifetime(),
    }
    return jwt.encode(claims, jwt_secret(), algorithm=jwt_algorithm())


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify signature, expiry and token type; return the claims.

    Raises AuthSecurityError with a client-safe message on any failure.
    """
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError("Access token is empty.")

    try:
        claims = jwt.decode(raw, jwt_secret(), algorithms=[jwt_algorithm()])
    except jwt.ExpiredSignatureError as exc:
        raise AuthSecurityError("Access token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError("Invalid access token.") from exc

    if str(claims.get("type") or "").lower() != TOKEN_TYPE:
        raise AuthSecurityError("Token is not an access token.")
    return claims
