from datetime import datetime, timezone
from unittest.mock import AsyncMock

import jwt
import pytest
from fastapi import HTTPException

from auth import schemas, security, service

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def user_row(**overrides):
    row = {
        "id": "u-1",
        "email": "admin@example.com",
        "name": "Admin",
        "role": "admin",
        "password_hash": security.hash_password("secret-pass"),
        "created_at": CREATED,
    }
    row.update(overrides)
    return row


def repository(**methods):
    repo = AsyncMock()
    for name, value in methods.items():
        getattr(repo, name).return_value = value
    return repo


class TestPermissions:
    @pytest.mark.parametrize(
        "role, permission, allowed",
        [
            ("admin", "manage_users", True),
            ("admin", "delete", True),
            ("editor", "write", True),
            ("editor", "delete", True),
            ("editor", "manage_users", False),
            ("viewer", "read", True),
            ("viewer", "write", False),
            (None, "read", False),
            ("owner", "read", False),
        ],
    )
    def test_role_matrix(self, role, permission, allowed):
        assert security.has_permission(role, permission) is allowed


class TestPasswordsAndTokens:
    def test_hash_and_verify(self):
        hashed = security.hash_password("correct horse")
        assert security.verify_password("correct horse", hashed) is True
        assert security.verify_password("wrong horse", hashed) is False
        assert security.verify_password("correct horse", "not-a-hash") is False

    def test_empty_password_is_refused(self):
        with pytest.raises(security.AuthSecurityError):
            security.hash_password("")

    def test_token_round_trip(self):
        token = security.issue_access_token(user_row(role="editor"))
        payload = security.decode_access_token(token)
        assert payload["sub"] == "u-1"
        assert payload["email"] == "admin@example.com"
        assert payload["role"] == "editor"
        assert payload["exp"] - payload["iat"] == 7 * 24 * 60 * 60

    def test_expired_token(self):
        token = security.issue_access_token(user_row(), now=CREATED)
        with pytest.raises(security.AuthSecurityError, match="expired"):
            security.decode_access_token(token)

    def test_wrong_token_type(self):
        token = jwt.encode({"sub": "u-1", "type": "refresh"}, security.jwt_secret(), algorithm="HS256")
        with pytest.raises(security.AuthSecurityError, match="not an access token"):
            security.decode_access_token(token)


class TestService:
    async def test_login_returns_token_for_valid_credentials(self):
        repo = repository(get_user_by_email=user_row())

        result = await service.login(repo, schemas.LoginRequest(email="admin@example.com", password="secret-pass"))

        assert result.user.role == "admin"
        assert security.decode_access_token(result.token)["sub"] == "u-1"

    async def test_login_rejects_bad_password(self):
        repo = repository(get_user_by_email=user_row())
        with pytest.raises(HTTPException) as info:
            await service.login(repo, schemas.LoginRequest(email="admin@example.com", password="nope-nope"))
        assert info.value.status_code == 401

    async def test_register_duplicate_email(self):
        repo = repository(get_user_by_email=user_row())
        payload = schemas.RegisterRequest(email="admin@example.com", password="secret-pass", name="X")
        with pytest.raises(HTTPException) as info:
            await service.register(repo, payload)
        assert info.value.status_code == 409
        repo.create_user.assert_not_awaited()

    async def test_admin_cannot_demote_self(self):
        repo = repository()
        with pytest.raises(HTTPException) as info:
            await service.update_role(
                repo, "u-1", schemas.UpdateRoleRequest(role="viewer"), current_user=user_row()
            )
        assert info.value.status_code == 400
        repo.update_role.assert_not_awaited()

    async def test_token_for_deleted_user(self):
        repo = repository(get_user_by_id=None)
        token = security.issue_access_token(user_row())
        with pytest.raises(HTTPException) as info:
            await service.get_user_from_access_token(repo, token)
        assert info.value.status_code == 401

    async def test_bootstrap_admin_created_once(self, monkeypatch):
        monkeypatch.setenv("ADMIN_EMAIL", "root@example.com")
        monkeypatch.setenv("ADMIN_PASSWORD", "bootstrap-pass")
        repo = repository(get_user_by_email=None, create_user=user_row(email="root@example.com"))

        await service.ensure_bootstrap_admin(repo)

        kwargs = repo.create_user.await_args.kwargs
        assert kwargs["email"] == "root@example.com"
        assert kwargs["role"] == "admin"
        assert security.verify_password("bootstrap-pass", kwargs["password_hash"])

    async def test_bootstrap_skipped_without_env(self, monkeypatch):
        monkeypatch.delenv("ADMIN_EMAIL", raising=False)
        monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
        repo = repository()

        await service.ensure_bootstrap_admin(repo)

        repo.get_user_by_email.assert_not_awaited()
