"""
Auth API schemas (request/response models).
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["admin", "editor", "viewer"]


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    role: Role = "viewer"


class UpdateProfileRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=255)
    current_password: str | None = Field(default=None, alias="currentPassword", min_length=6)
    new_password: str | None = Field(default=None, alias="newPassword", min_length=6, max_length=128)


class UpdateRoleRequest(BaseModel):
    role: Role


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    created_at: datetime


class LoginResponse(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"
