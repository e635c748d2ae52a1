"""
Auth API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from . import dependencies, schemas, service
from .repository import UserRepository

router = APIRouter(prefix="/auth")


@router.post("/login")
async def login(
    payload: schemas.LoginRequest,
    repository: UserRepository = Depends(dependencies.get_user_repository),
) -> dict:
    result = await service.login(repository, payload)
    return {"success": True, "data": result.model_dump(), "message": "Login successful"}


@router.get("/me")
async def me(current_user: dict = Depends(dependencies.get_current_user)) -> dict:
    return {"success": True, "data": service.to_user_response(current_user).model_dump()}


@router.put("/profile")
async def update_profile(
    payload: schemas.UpdateProfileRequest,
    current_user: dict = Depends(dependencies.get_current_user),
    repository: UserRepository = Depends(dependencies.get_user_repository),
) -> dict:
    user = await service.update_profile(repository, current_user, payload)
    return {"success": True, "data": user.model_dump(), "message": "Profile updated successfully"}


@router.post("/register", status_code=201)
async def register(
    payload: schemas.RegisterRequest,
    _: dict = Depends(dependencies.require_permission("manage_users")),
    repository: UserRepository = Depends(dependencies.get_user_repository),
) -> dict:
    user = await service.register(repository, payload)
    return {"success": True, "data": user.model_dump(), "message": "User registered successfully"}


@router.get("/users")
async def list_users(
    _: dict = Depends(dependencies.require_permission("manage_users")),
    repository: UserRepository = Depends(dependencies.get_user_repository),
) -> dict:
    users = await service.list_users(repository)
    return {"success": True, "data": [u.model_dump() for u in users], "count": len(users)}


@router.put("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    payload: schemas.UpdateRoleRequest,
    current_user: dict = Depends(dependencies.require_permission("manage_users")),
    repository: UserRepository = Depends(dependencies.get_user_repository),
) -> dict:
    user = await service.update_role(repository, user_id, payload, current_user=current_user)
    return {"success": True, "data": user.model_dump(), "message": "User role updated successfully"}
