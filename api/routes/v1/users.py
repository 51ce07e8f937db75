"""
api/routes/v1/users.py -- User administration (admin only).

Routes:
  GET    /api/v1/users        -- paginated list, newest first
  GET    /api/v1/users/{id}   -- one user
  POST   /api/v1/users        -- create a password user
  PUT    /api/v1/users/{id}   -- partial update of name/email/role
  DELETE /api/v1/users/{id}   -- delete user and its sessions, tokens, OAuth links

Guards:
  An admin cannot delete their own account (400 self_delete).
  The last admin can be neither deleted nor demoted (409 last_admin).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from api.models import (
    ApiResponse,
    DeletedResponse,
    UserCreate,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from auth.dependencies import get_auth_manager, require_admin
from auth.errors import LastAdminError, NotFoundError, ValidationError
from auth.manager import AuthManager
from auth.models import ROLES, User

logger = logging.getLogger("static_admin.api.users")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20

router = APIRouter()


def _positive_int(value: Optional[str], default: int) -> int:
    """Parse a pagination query value; anything unusable falls back to default."""
    try:
        parsed = int(value) if value is not None else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _check_role(role: Optional[str]) -> None:
    if role is not None and role not in ROLES:
        raise ValidationError("Invalid role. Must be admin or editor")


@router.get("/users", response_model=ApiResponse[UserListResponse])
def list_users(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    _admin: User = Depends(require_admin),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[UserListResponse]:
    result = auth.list_users(page=_positive_int(page, DEFAULT_PAGE), limit=_positive_int(limit, DEFAULT_LIMIT))
    return ApiResponse(data=UserListResponse.from_page(result))


@router.get("/users/{user_id}", response_model=ApiResponse[UserResponse])
def get_user(
    user_id: int,
    _admin: User = Depends(require_admin),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[UserResponse]:
    user = auth.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return ApiResponse(data=UserResponse.from_user(user))


@router.post("/users", response_model=ApiResponse[UserResponse], status_code=201)
def create_user(
    body: UserCreate,
    admin: User = Depends(require_admin),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[UserResponse]:
    if not body.email or not body.password:
        raise ValidationError("Email and password are required")
    _check_role(body.role)

    if auth.get_user_by_email(body.email) is not None:
        raise HTTPException(
            status_code=409,
            detail={"code": "email_exists", "message": "A user with this email already exists"},
        )

    user = auth.create_user(body.email, body.password, body.name, role=body.role or "editor")
    logger.info("Admin id=%d created user id=%d", admin.id, user.id)
    return ApiResponse(data=UserResponse.from_user(user))


@router.put("/users/{user_id}", response_model=ApiResponse[UserResponse])
def update_user(
    user_id: int,
    body: UserUpdate,
    _admin: User = Depends(require_admin),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[UserResponse]:
    """Passwords are not changed here; users go through change-password or reset."""
    _check_role(body.role)
    user = auth.update_user(user_id, name=body.name, email=body.email, role=body.role)
    return ApiResponse(data=UserResponse.from_user(user))


@router.delete("/users/{user_id}", response_model=ApiResponse[DeletedResponse])
def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    auth: AuthManager = Depends(get_auth_manager),
) -> ApiResponse[DeletedResponse]:
    if admin.id == user_id:
        raise ValidationError("Cannot delete your own account", code="self_delete")

    target = auth.get_user_by_id(user_id)
    if target is None:
        raise NotFoundError("User not found")

    if target.role == "admin" and auth.count_users_by_role("admin") <= 1:
        logger.warning("Rejected deletion of last admin user id=%d", user_id)
        raise LastAdminError("Cannot delete the last admin user")

    auth.delete_user(user_id)
    logger.info("Admin id=%d deleted user id=%d", admin.id, user_id)
    return ApiResponse(data=DeletedResponse())
