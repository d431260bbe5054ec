"""
api/routes/v1/admin.py -- User management endpoints (admin only).

Routes:
  GET  /api/v1/admin/users                 -- list users (no password hashes)
  POST /api/v1/admin/users                 -- create user with a temporary password
  POST /api/v1/admin/users/reset-password  -- set a provisional password
  POST /api/v1/admin/users/delete          -- hard-delete a user

Every route depends on require_admin. A missing session and a non-admin
session both produce the same 403, so a caller cannot probe roles.
The temporary password in create/reset responses is returned once and is
not retrievable afterwards.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import (
    AdminCreateUserRequest,
    AdminDeleteUserRequest,
    AdminResetPasswordRequest,
    MessageResponse,
    TempPasswordResponse,
    UserResponse,
)
from auth.dependencies import get_workflow, require_admin
from auth.models import User

router = APIRouter()


@router.get("/admin/users", response_model=list[UserResponse])
def list_users(request: Request, admin: User = Depends(require_admin)) -> list[UserResponse]:
    """List all user accounts ordered by email."""
    users = get_workflow(request).list_users(admin)
    return [UserResponse.from_user(u) for u in users]


@router.post("/admin/users", response_model=TempPasswordResponse, status_code=201)
def create_user(
    request: Request,
    response: Response,
    body: AdminCreateUserRequest,
    admin: User = Depends(require_admin),
) -> TempPasswordResponse:
    """Create a user. A temporary password is generated when none is supplied."""
    response.headers["Cache-Control"] = "no-store"
    user, temp_password = get_workflow(request).admin_create_user(
        admin,
        name=body.name,
        email=body.email,
        role=body.role.value,
        temp_password=body.temp_password,
        requires_password_change=body.requires_password_change,
    )
    return TempPasswordResponse(user=UserResponse.from_user(user), temp_password=temp_password)


@router.post("/admin/users/reset-password", response_model=TempPasswordResponse)
def reset_password(
    request: Request,
    response: Response,
    body: AdminResetPasswordRequest,
    admin: User = Depends(require_admin),
) -> TempPasswordResponse:
    """Set a provisional password. The user must change it at next sign-in."""
    response.headers["Cache-Control"] = "no-store"
    user, temp_password = get_workflow(request).admin_reset_password(admin, body.user_id, body.new_password)
    return TempPasswordResponse(user=UserResponse.from_user(user), temp_password=temp_password)


@router.post("/admin/users/delete", response_model=MessageResponse)
def delete_user(
    request: Request,
    body: AdminDeleteUserRequest,
    admin: User = Depends(require_admin),
) -> MessageResponse:
    """Delete a user and every session they hold."""
    get_workflow(request).admin_delete_user(admin, body.user_id)
    return MessageResponse(message="User deleted.")
