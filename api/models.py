"""
API request and response models for PageKeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (currentPassword, requiresPasswordChange, ...). Every
model is built on _CamelModel, which aliases snake_case attributes to camelCase
and still accepts snake_case on input.

Shape validation lives here (required fields, types, a 255-char transport
cap). Business rules -- the password policy, email format, duplicate emails --
are enforced by AuthWorkflow so they apply no matter how it is called.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import SignInResult, User

_MAX_FIELD = 255


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class SignUpRequest(_CamelModel):
    """Request body for POST /api/v1/auth/sign-up. Role is always "user"."""

    email: str = Field(max_length=_MAX_FIELD)
    password: str = Field(max_length=_MAX_FIELD)
    name: str = Field(max_length=_MAX_FIELD)


class SignInRequest(_CamelModel):
    email: str = Field(max_length=_MAX_FIELD)
    password: str = Field(max_length=_MAX_FIELD)


class ChangePasswordRequest(_CamelModel):
    """Request body for POST /api/v1/auth/change-password.

    confirmPassword is optional here; when present it must match newPassword.
    """

    current_password: str = Field(max_length=_MAX_FIELD)
    new_password: str = Field(max_length=_MAX_FIELD)
    revoke_other_sessions: bool = True
    confirm_password: Optional[str] = Field(default=None, max_length=_MAX_FIELD)


class CompletePasswordChangeRequest(_CamelModel):
    """Request body for POST /api/v1/auth/complete-password-change.

    Sent from the PENDING_PASSWORD_CHANGE state, where the client holds no
    session. currentPassword is the temporary password the admin issued.
    """

    email: str = Field(max_length=_MAX_FIELD)
    current_password: str = Field(max_length=_MAX_FIELD)
    new_password: str = Field(max_length=_MAX_FIELD)
    confirm_password: str = Field(max_length=_MAX_FIELD)


# ---------------------------------------------------------------------------
# Admin request models
# ---------------------------------------------------------------------------


class AdminCreateUserRequest(_CamelModel):
    """Request body for POST /api/v1/admin/users.

    tempPassword is optional -- the server generates one when it is omitted.
    """

    name: str = Field(max_length=_MAX_FIELD)
    email: str = Field(max_length=_MAX_FIELD)
    role: RoleEnum = RoleEnum.user
    requires_password_change: bool = True
    temp_password: Optional[str] = Field(default=None, max_length=_MAX_FIELD)


class AdminResetPasswordRequest(_CamelModel):
    user_id: str = Field(max_length=64)
    new_password: Optional[str] = Field(default=None, max_length=_MAX_FIELD)


class AdminDeleteUserRequest(_CamelModel):
    user_id: str = Field(max_length=64)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(_FrozenCamelModel):
    """Public view of a user. There is deliberately no password hash field."""

    id: str
    email: str
    name: str
    role: str
    requires_password_change: bool
    temp_password_expires_at: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            requires_password_change=user.requires_password_change,
            temp_password_expires_at=user.temp_password_expires_at,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class SignInResponse(_FrozenCamelModel):
    """Response for sign-in and complete-password-change.

    token and expiresAt are null in the PENDING_PASSWORD_CHANGE state.
    """

    user: UserResponse
    state: str
    requires_password_change: bool
    token: Optional[str] = None
    expires_at: Optional[str] = None

    @classmethod
    def from_result(cls, result: SignInResult) -> "SignInResponse":
        return cls(
            user=UserResponse.from_user(result.user),
            state=result.state.value,
            requires_password_change=result.requires_password_change,
            token=result.token,
            expires_at=result.session.expires_at if result.session else None,
        )


class TempPasswordResponse(_FrozenCamelModel):
    """Admin create / reset response. tempPassword is shown exactly once."""

    user: UserResponse
    temp_password: str


class MessageResponse(_FrozenCamelModel):
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
