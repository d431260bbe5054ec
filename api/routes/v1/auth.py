"""
api/routes/v1/auth.py -- Sign-up, sign-in, sign-out, and password change endpoints.

Routes:
  POST /api/v1/auth/sign-up                  -- self-registration (role "user")
  POST /api/v1/auth/sign-in                  -- password sign-in; sets session cookie
  POST /api/v1/auth/sign-out                 -- deletes the session; clears cookie
  GET  /api/v1/auth/session                  -- current user (requires session)
  POST /api/v1/auth/change-password          -- change own password (requires session)
  POST /api/v1/auth/complete-password-change -- leave the forced-change state

Security:
  Sign-in and complete-password-change are rate-limited per IP.
  AuthWorkflow provides timing equalization on every credential check.
  Cache-Control: no-store on every response that carries a token.
  Errors are raised as AuthError subclasses and rendered by api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    ChangePasswordRequest,
    CompletePasswordChangeRequest,
    MessageResponse,
    SignInRequest,
    SignInResponse,
    SignUpRequest,
    UserResponse,
)
from auth.dependencies import get_current_user, get_session_token, get_workflow
from auth.errors import Unauthorized
from auth.models import User
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings

# Auth policy:
# - POST /auth/sign-up:                   public (unless SELF_REGISTRATION_ENABLED=false)
# - POST /auth/sign-in:                   public
# - POST /auth/complete-password-change:  public -- re-authenticates with the temporary password
# - POST /auth/sign-out:                  requires session (get_current_user)
# - GET  /auth/session:                   requires session (get_current_user)
# - POST /auth/change-password:           requires session (checked inside AuthWorkflow)
router = APIRouter()

_LOGIN_RATE_LIMIT = get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/sign-up", response_model=UserResponse, status_code=201)
def sign_up(request: Request, body: SignUpRequest) -> UserResponse:
    """Register a new account with the "user" role.

    The password policy is enforced server-side regardless of any check the
    browser already ran.
    """
    workflow = get_workflow(request)
    if not workflow.settings.self_registration_enabled:
        raise Unauthorized()
    user = workflow.sign_up(body.email, body.password, body.name)
    return UserResponse.from_user(user)


@limiter.limit(_LOGIN_RATE_LIMIT)  # brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/sign-in", response_model=SignInResponse)
def sign_in(request: Request, response: Response, body: SignInRequest) -> SignInResponse:
    """Authenticate with email and password.

    Returns the same generic error for an unknown email and a wrong password.
    A user flagged for a forced password change gets state
    PENDING_PASSWORD_CHANGE and no token; any stale cookie is cleared.
    """
    response.headers["Cache-Control"] = "no-store"
    result = get_workflow(request).sign_in(body.email, body.password)
    if result.token:
        set_session_cookie(response, result.token)
    else:
        clear_session_cookie(response)
    return SignInResponse.from_result(result)


@limiter.limit(_LOGIN_RATE_LIMIT)
@router.post("/auth/complete-password-change", response_model=SignInResponse)
def complete_password_change(
    request: Request,
    response: Response,
    body: CompletePasswordChangeRequest,
) -> SignInResponse:
    """Replace a temporary password and sign in with the new one."""
    response.headers["Cache-Control"] = "no-store"
    result = get_workflow(request).complete_password_change(
        body.email,
        body.current_password,
        body.new_password,
        body.confirm_password,
    )
    set_session_cookie(response, result.token)  # type: ignore[arg-type]
    return SignInResponse.from_result(result)


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/sign-out", response_model=MessageResponse)
def sign_out(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Delete the current session and clear the cookie."""
    get_workflow(request).sign_out(get_session_token(request))
    clear_session_cookie(response)
    return MessageResponse(message="Signed out.")


@router.get("/auth/session", response_model=UserResponse)
def current_session(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the user behind the current session."""
    return UserResponse.from_user(current_user)


@router.post("/auth/change-password", response_model=UserResponse)
def change_password(request: Request, response: Response, body: ChangePasswordRequest) -> UserResponse:
    """Change the signed-in user's password.

    The session check happens inside AuthWorkflow.change_password so the
    request resolves its session exactly once.
    """
    response.headers["Cache-Control"] = "no-store"
    user = get_workflow(request).change_password(
        get_session_token(request),
        body.current_password,
        body.new_password,
        revoke_other_sessions=body.revoke_other_sessions,
        confirm_password=body.confirm_password,
    )
    return UserResponse.from_user(user)
