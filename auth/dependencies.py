"""
auth/dependencies.py -- FastAPI Depends() helpers for session authorization.

Two token sources are checked in priority order:
  1. Session cookie ("session_token") -- set by the sign-in flow.
  2. Authorization: Bearer <token> header -- non-browser clients.

Both converge on AuthWorkflow.resolve_session(), which enforces expiry,
owner existence, and the forced-password-change lockout.

try_get_current_user() is the soft variant (None when there is no live session).
get_current_user() raises Unauthorized (403) if there is no live session.
require_admin() raises the same Unauthorized for "no session" and for
"wrong role". Clients cannot tell the two apart; the log line can.

Each dependency runs once per request. Route handlers receive the User.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import Unauthorized
from auth.models import User
from auth.tokens import SESSION_COOKIE
from auth.workflow import AuthWorkflow

logger = logging.getLogger("pagekeeper.auth")


def get_workflow(request: Request) -> AuthWorkflow:
    return request.app.state.workflow


def get_session_token(request: Request) -> str | None:
    """Return the raw session token from the cookie or Bearer header, if any."""
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_user(request: Request) -> User | None:
    """Resolve the request's session to a User, or None when there is no live session."""
    token = get_session_token(request)
    if token is None:
        return None
    return get_workflow(request).resolve_session(token)


def get_current_user(request: Request) -> User:
    """Require a live session.

    Use as a FastAPI dependency:
        @router.post("/auth/sign-out")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        logger.info("Unauthorized %s %s: no valid session", request.method, request.url.path)
        raise Unauthorized()
    return user


def require_admin(request: Request) -> User:
    """Require a live session whose user has the admin role."""
    user = try_get_current_user(request)
    if user is None:
        logger.warning("Denied %s %s: no valid session", request.method, request.url.path)
        raise Unauthorized()
    if not user.is_admin:
        logger.warning("Denied %s %s: user %s is not an admin", request.method, request.url.path, user.id)
        raise Unauthorized()
    return user
