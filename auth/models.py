"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and the workflow do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


class AuthState(str, Enum):
    """Where a client stands in the sign-in / forced-change state machine."""

    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATED = "AUTHENTICATED"
    PENDING_PASSWORD_CHANGE = "PENDING_PASSWORD_CHANGE"


@dataclass
class User:
    """An account that can sign in to PageKeeper.

    email keeps the case the user typed. Uniqueness is enforced on the
    lower-cased form (see CredentialStore), so "Ann@x.com" and "ann@x.com"
    are the same account.

    password_hash is a bcrypt hash and must never leave the server. Route
    handlers render users through UserResponse, which has no hash field.

    temp_password_expires_at is set only while an admin-issued temporary
    password is outstanding (requires_password_change is True).
    """

    email: str
    name: str
    password_hash: str
    role: str = ROLE_USER
    requires_password_change: bool = False
    temp_password_expires_at: str | None = None
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass
class Session:
    """Proof of an authenticated identity bound to one user.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token is handed
    to the client once, at sign-in, and is never persisted.
    """

    user_id: str
    token_hash: str
    expires_at: str
    id: int | None = None
    created_at: str | None = None


@dataclass
class SignInResult:
    """Outcome of a sign-in attempt that got past credential verification.

    token and session are None when state is PENDING_PASSWORD_CHANGE: the
    session created for a flagged user is revoked before the result is built.
    """

    user: User
    state: AuthState
    token: str | None = None
    session: Session | None = None

    @property
    def requires_password_change(self) -> bool:
        return self.state is AuthState.PENDING_PASSWORD_CHANGE
