"""
auth/workflow.py -- Sign-up, sign-in, forced password change, and admin actions.

AuthWorkflow is the one place where the password policy, credential checks,
session lifecycle and role checks meet. Route handlers translate HTTP into
calls on it; the CredentialStore underneath only persists.

State machine (per client):

    ANONYMOUS --sign_in--> AUTHENTICATED
    ANONYMOUS --sign_in (flagged user)--> PENDING_PASSWORD_CHANGE
    PENDING_PASSWORD_CHANGE --complete_password_change--> AUTHENTICATED
    AUTHENTICATED --sign_out--> ANONYMOUS

A flagged user (requires_password_change=True) never keeps a browsable
session: sign_in revokes the session it just created and resolve_session
refuses any session that belongs to a flagged user. The only way out is
complete_password_change, which re-authenticates with the temporary password,
stores the new one, clears the flag and revokes every other session.

Ordering inside each mutating operation is fixed:
    authorize -> validate input -> write store -> revoke sessions
Input and policy errors are raised before the store is touched. The write and
the revocation happen in one store transaction.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from auth.errors import (
    DuplicateEmail,
    InvalidCredentials,
    NotFound,
    TemporaryPasswordExpired,
    Unauthorized,
    ValidationError,
)
from auth.models import ROLE_ADMIN, ROLE_USER, ROLES, AuthState, Session, SignInResult, User
from auth.policy import ensure_valid_password, generate_temporary_password
from auth.store import CredentialStore
from auth.tokens import authenticate_user, generate_session_token, hash_password, hash_session_token, verify_password
from core.config import Settings

logger = logging.getLogger("pagekeeper.auth")

# Shape check only. Deliverability is not our concern.
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds")


def _require_text(value: str | None, field: str, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required.", field=field)
    return str(value).strip()


class AuthWorkflow:
    """Orchestrates every credential and session transition.

    Constructed once per process with an open CredentialStore and the
    application Settings, and handed to request handlers through app.state.
    """

    def __init__(self, store: CredentialStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    # ------------------------------------------------------------------
    # Sign-up
    # ------------------------------------------------------------------

    def sign_up(
        self,
        email: str,
        password: str,
        name: str,
        role: str = ROLE_USER,
        requires_password_change: bool = False,
        temp_password_expires_at: str | None = None,
    ) -> User:
        """Create an account. The password policy is enforced here, always."""
        _require_text(email, "email", "Email")
        # Stored exactly as typed, so surrounding whitespace is rejected here.
        if not _EMAIL_RE.match(email):
            raise ValidationError("Email address is not valid.", field="email")
        name = _require_text(name, "name", "Name")
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.", field="role")
        ensure_valid_password(password, field="password")

        # Friendly pre-check; the UNIQUE constraint still catches a concurrent insert.
        if self.store.get_by_email(email) is not None:
            raise DuplicateEmail(field="email")

        user_id = self.store.create_user(
            User(
                email=email,
                name=name,
                password_hash=hash_password(password),
                role=role,
                requires_password_change=requires_password_change,
                temp_password_expires_at=temp_password_expires_at,
            )
        )
        logger.info("Created user %s (%s, role=%s)", user_id, email, role)
        return self._reload(user_id)

    # ------------------------------------------------------------------
    # Sign-in / sign-out
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> SignInResult:
        """Verify credentials and open a session.

        Every credential failure raises the same InvalidCredentials. A flagged
        user gets PENDING_PASSWORD_CHANGE and no token.
        """
        if not email or not password:
            raise InvalidCredentials()
        user = authenticate_user(self.store, email, password)
        if user is None:
            logger.info("Failed sign-in for %s", email)
            raise InvalidCredentials()

        if user.requires_password_change and self._temp_password_expired(user):
            logger.warning("Blocked sign-in for %s: temporary password expired", user.email)
            raise TemporaryPasswordExpired()

        token, session = self._open_session(user)
        if user.requires_password_change:
            self.store.delete_session(session.token_hash)
            logger.info("User %s must change password; session %d revoked", user.id, session.id)
            return SignInResult(user=user, state=AuthState.PENDING_PASSWORD_CHANGE)

        logger.info("User %s signed in", user.id)
        return SignInResult(user=user, state=AuthState.AUTHENTICATED, token=token, session=session)

    def sign_out(self, token: str | None) -> bool:
        """Invalidate the session behind token. Returns False if it was not live."""
        if not token:
            return False
        return self.store.delete_session(hash_session_token(token))

    # ------------------------------------------------------------------
    # Session check
    # ------------------------------------------------------------------

    def resolve_session(self, token: str | None) -> User | None:
        """Return the user behind a session token, or None.

        A session counts only while it is unexpired, its user still exists,
        and that user is not waiting on a forced password change. Expired
        rows are deleted on sight.
        """
        if not token:
            return None
        session = self.store.get_session(hash_session_token(token))
        if session is None:
            return None
        if datetime.fromisoformat(session.expires_at) <= _utcnow():
            self.store.delete_session(session.token_hash)
            return None
        user = self.store.get_by_id(session.user_id)
        if user is None:
            logger.info("Session %d belongs to deleted user %s", session.id, session.user_id)
            self.store.delete_session(session.token_hash)
            return None
        if user.requires_password_change:
            return None
        return user

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(
        self,
        token: str | None,
        current_password: str,
        new_password: str,
        revoke_other_sessions: bool = True,
        confirm_password: str | None = None,
    ) -> User:
        """Change the password of the user behind a live session.

        The initiating session survives. With revoke_other_sessions, every
        other session of the user is deleted in the same transaction.
        """
        user = self.resolve_session(token)
        if user is None:
            logger.info("change_password without a valid session")
            raise Unauthorized()
        self._check_new_password(current_password, new_password, confirm_password)
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentials()
        self._store_new_password(
            user,
            new_password,
            revoke_other_sessions=revoke_other_sessions,
            keep_session_hash=hash_session_token(token),  # type: ignore[arg-type]
        )
        return self._reload(user.id)

    def complete_password_change(
        self,
        email: str,
        current_password: str,
        new_password: str,
        confirm_password: str | None,
    ) -> SignInResult:
        """Leave PENDING_PASSWORD_CHANGE with a self-chosen password.

        Re-authenticates internally with the temporary credentials, so the
        client needs no session. All other sessions are revoked and a fresh
        one is returned.
        """
        if confirm_password is None:
            raise ValidationError("Please confirm the new password.", field="confirmPassword")
        self._check_new_password(current_password, new_password, confirm_password)

        user = authenticate_user(self.store, email or "", current_password or "")
        if user is None:
            raise InvalidCredentials()
        if user.requires_password_change and self._temp_password_expired(user):
            raise TemporaryPasswordExpired()

        token, session = self._open_session(user)
        self._store_new_password(
            user,
            new_password,
            revoke_other_sessions=True,
            keep_session_hash=session.token_hash,
        )
        logger.info("User %s completed password change", user.id)
        return SignInResult(user=self._reload(user.id), state=AuthState.AUTHENTICATED, token=token, session=session)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def list_users(self, requester: User | None) -> list[User]:
        self._require_admin(requester, "list_users")
        return self.store.list_users()

    def admin_create_user(
        self,
        requester: User | None,
        name: str,
        email: str,
        role: str = ROLE_USER,
        temp_password: str | None = None,
        requires_password_change: bool = True,
    ) -> tuple[User, str]:
        """Create a user on an admin's behalf.

        Returns the new user and the plaintext temporary password. The
        plaintext is not stored anywhere and cannot be fetched again.
        """
        self._require_admin(requester, "admin_create_user")
        password = temp_password or generate_temporary_password()
        ensure_valid_password(password, field="tempPassword")
        user = self.sign_up(
            email,
            password,
            name,
            role=role,
            requires_password_change=requires_password_change,
            temp_password_expires_at=self._temp_password_expiry() if requires_password_change else None,
        )
        logger.info("Admin %s created user %s", requester.id, user.id)  # type: ignore[union-attr]
        return user, password

    def admin_reset_password(
        self,
        requester: User | None,
        user_id: str,
        new_password: str | None = None,
    ) -> tuple[User, str]:
        """Set a provisional password on another account.

        The flag is always set, the expiry re-stamped and every session of the
        target revoked. Repeating the call with the same password converges
        on the same state.
        """
        self._require_admin(requester, "admin_reset_password")
        user_id = _require_text(user_id, "userId", "User id")
        password = new_password or generate_temporary_password()
        ensure_valid_password(password, field="newPassword")

        updated = self.store.set_password(
            user_id,
            hash_password(password),
            requires_password_change=True,
            temp_password_expires_at=self._temp_password_expiry(),
            revoke_sessions=True,
        )
        if not updated:
            raise NotFound()
        logger.info("Admin %s reset password for user %s", requester.id, user_id)  # type: ignore[union-attr]
        return self._reload(user_id), password

    def admin_delete_user(self, requester: User | None, user_id: str) -> None:
        self._require_admin(requester, "admin_delete_user")
        user_id = _require_text(user_id, "userId", "User id")
        target = self.store.get_by_id(user_id)
        if target is None:
            raise NotFound()
        if target.id == requester.id:  # type: ignore[union-attr]
            raise ValidationError("You cannot delete your own account.", field="userId")
        if target.is_admin and self.store.count_admins() <= 1:
            raise ValidationError("Cannot delete the last admin account.", field="userId")
        if not self.store.delete_user(user_id):
            raise NotFound()
        logger.info("Admin %s deleted user %s (%s)", requester.id, user_id, target.email)  # type: ignore[union-attr]

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def seed_admin(self, email: str, password: str, name: str) -> User | None:
        """Create the configured admin account if it does not exist yet.

        Returns the new user, or None when an account with that email is
        already present (its role and password are left alone).
        """
        if self.store.get_by_email(email) is not None:
            logger.info("Admin seed skipped: %s already exists", email)
            return None
        user = self.sign_up(email, password, name, role=ROLE_ADMIN)
        logger.info("Seeded admin account %s", email)
        return user

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_admin(self, requester: User | None, action: str) -> None:
        if requester is None:
            logger.warning("Denied %s: no session", action)
            raise Unauthorized()
        if requester.role != ROLE_ADMIN:
            logger.warning("Denied %s: user %s has role %s", action, requester.id, requester.role)
            raise Unauthorized()

    def _check_new_password(
        self,
        current_password: str | None,
        new_password: str | None,
        confirm_password: str | None,
    ) -> None:
        _require_text(current_password, "currentPassword", "Current password")
        if confirm_password is not None and new_password != confirm_password:
            raise ValidationError("Passwords do not match.", field="confirmPassword")
        if new_password == current_password:
            raise ValidationError("New password must be different from the current password.", field="newPassword")
        ensure_valid_password(new_password, field="newPassword")

    def _store_new_password(
        self,
        user: User,
        new_password: str,
        *,
        revoke_other_sessions: bool,
        keep_session_hash: str,
    ) -> None:
        """Persist a self-chosen password: clear the flag and the expiry."""
        updated = self.store.set_password(
            user.id,  # type: ignore[arg-type]
            hash_password(new_password),
            requires_password_change=False,
            temp_password_expires_at=None,
            revoke_sessions=revoke_other_sessions,
            keep_session_hash=keep_session_hash,
        )
        if not updated:
            # Deleted between authentication and write.
            raise InvalidCredentials()

    def _open_session(self, user: User) -> tuple[str, Session]:
        token = generate_session_token()
        now = _utcnow()
        session = Session(
            user_id=user.id,  # type: ignore[arg-type]
            token_hash=hash_session_token(token),
            created_at=_iso(now),
            expires_at=_iso(now + timedelta(seconds=self.settings.session_expire_seconds)),
        )
        session.id = self.store.create_session(session)
        return token, session

    def _temp_password_expiry(self) -> str | None:
        hours = self.settings.temp_password_ttl_hours
        if hours <= 0:
            return None
        return _iso(_utcnow() + timedelta(hours=hours))

    def _temp_password_expired(self, user: User) -> bool:
        if not user.temp_password_expires_at:
            return False
        return datetime.fromisoformat(user.temp_password_expires_at) <= _utcnow()

    def _reload(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user
