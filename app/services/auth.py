"""Authentication service."""

import functools
import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.errors import ErrorKind, field_error
from app.models.user import User
from app.services.credentials import CredentialStore
from app.services.jwt import JWTService
from app.services.notifications import LogResetNotifier, ResetNotifier
from app.services.sessions import DeviceInfo, IssuedSession, SessionStore
from app.services.validation import check_password, check_registration

logger = logging.getLogger("diabeacheck")

INVALID_LOGIN_MESSAGE = "Invalid email or password"


@dataclass
class AuthResult:
    """Result of an authentication operation."""

    success: bool
    error: ErrorKind | None = None
    message: str | None = None
    details: list[dict[str, str]] | None = None
    user: User | None = None
    session: IssuedSession | None = None

    @classmethod
    def ok(cls, user: User | None = None, session: IssuedSession | None = None) -> "AuthResult":
        return cls(success=True, user=user, session=session)

    @classmethod
    def fail(cls, error: ErrorKind, message: str, details: list[dict[str, str]] | None = None) -> "AuthResult":
        return cls(success=False, error=error, message=message, details=details)


def _storage_guard(operation: str):
    """Turn storage errors raised by an operation into an INTERNAL_FAILURE result."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, db: Session, *args, **kwargs) -> AuthResult:
            try:
                return func(self, db, *args, **kwargs)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Storage error during %s", operation)
                return AuthResult.fail(ErrorKind.INTERNAL_FAILURE, f"Unable to process {operation} request")

        return wrapper

    return decorator


class AuthService:
    """Registration, login, session lifecycle and password management."""

    def __init__(self, credentials: CredentialStore, sessions: SessionStore, notifier: ResetNotifier) -> None:
        self.credentials = credentials
        self.sessions = sessions
        self.notifier = notifier

    @_storage_guard("registration")
    def register(
        self,
        db: Session,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: str | None = None,
        date_of_birth: date | None = None,
        gender: str | None = None,
        device: DeviceInfo | None = None,
    ) -> AuthResult:
        """Create an account and log it in.

        The user row and its first session commit together, so a failure while
        issuing the session leaves no account behind.
        """
        errors = check_registration(email, password, first_name, last_name, phone, gender)
        if errors:
            return AuthResult.fail(ErrorKind.VALIDATION_FAILED, "Validation failed", errors)

        if self.credentials.find_by_email(db, email):
            return AuthResult.fail(ErrorKind.DUPLICATE_EMAIL, "A user with this email address already exists")

        try:
            user = self.credentials.create(
                db,
                email=email,
                raw_password=password,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                date_of_birth=date_of_birth,
                gender=gender,
                commit=False,
            )
        except IntegrityError:
            db.rollback()
            return AuthResult.fail(ErrorKind.DUPLICATE_EMAIL, "A user with this email address already exists")

        session = self.sessions.issue(db, user, device, commit=False)
        db.commit()
        db.refresh(user)
        logger.info("User registered: user_id=%s", user.id)
        return AuthResult.ok(user, session)

    @_storage_guard("login")
    def login(self, db: Session, email: str, password: str, device: DeviceInfo | None = None) -> AuthResult:
        """Authenticate by email and password and issue a session."""
        user = self.credentials.find_by_email(db, email)
        if user is None:
            self.credentials.verify_password(None, password)
            return AuthResult.fail(ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)

        if self.credentials.is_locked(user):
            logger.info("Login rejected, account locked: user_id=%s", user.id)
            return AuthResult.fail(
                ErrorKind.ACCOUNT_LOCKED,
                "Account is temporarily locked due to too many failed login attempts",
            )

        if not user.is_active:
            self.credentials.verify_password(user, password)
            logger.info("Login rejected, account not active: user_id=%s", user.id)
            return AuthResult.fail(ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)

        if not self.credentials.verify_password(user, password):
            self.credentials.record_failed_attempt(db, user)
            logger.info("Login failed: user_id=%s attempts=%s", user.id, user.failed_login_attempts)
            return AuthResult.fail(ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)

        self.credentials.record_successful_login(db, user)
        session = self.sessions.issue(db, user, device)
        logger.info("User logged in: user_id=%s", user.id)
        return AuthResult.ok(user, session)

    @_storage_guard("logout")
    def logout(self, db: Session, bearer_token: str) -> AuthResult:
        """Revoke the session behind a bearer token. Safe to call repeatedly."""
        self.sessions.revoke(db, bearer_token)
        return AuthResult.ok()

    @_storage_guard("token refresh")
    def refresh(self, db: Session, refresh_token: str) -> AuthResult:
        """Rotate a refresh token into a fresh session."""
        session = self.sessions.rotate(db, refresh_token)
        if session is None:
            return AuthResult.fail(ErrorKind.INVALID_REFRESH_TOKEN, "Refresh token is invalid or expired")
        return AuthResult.ok(session=session)

    @_storage_guard("password reset")
    def request_password_reset(self, db: Session, email: str) -> AuthResult:
        """Issue a reset token and notify the user.

        Always succeeds so callers cannot tell whether the account exists.
        """
        user = self.credentials.find_by_email(db, email or "")
        if user is None:
            return AuthResult.ok()

        token = self.credentials.issue_reset_token(db, user)
        try:
            self.notifier.send_password_reset(user.email, token)
        except Exception:
            logger.exception("Failed to deliver password reset: user_id=%s", user.id)
        return AuthResult.ok()

    @_storage_guard("password reset")
    def reset_password(self, db: Session, token: str, new_password: str) -> AuthResult:
        """Reset a user's password using a valid reset token."""
        errors = check_password(new_password)
        if errors:
            return AuthResult.fail(ErrorKind.VALIDATION_FAILED, "Validation failed", errors)

        user = self.credentials.find_by_reset_token(db, token)
        if user is None:
            return AuthResult.fail(
                ErrorKind.INVALID_OR_EXPIRED_TOKEN, "Password reset token is invalid or has expired"
            )

        if self.credentials.reset_token_expired(user):
            self.credentials.clear_reset_token(db, user)
            return AuthResult.fail(
                ErrorKind.INVALID_OR_EXPIRED_TOKEN, "Password reset token is invalid or has expired"
            )

        self.credentials.update_password(db, user, new_password)
        logger.info("Password reset: user_id=%s", user.id)
        return AuthResult.ok(user)

    @_storage_guard("password change")
    def change_password(self, db: Session, user: User, current_password: str, new_password: str) -> AuthResult:
        """Change the password of an authenticated user."""
        if not self.credentials.verify_password(user, current_password or ""):
            return AuthResult.fail(
                ErrorKind.VALIDATION_FAILED,
                "Current password is incorrect",
                [field_error("currentPassword", "Current password is incorrect")],
            )

        errors = check_password(new_password, field="newPassword")
        if errors:
            return AuthResult.fail(ErrorKind.VALIDATION_FAILED, "Validation failed", errors)

        self.credentials.update_password(db, user, new_password)
        return AuthResult.ok(user)


def build_auth_service(settings: Settings, notifier: ResetNotifier | None = None) -> AuthService:
    """Wire an AuthService and its stores from settings."""
    return AuthService(
        credentials=CredentialStore(settings),
        sessions=SessionStore(settings, JWTService(settings)),
        notifier=notifier or LogResetNotifier(settings.FRONTEND_URL),
    )
