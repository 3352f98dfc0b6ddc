"""Credential store: user records, password hashing and lockout bookkeeping."""

import logging
import secrets
from datetime import date, datetime, timedelta

import bcrypt
from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.config import Settings
from app.database import utcnow
from app.models.user import User
from app.services.validation import PASSWORD_MAX_BYTES, normalize_email

logger = logging.getLogger("diabeacheck")


class CredentialStore:
    """Durable storage and lookup of user identity and password hashes."""

    def __init__(self, settings: Settings) -> None:
        self.rounds = settings.BCRYPT_ROUNDS
        self.max_attempts = settings.MAX_LOGIN_ATTEMPTS
        self.lockout = timedelta(minutes=settings.LOCKOUT_MINUTES)
        self.reset_lifetime = timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        self._dummy_hash: bytes | None = None

    def _now(self) -> datetime:
        return utcnow()

    def hash_password(self, raw_password: str) -> str:
        return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def create(
        self,
        db: Session,
        email: str,
        raw_password: str,
        first_name: str,
        last_name: str,
        phone: str | None = None,
        date_of_birth: date | None = None,
        gender: str | None = None,
        commit: bool = True,
    ) -> User:
        """Insert a new user. Raises IntegrityError if the email is taken.

        With ``commit=False`` the row is only flushed, leaving the caller to
        commit or roll back.
        """
        user = User(
            email=normalize_email(email),
            password_hash=self.hash_password(raw_password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone.strip() if phone else None,
            date_of_birth=date_of_birth,
            gender=gender,
        )
        db.add(user)
        if not commit:
            db.flush()
            return user
        db.commit()
        db.refresh(user)
        logger.info("User created: user_id=%s", user.id)
        return user

    def find_by_id(self, db: Session, user_id: int) -> User | None:
        return db.get(User, user_id)

    def find_by_email(self, db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    def verify_password(self, user: User | None, raw_password: str) -> bool:
        """Check a password against the stored hash.

        A missing user is checked against a dummy hash so both paths cost one
        bcrypt verification.
        """
        candidate = raw_password.encode("utf-8")
        if user is None:
            if self._dummy_hash is None:
                self._dummy_hash = bcrypt.hashpw(secrets.token_bytes(16), bcrypt.gensalt(rounds=self.rounds))
            bcrypt.checkpw(candidate[:PASSWORD_MAX_BYTES], self._dummy_hash)
            return False
        if len(candidate) > PASSWORD_MAX_BYTES:
            return False
        return bcrypt.checkpw(candidate, user.password_hash.encode("utf-8"))

    def is_locked(self, user: User) -> bool:
        return user.locked_until is not None and self._now() < user.locked_until

    def record_failed_attempt(self, db: Session, user: User) -> None:
        """Increment the failure counter and lock the account at the threshold.

        The increment runs in SQL so concurrent failures cannot lose counts. A
        lock that has already lapsed restarts the count at one.
        """
        now = self._now()
        if user.locked_until is not None and user.locked_until <= now:
            values = [
                (User.locked_until, now + self.lockout if self.max_attempts <= 1 else None),
                (User.failed_login_attempts, 1),
            ]
        else:
            # locked_until is set first: MySQL evaluates SET left to right
            # against already-updated columns, other dialects use the old row.
            values = [
                (
                    User.locked_until,
                    case(
                        (User.failed_login_attempts >= self.max_attempts - 1, now + self.lockout),
                        else_=User.locked_until,
                    ),
                ),
                (User.failed_login_attempts, User.failed_login_attempts + 1),
            ]
        db.execute(
            update(User).where(User.id == user.id).ordered_values(*values),
            execution_options={"synchronize_session": False},
        )
        db.commit()
        db.refresh(user)
        if user.locked_until is not None:
            logger.warning("Account locked after %d failed attempts: user_id=%s", user.failed_login_attempts, user.id)

    def record_successful_login(self, db: Session, user: User) -> None:
        """Reset failure counter and lockout, and stamp the login time, in one UPDATE."""
        db.execute(
            update(User)
            .where(User.id == user.id)
            .values(failed_login_attempts=0, locked_until=None, last_login_at=self._now()),
            execution_options={"synchronize_session": False},
        )
        db.commit()
        db.refresh(user)

    def update_password(self, db: Session, user: User, new_raw_password: str) -> None:
        """Re-hash the password and invalidate any pending reset token."""
        user.password_hash = self.hash_password(new_raw_password)
        user.password_reset_token = None
        user.password_reset_expires_at = None
        db.commit()
        logger.info("Password updated: user_id=%s", user.id)

    def issue_reset_token(self, db: Session, user: User) -> str:
        token = secrets.token_hex(32)
        user.password_reset_token = token
        user.password_reset_expires_at = self._now() + self.reset_lifetime
        db.commit()
        return token

    def find_by_reset_token(self, db: Session, token: str) -> User | None:
        if not token:
            return None
        return db.query(User).filter(User.password_reset_token == token).first()

    def reset_token_expired(self, user: User) -> bool:
        expires_at = user.password_reset_expires_at
        return expires_at is None or self._now() >= expires_at

    def clear_reset_token(self, db: Session, user: User) -> None:
        user.password_reset_token = None
        user.password_reset_expires_at = None
        db.commit()
