"""Session store: issue, validate, revoke and rotate login sessions."""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.database import utcnow
from app.models.session import UserSession
from app.models.user import User
from app.services.jwt import JWTService

logger = logging.getLogger("diabeacheck")

ENDED_LOGOUT = "logout"
ENDED_REFRESHED = "refreshed"


@dataclass
class DeviceInfo:
    """Client metadata recorded on a session."""

    ip_address: str | None = None
    user_agent: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_json(self) -> dict[str, Any]:
        return {"userAgent": self.user_agent, "ip": self.ip_address, **self.extra}


@dataclass
class IssuedSession:
    """Credentials handed to the client for one session."""

    bearer_token: str
    refresh_token: str
    expires_at: datetime
    session_id: int


class SessionStore:
    """Tracks live sessions so bearer tokens can be revoked and refreshed."""

    def __init__(self, settings: Settings, jwt_service: JWTService) -> None:
        self.jwt = jwt_service
        self.bearer_lifetime = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
        self.refresh_lifetime = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def _now(self) -> datetime:
        return utcnow()

    def _new_session(self, user: User, device: DeviceInfo) -> UserSession:
        now = self._now()
        expires_at = (now + self.bearer_lifetime).replace(microsecond=0)
        bearer = self.jwt.create_token(
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            expires_at=expires_at,
        )
        return UserSession(
            user_id=user.id,
            session_token=bearer,
            refresh_token=secrets.token_hex(40),
            device_info=device.as_json(),
            ip_address=device.ip_address,
            user_agent=device.user_agent,
            expires_at=expires_at,
            refresh_expires_at=now + self.refresh_lifetime,
            is_active=True,
            last_activity_at=now,
            created_at=now,
        )

    @staticmethod
    def _issued(session: UserSession) -> IssuedSession:
        return IssuedSession(
            bearer_token=session.session_token,
            refresh_token=session.refresh_token,
            expires_at=session.expires_at,
            session_id=session.id,
        )

    def issue(self, db: Session, user: User, device: DeviceInfo | None = None, commit: bool = True) -> IssuedSession:
        """Mint a bearer/refresh pair and persist the session row.

        With ``commit=False`` the row is flushed into the caller's transaction.
        """
        session = self._new_session(user, device or DeviceInfo())
        db.add(session)
        if not commit:
            db.flush()
            return self._issued(session)
        db.commit()
        db.refresh(session)
        return self._issued(session)

    def validate(self, db: Session, bearer_token: str) -> UserSession | None:
        """Return the session for a bearer token only if it is active and unexpired.

        This is checked independently of the token's own signature and
        ``exp`` claim, so a revoked session fails immediately.
        """
        session = db.query(UserSession).filter(UserSession.session_token == bearer_token).first()
        if session is None or not session.is_active:
            return None
        if self._now() >= session.expires_at:
            return None
        return session

    def touch(self, db: Session, session: UserSession) -> None:
        """Record activity on a session. Failures are logged, never raised."""
        try:
            session.last_activity_at = self._now()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Failed to update session activity: session_id=%s", session.id, exc_info=True)

    def revoke(self, db: Session, bearer_token: str) -> None:
        """Deactivate the session for a bearer token. Revoking twice is a no-op."""
        db.execute(
            update(UserSession)
            .where(UserSession.session_token == bearer_token, UserSession.is_active.is_(True))
            .values(is_active=False, ended_reason=ENDED_LOGOUT),
            execution_options={"synchronize_session": False},
        )
        db.commit()

    def rotate(self, db: Session, refresh_token: str) -> IssuedSession | None:
        """Exchange a refresh token for a new session, deactivating the old one.

        Both writes commit together. The deactivation is conditional on the
        old row still being active, so a refresh token can be used once.
        """
        if not refresh_token:
            return None
        old = db.query(UserSession).filter(UserSession.refresh_token == refresh_token).first()
        if old is None or not old.is_active or self._now() >= old.refresh_expires_at:
            return None
        user = db.get(User, old.user_id)
        if user is None or not user.is_active:
            return None

        device = DeviceInfo(ip_address=old.ip_address, user_agent=old.user_agent)
        new = self._new_session(user, device)
        new.device_info = old.device_info
        db.add(new)
        db.flush()

        result = db.execute(
            update(UserSession)
            .where(UserSession.id == old.id, UserSession.is_active.is_(True))
            .values(is_active=False, ended_reason=ENDED_REFRESHED),
            execution_options={"synchronize_session": False},
        )
        if result.rowcount != 1:
            db.rollback()
            return None

        db.commit()
        db.refresh(new)
        return self._issued(new)
