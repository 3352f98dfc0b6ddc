"""Tests for the session store."""

import calendar
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.session import UserSession
from app.services.auth import AuthService
from app.services.jwt import JWTService
from app.services.sessions import DeviceInfo, SessionStore


@pytest.fixture(name="store")
def store_fixture(auth_service: AuthService) -> SessionStore:
    return auth_service.sessions


def _row(db: Session, bearer: str) -> UserSession:
    session = db.query(UserSession).filter(UserSession.session_token == bearer).one()
    db.refresh(session)
    return session


class TestIssueAndValidate:
    """Tests for issuing and validating sessions."""

    def test_issued_token_resolves_to_user(self, db_session: Session, store: SessionStore, test_user: dict):
        issued = store.issue(db_session, test_user["user"], DeviceInfo(ip_address="10.0.0.1", user_agent="pytest"))

        session = store.validate(db_session, issued.bearer_token)
        assert session is not None
        assert session.user_id == test_user["user_id"]
        assert session.ip_address == "10.0.0.1"
        assert store.jwt.verify_token(issued.bearer_token)["sub"] == str(test_user["user_id"])

    def test_token_claims(self, store: SessionStore, test_user: dict):
        claims = store.jwt.verify_token(test_user["token"])
        assert claims["userId"] == test_user["user_id"]
        assert claims["email"] == "test@example.com"
        assert claims["firstName"] == "Test"
        assert claims["lastName"] == "User"
        assert "jti" in claims

    def test_tokens_are_unique(self, db_session: Session, store: SessionStore, test_user: dict):
        first = store.issue(db_session, test_user["user"])
        second = store.issue(db_session, test_user["user"])
        assert first.bearer_token != second.bearer_token
        assert first.refresh_token != second.refresh_token
        assert len(first.refresh_token) == 80

    def test_unknown_token(self, db_session: Session, store: SessionStore):
        assert store.validate(db_session, "not-a-session") is None

    def test_expiry_boundary_is_exclusive(self, db_session: Session, store: SessionStore, test_user: dict):
        """A session whose expiry equals now is already expired."""
        expires_at = _row(db_session, test_user["token"]).expires_at

        with patch.object(SessionStore, "_now", return_value=expires_at - timedelta(seconds=1)):
            assert store.validate(db_session, test_user["token"]) is not None
        with patch.object(SessionStore, "_now", return_value=expires_at):
            assert store.validate(db_session, test_user["token"]) is None

    def test_session_expiry_matches_token(self, db_session: Session, store: SessionStore, test_user: dict):
        session = _row(db_session, test_user["token"])
        claims = store.jwt.verify_token(test_user["token"])
        assert claims["exp"] == calendar.timegm(session.expires_at.utctimetuple())


class TestRevoke:
    """Tests for session revocation."""

    def test_revoke_is_idempotent(self, db_session: Session, store: SessionStore, test_user: dict):
        store.revoke(db_session, test_user["token"])
        store.revoke(db_session, test_user["token"])

        session = _row(db_session, test_user["token"])
        assert session.is_active is False
        assert session.ended_reason == "logout"
        assert store.validate(db_session, test_user["token"]) is None

    def test_revoke_unknown_token(self, db_session: Session, store: SessionStore):
        store.revoke(db_session, "never-issued")


class TestRotate:
    """Tests for refresh token rotation."""

    def test_rotate_round_trip(self, db_session: Session, store: SessionStore, test_user: dict):
        """The new token validates and the old one fails before its own expiry."""
        rotated = store.rotate(db_session, test_user["refresh_token"])
        assert rotated is not None

        assert store.validate(db_session, rotated.bearer_token) is not None
        assert store.validate(db_session, test_user["token"]) is None
        assert store.jwt.verify_token(test_user["token"])["sub"] == str(test_user["user_id"])

        old = _row(db_session, test_user["token"])
        assert old.ended_reason == "refreshed"

    def test_rotate_is_single_use(self, db_session: Session, store: SessionStore, test_user: dict):
        assert store.rotate(db_session, test_user["refresh_token"]) is not None
        assert store.rotate(db_session, test_user["refresh_token"]) is None

    def test_rotate_keeps_device(self, db_session: Session, store: SessionStore, test_user: dict):
        issued = store.issue(db_session, test_user["user"], DeviceInfo(ip_address="10.0.0.2", user_agent="phone"))
        rotated = store.rotate(db_session, issued.refresh_token)

        session = _row(db_session, rotated.bearer_token)
        assert session.ip_address == "10.0.0.2"
        assert session.user_agent == "phone"

    def test_rotate_expired_refresh_token(self, db_session: Session, store: SessionStore, test_user: dict):
        refresh_expires_at = _row(db_session, test_user["token"]).refresh_expires_at
        with patch.object(SessionStore, "_now", return_value=refresh_expires_at):
            assert store.rotate(db_session, test_user["refresh_token"]) is None

    def test_rotate_inactive_user(self, db_session: Session, store: SessionStore, test_user: dict):
        test_user["user"].status = "suspended"
        db_session.commit()
        assert store.rotate(db_session, test_user["refresh_token"]) is None

    def test_rotate_lost_race(self, db_session: Session, store: SessionStore, test_user: dict):
        """If the old session is deactivated between lookup and update, nothing is committed."""
        before = db_session.query(UserSession).count()
        real_execute = db_session.execute

        def execute(statement, *args, **kwargs):
            result = real_execute(statement, *args, **kwargs)
            if getattr(statement, "is_update", False):
                result = MagicMock(rowcount=0)
            return result

        with patch.object(db_session, "execute", side_effect=execute):
            assert store.rotate(db_session, test_user["refresh_token"]) is None

        assert db_session.query(UserSession).count() == before
        assert store.validate(db_session, test_user["token"]) is not None

    def test_rotate_empty_token(self, db_session: Session, store: SessionStore):
        assert store.rotate(db_session, "") is None


class TestTouch:
    """Tests for activity tracking."""

    def test_touch_updates_activity(self, db_session: Session, store: SessionStore, test_user: dict):
        session = _row(db_session, test_user["token"])
        later = session.last_activity_at + timedelta(minutes=5)
        with patch.object(SessionStore, "_now", return_value=later):
            store.touch(db_session, session)
        assert _row(db_session, test_user["token"]).last_activity_at == later

    def test_touch_swallows_storage_errors(self):
        store = SessionStore(get_settings(), JWTService(get_settings()))
        db = MagicMock()
        db.commit.side_effect = SQLAlchemyError("database is locked")

        store.touch(db, UserSession(id=1))
        db.rollback.assert_called_once()
