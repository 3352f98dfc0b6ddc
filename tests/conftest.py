"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-diabeacheck")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.config import get_settings  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.models import PredictionRecord, User, UserProfile, UserSession  # noqa: E402,F401
from app.services.auth import AuthService, build_auth_service  # noqa: E402
from app.services.prediction import build_prediction_service  # noqa: E402

TEST_PASSWORD = "Abcd123!"


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="client")
def client_fixture(db_session: Session):
    """Create a test client with overridden DB dependency and disabled rate limiting."""
    from app.rate_limit import limiter
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture(name="auth_service")
def auth_service_fixture() -> AuthService:
    return build_auth_service(get_settings())


def register_user(auth_service: AuthService, db: Session, email: str, first_name: str = "Test") -> dict:
    """Register a user through the service and return its session credentials."""
    result = auth_service.register(db, email, TEST_PASSWORD, first_name, "User")
    assert result.success, result.details
    return {
        "user": result.user,
        "user_id": result.user.id,
        "email": result.user.email,
        "token": result.session.bearer_token,
        "refresh_token": result.session.refresh_token,
        "headers": {"Authorization": f"Bearer {result.session.bearer_token}"},
    }


@pytest.fixture(name="test_user")
def test_user_fixture(db_session: Session, auth_service: AuthService) -> dict:
    """Create a test user and return its credentials."""
    return register_user(auth_service, db_session, "test@example.com")


@pytest.fixture(name="other_user")
def other_user_fixture(db_session: Session, auth_service: AuthService) -> dict:
    return register_user(auth_service, db_session, "other@example.com", first_name="Other")


@pytest.fixture(name="ml_api")
def ml_api_fixture(client: TestClient):
    """Replace the ML service with an httpx.MockTransport.

    Tests steer the fake through the returned dict: ``response`` is the JSON
    body, ``status_code`` the HTTP status, and ``error`` an exception to raise.
    """
    state = {
        "response": {"prediction": 1, "probability": 0.82, "label": "Diabetic"},
        "status_code": 200,
        "error": None,
        "requests": [],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        if state["error"] is not None:
            raise state["error"]
        if request.url.path == "/docs":
            return httpx.Response(200, text="<html>docs</html>")
        return httpx.Response(state["status_code"], json=state["response"])

    app_state = client.app.state
    original = app_state.prediction_service
    app_state.prediction_service = build_prediction_service(get_settings(), transport=httpx.MockTransport(handler))
    yield state
    app_state.prediction_service.client.close()
    app_state.prediction_service = original
