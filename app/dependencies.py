"""Authentication and service dependencies for FastAPI routes."""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import ApiError, ErrorKind
from app.models.session import UserSession
from app.models.user import User
from app.services.auth import AuthService
from app.services.prediction import PredictionService
from app.services.profile import ProfileService

logger = logging.getLogger("diabeacheck")

BEARER_PREFIX = "Bearer "
_CHALLENGE = {"WWW-Authenticate": "Bearer"}


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller resolved from a bearer token."""

    user: User
    session: UserSession
    token: str

    @property
    def user_id(self) -> int:
        return self.user.id


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_prediction_service(request: Request) -> PredictionService:
    return request.app.state.prediction_service


def get_profile_service(request: Request) -> ProfileService:
    return request.app.state.profile_service


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an ``Authorization: Bearer`` header, or None if absent/other scheme."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        return None
    return auth_header[len(BEARER_PREFIX) :].strip()


def _unauthorized(kind: ErrorKind, message: str) -> ApiError:
    return ApiError(kind, message, headers=_CHALLENGE)


class AuthGate:
    """Validates the bearer token on a request against the session store.

    With ``required=False`` a request without a Bearer header passes through
    as anonymous (``None``). A Bearer header that is present but invalid is
    rejected in both modes.
    """

    def __init__(self, required: bool = True) -> None:
        self.required = required

    def __call__(
        self,
        request: Request,
        db: Session = Depends(get_db),
        auth_service: AuthService = Depends(get_auth_service),
    ) -> AuthContext | None:
        token = extract_bearer_token(request)
        if token is None:
            if not self.required:
                return None
            raise _unauthorized(ErrorKind.UNAUTHORIZED, "No token provided or invalid format")
        if not token:
            raise _unauthorized(ErrorKind.INVALID_TOKEN, "Token is malformed or invalid")

        sessions = auth_service.sessions
        try:
            payload = sessions.jwt.verify_token(token)
        except ExpiredSignatureError:
            raise _unauthorized(ErrorKind.TOKEN_EXPIRED, "Token has expired, please login again") from None
        except JWTError:
            raise _unauthorized(ErrorKind.INVALID_TOKEN, "Token is malformed or invalid") from None

        session = sessions.validate(db, token)
        if session is None:
            raise _unauthorized(ErrorKind.TOKEN_EXPIRED, "Session has expired, please login again")

        user = auth_service.credentials.find_by_id(db, session.user_id)
        if user is None or str(user.id) != payload.get("sub"):
            raise _unauthorized(ErrorKind.UNAUTHORIZED, "User associated with token not found")
        if not user.is_active:
            raise _unauthorized(ErrorKind.UNAUTHORIZED, "User account is not active")

        sessions.touch(db, session)
        return AuthContext(user=user, session=session, token=token)


require_auth = AuthGate(required=True)
optional_auth = AuthGate(required=False)


def require_bearer_token(request: Request) -> str:
    """Require a Bearer header without validating the session behind it."""
    token = extract_bearer_token(request)
    if not token:
        raise _unauthorized(ErrorKind.UNAUTHORIZED, "No token provided or invalid format")
    return token
