"""JWT Token Service."""

import secrets
from datetime import datetime
from typing import Any

from jose import jwt

from app.config import Settings
from app.database import utcnow


class JWTService:
    """Handles bearer token creation and signature/expiry verification."""

    def __init__(self, settings: Settings) -> None:
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM

    def create_token(
        self, user_id: int, email: str, first_name: str, last_name: str, expires_at: datetime
    ) -> str:
        """Create a signed bearer token for the given user.

        ``expires_at`` is naive UTC so that the embedded ``exp`` matches the
        expiry stored on the session row.
        """
        payload = {
            "sub": str(user_id),
            "userId": user_id,
            "email": email,
            "firstName": first_name,
            "lastName": last_name,
            "iat": utcnow(),
            "exp": expires_at,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict[str, Any]:
        """Decode and verify a token.

        Raises ``jose.ExpiredSignatureError`` for an expired token and
        ``jose.JWTError`` for any other verification failure.
        """
        return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
