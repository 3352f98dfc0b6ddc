"""Error kinds shared by services and the HTTP boundary."""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from fastapi import HTTPException


class ErrorKind(str, Enum):
    """Failure categories returned by services instead of raising."""

    VALIDATION_FAILED = "validation_failed"
    DUPLICATE_EMAIL = "duplicate_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    UNAUTHORIZED = "unauthorized"
    TOKEN_EXPIRED = "token_expired"
    INVALID_TOKEN = "invalid_token"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    PREDICTION_UNAVAILABLE = "prediction_unavailable"
    INTERNAL_FAILURE = "internal_failure"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.DUPLICATE_EMAIL: 409,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.ACCOUNT_LOCKED: 423,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.INVALID_REFRESH_TOKEN: 401,
    ErrorKind.INVALID_OR_EXPIRED_TOKEN: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.PREDICTION_UNAVAILABLE: 503,
    ErrorKind.INTERNAL_FAILURE: 500,
}


class ApiError(HTTPException):
    """HTTP error carrying an ErrorKind and optional field-level details."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=kind.status_code, detail=message, headers=headers)
        self.kind = kind
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind.value, "detail": self.detail}
        if self.details:
            body["details"] = self.details
        return body


def field_error(field: str, message: str) -> dict[str, str]:
    """Build one entry of a validation details list."""
    return {"field": field, "message": message}


def validation_details(errors: Sequence[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Flatten pydantic error entries into ``{field, message}`` pairs."""
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details.append(field_error(".".join(loc) or "body", err.get("msg", "Invalid value")))
    return details
