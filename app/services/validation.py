"""Input validation for account data. Returns field-level error lists."""

import re

from email_validator import EmailNotValidError, validate_email

from app.errors import field_error

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_BYTES = 72  # bcrypt ignores (or rejects) anything longer
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
GENDERS = {"male", "female", "other"}

_PHONE_RE = re.compile(r"^\+?[0-9][0-9 ()-]{6,19}$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def check_email(email: str | None, field: str = "email") -> list[dict[str, str]]:
    if not email or not email.strip():
        return [field_error(field, "Email is required")]
    try:
        validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        return [field_error(field, "Please provide a valid email address")]
    return []


def check_password(password: str | None, field: str = "password") -> list[dict[str, str]]:
    if not password:
        return [field_error(field, "Password is required")]

    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(field_error(field, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"))
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        errors.append(field_error(field, f"Password must be at most {PASSWORD_MAX_BYTES} bytes long"))

    has_lower = any(c.islower() for c in password)
    has_upper = any(c.isupper() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_symbol = any(not c.isalnum() and not c.isspace() for c in password)
    if not (has_lower and has_upper and has_digit and has_symbol):
        errors.append(
            field_error(
                field,
                "Password must contain at least one uppercase letter, one lowercase letter, "
                "one number, and one special character",
            )
        )
    return errors


def check_name(value: str | None, field: str, label: str) -> list[dict[str, str]]:
    stripped = (value or "").strip()
    if not NAME_MIN_LENGTH <= len(stripped) <= NAME_MAX_LENGTH:
        return [field_error(field, f"{label} must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters")]
    return []


def check_phone(phone: str | None, field: str = "phone") -> list[dict[str, str]]:
    if phone is None:
        return []
    if not _PHONE_RE.match(phone.strip()):
        return [field_error(field, "Please provide a valid phone number")]
    return []


def check_gender(gender: str | None, field: str = "gender") -> list[dict[str, str]]:
    if gender is None:
        return []
    if gender not in GENDERS:
        return [field_error(field, "Gender must be male, female, or other")]
    return []


def check_registration(
    email: str | None,
    password: str | None,
    first_name: str | None,
    last_name: str | None,
    phone: str | None = None,
    gender: str | None = None,
) -> list[dict[str, str]]:
    """Validate a registration payload. An empty list means it is valid."""
    return [
        *check_email(email),
        *check_password(password),
        *check_name(first_name, "firstName", "First name"),
        *check_name(last_name, "lastName", "Last name"),
        *check_phone(phone),
        *check_gender(gender),
    ]
