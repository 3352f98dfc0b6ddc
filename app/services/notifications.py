"""Password reset notification delivery."""

import logging
from typing import Protocol

logger = logging.getLogger("diabeacheck")


class ResetNotifier(Protocol):
    def send_password_reset(self, email: str, token: str) -> None: ...


class LogResetNotifier:
    """Writes the reset link to the server log instead of sending mail."""

    def __init__(self, frontend_url: str) -> None:
        self.frontend_url = frontend_url.rstrip("/")

    def send_password_reset(self, email: str, token: str) -> None:
        logger.info("PASSWORD RESET for %s: %s/reset-password?token=%s", email, self.frontend_url, token)
