"""
Mailer

Outbound account email lives behind this seam. Delivery itself is out of
scope: the default implementation only records that a message would have
been sent.

SECURITY: reset and invitation tokens are handed to the mailer and must
never reach a log line. LoggingMailer logs the redacted address and expiry only.
"""
from datetime import datetime
from typing import Protocol

from orgauth.utils.logging import get_logger, redact_email

logger = get_logger(__name__)


class Mailer(Protocol):
    def send_password_reset(self, email: str, token: str, expires_at: datetime) -> None:
        ...

    def send_welcome(self, email: str) -> None:
        ...

    def send_invitation(
        self, email: str, organization_name: str, invited_by: str, token: str, expires_at: datetime
    ) -> None:
        ...


class LoggingMailer:
    """Dev-mode mailer: logs instead of sending."""

    def send_password_reset(self, email: str, token: str, expires_at: datetime) -> None:
        logger.info(
            f"Password reset email queued for {redact_email(email)} "
            f"(link expires {expires_at.isoformat()}Z)"
        )

    def send_welcome(self, email: str) -> None:
        logger.info(f"Welcome email queued for {redact_email(email)}")

    def send_invitation(
        self, email: str, organization_name: str, invited_by: str, token: str, expires_at: datetime
    ) -> None:
        logger.info(
            f"Invitation to {organization_name} queued for {redact_email(email)} "
            f"(expires {expires_at.isoformat()}Z)"
        )
