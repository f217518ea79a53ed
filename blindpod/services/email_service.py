"""Email service for sending plain-text emails via Resend."""

import logging
from typing import Optional

import resend

from ..config import Config
from ..errors import DeliveryError

logger = logging.getLogger(__name__)


def _redact_email(email: str) -> str:
    """Redact email address for logging (PII protection).

    Args:
        email: Full email address.

    Returns:
        Redacted email showing only domain (e.g., "***@example.com").
    """
    if "@" not in email:
        return "<invalid-email>"
    _, domain = email.split("@", 1)
    return f"***@{domain}"


class EmailService:
    """Service for sending emails via Resend.

    Note: This service sets the Resend API key at the module level,
    which assumes a single configuration per process.
    """

    def __init__(self, config: Config):
        """Initialize the email service.

        Args:
            config: Application configuration with Resend settings.
        """
        self.config = config

        if self.config.RESEND_API_KEY:
            resend.api_key = self.config.RESEND_API_KEY

    def is_configured(self) -> bool:
        """Check if Resend is properly configured.

        Returns:
            True if Resend API key is set.
        """
        return bool(self.config.RESEND_API_KEY)

    @property
    def from_address(self) -> str:
        return f"{self.config.RESEND_FROM_NAME} <{self.config.RESEND_FROM_EMAIL}>"

    def send_email(
        self,
        to_email: str,
        subject: str,
        text_content: str,
        html_content: Optional[str] = None,
    ) -> str:
        """Send an email using Resend.

        Args:
            to_email: Recipient email address.
            subject: Email subject line.
            text_content: Plain text body.
            html_content: Optional HTML alternative.

        Returns:
            The provider's message ID.

        Raises:
            DeliveryError: If Resend is not configured or rejects the message.
        """
        if not self.is_configured():
            raise DeliveryError(to_email, "Resend API key not configured")

        params: resend.Emails.SendParams = {
            "from": self.from_address,
            "to": [to_email],
            "subject": subject,
            "text": text_content,
        }
        if html_content:
            params["html"] = html_content

        try:
            email = resend.Emails.send(params)
        except Exception as e:
            raise DeliveryError(to_email, str(e) or e.__class__.__name__) from e

        message_id = email.get("id", "unknown") if isinstance(email, dict) else "unknown"
        logger.info("Email sent successfully to %s (ID: %s)", _redact_email(to_email), message_id)
        return message_id
