"""
Email Client - Resend Provider Implementation

Thin wrapper around the Resend SDK used to deliver account emails
(verification, password reset, welcome).

Resend API Reference:
- Endpoint: POST https://api.resend.com/emails
- Auth: Bearer token in Authorization header
- Response: { id: "message_id" }
"""

import logging
import uuid
from typing import Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum

import resend

from config import get_settings

logger = logging.getLogger(__name__)


class EmailStatus(str, Enum):
    """Email delivery status"""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class EmailResult:
    """Result of an email operation"""
    success: bool
    message_id: Optional[str] = None
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    status: EmailStatus = EmailStatus.PENDING


@dataclass
class EmailMessage:
    """Represents an email message to send"""
    to: str
    subject: str
    body: str
    from_address: Optional[str] = None
    html: bool = True
    message_type: Optional[str] = None


class EmailClient:
    """
    Email Client - Resend Provider Implementation.

    Usage:
        client = EmailClient()
        result = client.send_email(EmailMessage(
            to="user@example.com",
            subject="Hello",
            body="<p>Welcome!</p>"
        ))
    """

    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None):
        """
        Initialize email client.

        Args:
            api_key: Resend API key (defaults to EMAIL_API_KEY)
            from_address: Default sender address (defaults to EMAIL_FROM_ADDRESS)
        """
        settings = get_settings()
        self.api_key = api_key or settings.EMAIL_API_KEY
        self.from_address = from_address or settings.EMAIL_FROM_ADDRESS

        self._initialized = False

        if self.api_key:
            resend.api_key = self.api_key
            self._initialized = True
            logger.info("Email client initialized (provider: resend)")
        else:
            logger.warning("Email client not initialized - EMAIL_API_KEY not set")

    def is_configured(self) -> bool:
        """Check if email client is properly configured."""
        return bool(self.api_key and self.from_address)

    def is_ready(self) -> bool:
        """Check if client is ready to send emails."""
        return self._initialized and self.is_configured()

    def send_email(self, message: EmailMessage) -> EmailResult:
        """
        Send an email via Resend.

        Args:
            message: EmailMessage to send

        Returns:
            EmailResult with send status
        """
        if not self.is_ready():
            return EmailResult(
                success=False,
                error="Email client not configured. Check EMAIL_API_KEY and EMAIL_FROM_ADDRESS.",
                status=EmailStatus.FAILED
            )

        internal_id = str(uuid.uuid4())

        try:
            params: Dict[str, Any] = {
                "from": message.from_address or self.from_address,
                "to": [message.to],
                "subject": message.subject,
                "headers": {
                    "X-Message-ID": internal_id,
                    "X-Message-Type": message.message_type or "account",
                },
            }
            if message.html:
                params["html"] = message.body
            else:
                params["text"] = message.body

            logger.info(f"Sending {message.message_type or 'account'} email via Resend")
            response = resend.Emails.send(params)

            provider_msg_id = None
            if isinstance(response, dict):
                provider_msg_id = response.get("id")
            elif hasattr(response, "id"):
                provider_msg_id = response.id

            logger.info(f"Email sent successfully: {provider_msg_id}")

            return EmailResult(
                success=True,
                message_id=internal_id,
                provider_message_id=provider_msg_id,
                status=EmailStatus.SENT,
            )

        except resend.exceptions.ResendError as e:
            logger.error(f"Resend API error: {e}")
            return EmailResult(
                success=False,
                message_id=internal_id,
                error=str(e),
                status=EmailStatus.FAILED
            )
        except Exception as e:
            error_msg = f"Unexpected error sending email: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return EmailResult(
                success=False,
                message_id=internal_id,
                error=error_msg,
                status=EmailStatus.FAILED
            )

    def get_status(self) -> Dict[str, Any]:
        """Get client configuration status."""
        return {
            "provider": "resend",
            "configured": self.is_configured(),
            "ready": self.is_ready(),
            "api_key_set": bool(self.api_key)
        }
