"""
Account Mailer

Renders the account email templates and hands them to the EmailClient.
``send`` only reports whether the message went out; callers decide whether
a failed delivery matters for their request.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, Optional

from config import get_settings
from .email_client import EmailClient, EmailMessage

logger = logging.getLogger(__name__)


class EmailKind(str, Enum):
    """Types of account email"""
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"
    WELCOME = "welcome"


TEMPLATES: Dict[EmailKind, Dict[str, str]] = {
    EmailKind.VERIFICATION: {
        "subject": "Email Verification",
        "body": """
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2 style="color: #333;">Verify Your Email</h2>
                <p>Hi {first_name},</p>
                <p>Thank you for registering! Please verify your email address by clicking the link below:</p>
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{link}" style="background: #007bff; color: white; padding: 12px 24px; text-decoration: none; border-radius: 5px; font-weight: bold;">Verify Email</a>
                </div>
                <p>This link will expire in {lifetime}.</p>
                <p>If you did not create an account, please ignore this email.</p>
            </div>
            """,
    },
    EmailKind.PASSWORD_RESET: {
        "subject": "Password Reset",
        "body": """
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2 style="color: #333;">Reset Your Password</h2>
                <p>Hi {first_name},</p>
                <p>You requested a password reset. Please click the link below to reset your password:</p>
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{link}" style="background: #007bff; color: white; padding: 12px 24px; text-decoration: none; border-radius: 5px; font-weight: bold;">Reset Password</a>
                </div>
                <p>This link will expire in {lifetime}.</p>
                <p>If you did not request a password reset, please ignore this email.</p>
            </div>
            """,
    },
    EmailKind.WELCOME: {
        "subject": "Welcome to Our Platform!",
        "body": """
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2 style="color: #333;">Welcome!</h2>
                <p>Hi {first_name},</p>
                <p>Thank you for verifying your email address. Your account is now fully activated!</p>
                <p>You can now log in and start using our services.</p>
            </div>
            """,
    },
}


class AccountMailer:
    """Sends verification, password reset and welcome emails."""

    def __init__(self, client: Optional[EmailClient] = None, base_url: Optional[str] = None):
        settings = get_settings()
        self.client = client or EmailClient()
        self.base_url = (base_url or settings.APP_BASE_URL).rstrip("/")
        self.verification_hours = settings.VERIFICATION_TOKEN_HOURS
        self.reset_minutes = settings.RESET_TOKEN_MINUTES

    def _link(self, kind: EmailKind, token: Optional[str]) -> str:
        if kind is EmailKind.VERIFICATION:
            return f"{self.base_url}/api/auth/verify-email/{token}"
        if kind is EmailKind.PASSWORD_RESET:
            return f"{self.base_url}/reset-password/{token}"
        return self.base_url

    def _lifetime(self, kind: EmailKind) -> str:
        if kind is EmailKind.VERIFICATION:
            return f"{self.verification_hours} hours"
        if self.reset_minutes % 60 == 0:
            hours = self.reset_minutes // 60
            return "1 hour" if hours == 1 else f"{hours} hours"
        return f"{self.reset_minutes} minutes"

    def render(self, kind: EmailKind, token: Optional[str], first_name: str) -> Dict[str, str]:
        """Render subject and body for ``kind``."""
        template = TEMPLATES[kind]
        return {
            "subject": template["subject"],
            "body": template["body"].format(
                first_name=first_name or "there",
                link=self._link(kind, token),
                lifetime=self._lifetime(kind),
            ),
        }

    async def send(self, recipient: str, kind: EmailKind, token: Optional[str], first_name: str) -> bool:
        """
        Send one account email.

        Returns True when the provider accepted the message. Delivery errors
        are logged and reported as False, never raised.
        """
        kind = EmailKind(kind)
        rendered = self.render(kind, token, first_name)
        message = EmailMessage(
            to=recipient,
            subject=rendered["subject"],
            body=rendered["body"],
            message_type=kind.value,
        )
        # The Resend SDK is synchronous
        result = await asyncio.to_thread(self.client.send_email, message)
        if not result.success:
            logger.error(f"{kind.value} email not sent: {result.error}")
        return result.success


_mailer: Optional[AccountMailer] = None


def get_mailer() -> AccountMailer:
    """Shared mailer (FastAPI dependency)"""
    global _mailer

    if _mailer is None:
        _mailer = AccountMailer()
    return _mailer
