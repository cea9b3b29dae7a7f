"""
Unit Tests for the account mailer

Run with: pytest tests/test_email_sender.py -v
"""

from unittest.mock import MagicMock, patch

import pytest
import resend

from email_integration import AccountMailer, EmailClient, EmailKind
from email_integration.email_client import EmailResult, EmailStatus


@pytest.fixture
def client():
    client = MagicMock()
    client.send_email.return_value = EmailResult(success=True, status=EmailStatus.SENT)
    return client


@pytest.fixture
def mailer(client):
    return AccountMailer(client=client, base_url="https://app.example.com/")


class TestRender:

    def test_verification_link(self, mailer):
        rendered = mailer.render(EmailKind.VERIFICATION, "abc123", "Ada")
        assert rendered["subject"] == "Email Verification"
        assert "https://app.example.com/api/auth/verify-email/abc123" in rendered["body"]
        assert "Hi Ada," in rendered["body"]
        assert "24 hours" in rendered["body"]

    def test_reset_link(self, mailer):
        rendered = mailer.render(EmailKind.PASSWORD_RESET, "xyz", "Ada")
        assert "https://app.example.com/reset-password/xyz" in rendered["body"]
        assert "1 hour" in rendered["body"]

    def test_welcome_without_name(self, mailer):
        assert "Hi there," in mailer.render(EmailKind.WELCOME, None, "")["body"]


class TestSend:

    @pytest.mark.asyncio
    async def test_reports_delivery(self, mailer, client):
        assert await mailer.send("ada@example.com", EmailKind.VERIFICATION, "abc", "Ada") is True

        message = client.send_email.call_args.args[0]
        assert message.to == "ada@example.com"
        assert message.message_type == "verification"

    @pytest.mark.asyncio
    async def test_failure_is_false_not_raised(self, mailer, client):
        client.send_email.return_value = EmailResult(success=False, error="boom", status=EmailStatus.FAILED)
        assert await mailer.send("ada@example.com", "password_reset", "t", "Ada") is False

    def test_unconfigured_client_does_not_call_provider(self):
        with patch.object(resend.Emails, "send") as provider:
            result = EmailClient(api_key="", from_address="").send_email(MagicMock())
        assert result.success is False
        provider.assert_not_called()
