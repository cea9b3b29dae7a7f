"""
Email Integration Module

Account email delivery (verification, password reset, welcome) using
Resend as the email provider.
"""

from .email_client import EmailClient, EmailResult, EmailMessage, EmailStatus
from .email_sender import AccountMailer, EmailKind, get_mailer

__all__ = [
    # Client
    'EmailClient',
    'EmailResult',
    'EmailMessage',
    'EmailStatus',
    # Mailer
    'AccountMailer',
    'EmailKind',
    'get_mailer',
]
