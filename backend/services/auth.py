"""
Account Service for the dual-store identity core

Implements:
- Signup into both stores with per-store duplicate checks
- Login behind the attempt tracker, issuing a session token
- Profile read/update
- Email verification and password reset

Every write goes through the coordinator, so a store that is down or
already holds a conflicting record is reported in the response instead of
failing the whole request.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from config import get_settings
from email_integration import AccountMailer, EmailKind
from stores.base import PrincipalRecord, StoreName, StorePair, StoreResult, TokenKind
from utils.errors import DeliveryFailed, NotFoundOrForbidden, ValidationError
from . import coordinator
from .attempt_tracker import AttemptTracker
from .credentials import CredentialVerifier
from .passwords import get_password_hash
from .resolver import Resolver
from .tokens import SessionIdentity, TokenIssuer

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGES = {
    "duplicate_email": ("email", "Email already in use"),
    "duplicate_username": ("username", "Username already taken"),
}


# ==================== MODELS ====================

def _required_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError('must not be blank')
    return value


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignupRequest(_Request):
    """Signup request body"""
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=255)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator('first_name', 'last_name', 'username')
    @classmethod
    def strip_required(cls, v):
        return _required_text(v)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class LoginRequest(_Request):
    """Login request body - email or username"""
    email: Optional[EmailStr] = None
    username: Optional[str] = None
    password: str = Field(..., min_length=1)
    remember_me: bool = Field(False, alias="rememberMe")

    @model_validator(mode='after')
    def require_identifier(self):
        if not self.email and not self.username:
            raise ValueError('Please provide either a valid email or username')
        return self

    @property
    def by_email(self) -> bool:
        return self.email is not None

    @property
    def identifier(self) -> str:
        return self.email.lower() if self.email else self.username.strip()


class ProfileUpdateRequest(_Request):
    """Profile update request body"""
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=255)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=255)

    @field_validator('first_name', 'last_name', 'username')
    @classmethod
    def strip_required(cls, v):
        return _required_text(v)


class EmailRequest(_Request):
    """Body for resend-verification and forgot-password"""
    email: EmailStr


class ResetPasswordRequest(_Request):
    """Reset password request body"""
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


# ==================== HELPERS ====================

def generate_account_token(lifetime: timedelta) -> Tuple[str, datetime]:
    """Random single-use token for email verification or password reset"""
    return secrets.token_hex(32), datetime.now(timezone.utc) + lifetime


def format_lifetime(lifetime: timedelta) -> str:
    """Short form used in login responses, e.g. '1h' or '7d'"""
    seconds = int(lifetime.total_seconds())
    if seconds % 86400 == 0:
        return f"{seconds // 86400}d"
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    return f"{seconds // 60}m"


def _primary(outcome: coordinator.WriteOutcome) -> Optional[PrincipalRecord]:
    return outcome.record(StoreName.MONGO) or outcome.record(StoreName.SQL)


# ==================== ACCOUNT SERVICE ====================

class AuthService:
    """
    Account workflows across the document and relational stores.
    """

    def __init__(
        self,
        users: StorePair,
        tracker: AttemptTracker,
        mailer: AccountMailer,
        issuer: Optional[TokenIssuer] = None,
    ):
        self.users = users
        self.mailer = mailer
        self.issuer = issuer or TokenIssuer()
        self.resolver = Resolver(users)
        self.verifier = CredentialVerifier(self.resolver, tracker)
        self.settings = get_settings()

    # ---------- signup ----------

    async def signup(self, data: SignupRequest) -> Dict[str, Any]:
        verification_token, expires = generate_account_token(
            timedelta(hours=self.settings.VERIFICATION_TOKEN_HOURS)
        )

        async def create_in(name: StoreName, external_ref: Optional[str] = None):
            store = self.users.get(name)
            if await store.find_by_email(data.email):
                return StoreResult.absent(name, "duplicate_email")
            if await store.find_by_username(data.username):
                return StoreResult.absent(name, "duplicate_username")
            return await store.create({
                "first_name": data.first_name,
                "last_name": data.last_name,
                "username": data.username,
                "email": data.email,
                "password_hash": get_password_hash(data.password),
                "verification_token": verification_token,
                "verification_token_expires": expires,
                "external_ref": external_ref,
            })

        async def create_in_sql(mongo_result: StoreResult):
            mongo_id = mongo_result.record.id if mongo_result.ok else None
            return await create_in(StoreName.SQL, external_ref=mongo_id)

        outcome = await coordinator.run(lambda: create_in(StoreName.MONGO), create_in_sql)

        if not outcome.any_ok:
            def already_exists():
                errors = []
                for reason in {outcome.mongo.reason, outcome.sql.reason}:
                    if reason in DUPLICATE_MESSAGES:
                        field, message = DUPLICATE_MESSAGES[reason]
                        errors.append({"field": field, "message": message})
                return ValidationError("User already exists", errors=sorted(errors, key=lambda e: e["field"]))

            outcome.raise_for_status("User registration", already_exists)

        user = _primary(outcome)
        email_sent = await self.mailer.send(
            data.email, EmailKind.VERIFICATION, verification_token, data.first_name
        )

        mongo_user = outcome.record(StoreName.MONGO)
        sql_user = outcome.record(StoreName.SQL)
        token = self.issuer.issue(
            mongo_user.id if mongo_user else None,
            sql_user.id if sql_user else None,
        )

        payload = {
            "token": token,
            "user": user.public_dict(),
            "registrationStatus": outcome.flags,
            "emailSent": email_sent,
        }
        outcome.raise_for_status("User registered", lambda: NotFoundOrForbidden("User not created"), **payload)

        email_note = "Verification email sent." if email_sent else "Could not send verification email."
        logger.info(f"User registered in both stores (email sent: {email_sent})")
        return {"message": f"User registered successfully in both databases. {email_note}", **payload}

    # ---------- login ----------

    async def login(self, data: LoginRequest) -> Dict[str, Any]:
        principal = await self.verifier.verify(data.identifier, data.password, by_email=data.by_email)

        token = self.issuer.issue(principal.mongo_id, principal.sql_id, remember_me=data.remember_me)
        user = principal.primary

        return {
            "message": "Login successful",
            "token": token,
            "user": user.public_dict(),
            "databases": {
                StoreName.MONGO.value: principal.mongo_id is not None,
                StoreName.SQL.value: principal.sql_id is not None,
            },
            "isVerified": user.is_verified,
            "tokenExpiration": format_lifetime(self.issuer.lifetime(data.remember_me)),
        }

    # ---------- profile ----------

    async def get_profile(self, identity: SessionIdentity) -> Dict[str, Any]:
        resolved = await self.resolver.user_for_identity(identity)
        if resolved is None:
            raise NotFoundOrForbidden("User not found")

        return {
            "user": {**resolved.record.public_dict(), "source": resolved.source.value},
            "identities": identity.to_dict(),
        }

    async def update_profile(self, identity: SessionIdentity, data: ProfileUpdateRequest) -> Dict[str, Any]:
        async def update_in(name: StoreName, user_id: Optional[str]):
            if not user_id:
                return StoreResult.absent(name, "no_identity")
            store = self.users.get(name)
            holder = await store.find_by_username(data.username)
            if holder is not None and holder.id != str(user_id):
                return StoreResult.absent(name, "username_taken")
            return await store.update_fields(user_id, {
                "first_name": data.first_name,
                "last_name": data.last_name,
                "username": data.username,
            })

        outcome = await coordinator.run(
            lambda: update_in(StoreName.MONGO, identity.mongo_id),
            lambda _: update_in(StoreName.SQL, identity.sql_id),
        )

        def not_updated():
            if "username_taken" in outcome.reasons().values():
                return ValidationError(
                    "Username already taken",
                    errors=[{"field": "username", "message": "Username already taken"}],
                )
            return NotFoundOrForbidden("User not found")

        if not outcome.any_ok:
            outcome.raise_for_status("Profile update", not_updated)

        payload = {"user": _primary(outcome).public_dict(), "updateStatus": outcome.flags}
        outcome.raise_for_status("Profile updated", not_updated, **payload)
        return {"message": "Profile updated successfully", **payload}

    # ---------- email verification ----------

    async def verify_email(self, token: str) -> Dict[str, Any]:
        async def verify_in(name: StoreName):
            store = self.users.get(name)
            user = await store.find_by_token(TokenKind.VERIFICATION, token)
            if user is None:
                return StoreResult.absent(name, "token_not_found")
            return await store.update_fields(user.id, {
                "is_verified": True,
                "verification_token": None,
                "verification_token_expires": None,
            })

        outcome = await coordinator.run(
            lambda: verify_in(StoreName.MONGO),
            lambda _: verify_in(StoreName.SQL),
        )

        def invalid_token():
            return ValidationError("Invalid or expired verification token")

        if not outcome.any_ok:
            outcome.raise_for_status("Email verification", invalid_token)

        user = _primary(outcome)
        # Welcome email is a courtesy; its result does not affect the response
        await self.mailer.send(user.email, EmailKind.WELCOME, None, user.first_name)

        payload = {"verificationStatus": outcome.flags}
        outcome.raise_for_status("Email verified", invalid_token, **payload)
        return {"message": "Email verified successfully", **payload}

    async def resend_verification(self, email: str) -> Dict[str, Any]:
        email = email.lower()
        verification_token, expires = generate_account_token(
            timedelta(hours=self.settings.VERIFICATION_TOKEN_HOURS)
        )

        async def refresh_in(name: StoreName):
            store = self.users.get(name)
            user = await store.find_by_email(email)
            if user is None:
                return StoreResult.absent(name, "not_found")
            if user.is_verified:
                return StoreResult.absent(name, "already_verified")
            return await store.update_fields(user.id, {
                "verification_token": verification_token,
                "verification_token_expires": expires,
            })

        outcome = await coordinator.run(
            lambda: refresh_in(StoreName.MONGO),
            lambda _: refresh_in(StoreName.SQL),
        )

        def nothing_to_verify():
            return ValidationError("Email is either already verified or not registered")

        if not outcome.any_ok:
            outcome.raise_for_status("Verification refresh", nothing_to_verify)

        user = _primary(outcome)
        if not await self.mailer.send(email, EmailKind.VERIFICATION, verification_token, user.first_name):
            raise DeliveryFailed("Failed to send verification email")

        payload = {"emailSent": True}
        outcome.raise_for_status("Verification email sent", nothing_to_verify, **payload)
        return {"message": "Verification email sent", **payload}

    # ---------- password reset ----------

    async def forgot_password(self, email: str) -> Dict[str, Any]:
        email = email.lower()
        reset_token, expires = generate_account_token(
            timedelta(minutes=self.settings.RESET_TOKEN_MINUTES)
        )

        async def set_token_in(name: StoreName):
            store = self.users.get(name)
            user = await store.find_by_email(email)
            if user is None:
                return StoreResult.absent(name, "not_found")
            return await store.update_fields(user.id, {
                "reset_password_token": reset_token,
                "reset_password_expires": expires,
            })

        outcome = await coordinator.run(
            lambda: set_token_in(StoreName.MONGO),
            lambda _: set_token_in(StoreName.SQL),
        )

        if outcome.kind is coordinator.OutcomeKind.SKIPPED:
            logger.info("Password reset requested for an unknown email")
            return {
                "success": False,
                "message": "If a user with that email exists, a password reset link has been sent.",
            }
        if not outcome.any_ok:
            outcome.raise_for_status("Password reset request", lambda: NotFoundOrForbidden("User not found"))

        user = _primary(outcome)
        if not await self.mailer.send(email, EmailKind.PASSWORD_RESET, reset_token, user.first_name):
            raise DeliveryFailed("Error sending password reset email", success=False)

        payload = {"success": True}
        outcome.raise_for_status("Password reset email sent", lambda: NotFoundOrForbidden("User not found"), **payload)
        return {"message": "Password reset email sent successfully", **payload}

    async def reset_password(self, data: ResetPasswordRequest) -> Dict[str, Any]:
        async def reset_in(name: StoreName):
            store = self.users.get(name)
            user = await store.find_by_token(TokenKind.RESET, data.token)
            if user is None:
                return StoreResult.absent(name, "token_not_found")
            return await store.update_fields(user.id, {
                "password_hash": get_password_hash(data.password),
                "reset_password_token": None,
                "reset_password_expires": None,
            })

        outcome = await coordinator.run(
            lambda: reset_in(StoreName.MONGO),
            lambda _: reset_in(StoreName.SQL),
        )

        def invalid_token():
            return ValidationError("Invalid or expired reset token")

        payload = {"resetStatus": outcome.flags}
        outcome.raise_for_status("Password reset", invalid_token, **payload)
        return {"message": "Password has been reset successfully", **payload}

    # ---------- diagnostics ----------

    async def check_user(self, email: str) -> Dict[str, Any]:
        """Report where a principal exists. Never includes secrets."""
        email = email.lower().strip()
        report: Dict[str, Any] = {"email": email}
        for name, store in self.users:
            result = await coordinator.attempt(name, lambda: store.find_by_email(email))
            entry: Dict[str, Any] = {"exists": result.ok}
            if result.ok:
                entry.update({
                    "id": result.record.id,
                    "username": result.record.username,
                    "isVerified": result.record.is_verified,
                })
            elif result.is_error:
                entry["error"] = result.reason
            report[name.value] = entry
        return report
