from fastapi import APIRouter, Depends
import logging

from config import get_settings
from email_integration import AccountMailer, get_mailer
from middleware.auth import get_current_identity
from services.attempt_tracker import AttemptTracker, get_attempt_tracker
from services.auth import (
    AuthService,
    SignupRequest,
    LoginRequest,
    ProfileUpdateRequest,
    EmailRequest,
    ResetPasswordRequest,
)
from services.tokens import SessionIdentity
from stores import StorePair, get_user_stores
from utils.errors import NotFoundOrForbidden

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_auth_service(
    users: StorePair = Depends(get_user_stores),
    tracker: AttemptTracker = Depends(get_attempt_tracker),
    mailer: AccountMailer = Depends(get_mailer),
) -> AuthService:
    return AuthService(users, tracker, mailer)


# ==================== PUBLIC ENDPOINTS ====================

@router.post("/signup")
async def signup(data: SignupRequest, service: AuthService = Depends(get_auth_service)):
    """
    Register a user in both stores.

    Returns 206 with `registrationStatus` when only one store accepted the
    user; the token then carries only that store's id.

    Example:
    ```json
    {
      "firstName": "Ada",
      "lastName": "Lovelace",
      "username": "ada",
      "email": "ada@example.com",
      "password": "secret1"
    }
    ```
    """
    return await service.signup(data)


@router.post("/login")
async def login(data: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """
    Authenticate by email or username.

    - 401 on bad credentials, with `attemptsRemaining`
    - 429 once the identifier is locked, with `lockedUntil`
    """
    return await service.login(data)


@router.get("/verify-email/{token}")
async def verify_email(token: str, service: AuthService = Depends(get_auth_service)):
    """Mark the account verified in every store holding the token."""
    return await service.verify_email(token)


@router.post("/resend-verification")
async def resend_verification(data: EmailRequest, service: AuthService = Depends(get_auth_service)):
    return await service.resend_verification(data.email)


@router.post("/forgot-password")
async def forgot_password(data: EmailRequest, service: AuthService = Depends(get_auth_service)):
    return await service.forgot_password(data.email)


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    return await service.reset_password(data)


# ==================== AUTHENTICATED ENDPOINTS ====================

@router.get("/profile")
async def get_profile(
    identity: SessionIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    """Profile of the caller, from the document store when present there."""
    return await service.get_profile(identity)


@router.put("/profile")
async def update_profile(
    data: ProfileUpdateRequest,
    identity: SessionIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
):
    return await service.update_profile(identity, data)


# ==================== DEBUG ENDPOINTS ====================

@router.get("/check-user/{email}", include_in_schema=False)
async def check_user(email: str, service: AuthService = Depends(get_auth_service)):
    """Which stores hold this email (debug builds only)."""
    if not get_settings().debug_enabled:
        raise NotFoundOrForbidden("Not found")
    return await service.check_user(email)
