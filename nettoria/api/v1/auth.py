import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from nettoria.api.deps import (
    get_account_service, get_current_user, get_session_service, get_verification_service,
)
from nettoria.core.db import get_db
from nettoria.core.errors import AccountDisabled, DeliveryFailed, NotFound, ValidationFailed
from nettoria.core.rate_limit import limiter
from nettoria.models.user import User, UserStatus
from nettoria.schemas.auth import (
    ChangePasswordIn, CodeSentOut, ForgotPasswordIn, LoginIn, OneTimeLoginRequestIn,
    OneTimeLoginStatusOut, OneTimeLoginVerifyIn, PhoneIn, ProfileUpdateIn, RegisterIn,
    RegisterOut, ResetPasswordIn, TokenOut, UserOut, VerifyEmailIn, VerifyLoginOtpIn,
    VerifyPhoneIn,
)
from nettoria.schemas.common import MessageOut
from nettoria.services.accounts import AccountService
from nettoria.services.sessions import (
    IssuedSession, SessionService, find_user_by_identifier, find_user_by_phone,
)
from nettoria.services.verification import Channel, VerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_out(issued: IssuedSession) -> TokenOut:
    return TokenOut(token=issued.token, user=UserOut.model_validate(issued.user))


# ---------- registration / phone ----------
@router.post("/register", response_model=RegisterOut, status_code=201)
@limiter.limit("5/minute")
async def register(
    payload: RegisterIn,
    request: Request,
    accounts: AccountService = Depends(get_account_service),
):
    registration = await accounts.register(payload)
    return RegisterOut(
        message="Registration successful. Please verify your phone number.",
        user_id=registration.user.id,
        phone_number=registration.user.phone_number,
        expires_at=registration.phone_code.expires_at,
    )

@router.post("/verify-phone", response_model=TokenOut)
@limiter.limit("10/minute")
async def verify_phone(
    payload: VerifyPhoneIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
    sessions: SessionService = Depends(get_session_service),
):
    user = await db.get(User, payload.user_id)
    if not user or user.phone_number != payload.phone_number:
        raise NotFound("User not found")
    if user.status in (UserStatus.inactive, UserStatus.suspended):
        raise AccountDisabled()
    await verification.verify_code(user, Channel.phone, payload.verification_code)
    return _token_out(await sessions.issue(user))

@router.post("/resend-phone-code", response_model=CodeSentOut)
@limiter.limit("3/minute")
async def resend_phone_code(
    payload: PhoneIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
):
    user = await find_user_by_phone(db, payload.phone_number)
    if not user:
        raise NotFound("User not found")
    if user.is_phone_verified:
        raise ValidationFailed("Phone number already verified")
    issued = await verification.issue_code(user, Channel.phone)
    return CodeSentOut(message="Verification code sent", expires_at=issued.expires_at)

# ---------- login ----------
@router.post("/login", response_model=TokenOut)
@limiter.limit("10/minute")
async def login(
    payload: LoginIn,
    request: Request,
    sessions: SessionService = Depends(get_session_service),
):
    issued = await sessions.login(payload.identifier, payload.password, otp=payload.otp)
    return _token_out(issued)

@router.post("/request-login-otp", response_model=CodeSentOut)
@limiter.limit("3/minute")
async def request_login_otp(
    payload: PhoneIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
):
    user = await find_user_by_phone(db, payload.phone_number)
    if not user:
        raise NotFound("User not found")
    if user.status in (UserStatus.inactive, UserStatus.suspended):
        raise AccountDisabled()
    issued = await verification.issue_code(user, Channel.phone)
    return CodeSentOut(message="Login code sent", expires_at=issued.expires_at)

@router.post("/verify-login-otp", response_model=TokenOut)
@limiter.limit("10/minute")
async def verify_login_otp(
    payload: VerifyLoginOtpIn,
    request: Request,
    sessions: SessionService = Depends(get_session_service),
):
    issued = await sessions.login_via_phone_code(payload.phone_number, payload.verification_code)
    return _token_out(issued)

# ---------- email verification ----------
@router.post("/send-email-verification", response_model=CodeSentOut)
@limiter.limit("3/minute")
async def send_email_verification(
    request: Request,
    current_user: User = Depends(get_current_user),
    verification: VerificationService = Depends(get_verification_service),
):
    if current_user.is_email_verified:
        raise ValidationFailed("Email already verified")
    issued = await verification.issue_code(current_user, Channel.email)
    return CodeSentOut(message="Verification code sent to your email", expires_at=issued.expires_at)

@router.post("/verify-email", response_model=MessageOut)
@limiter.limit("10/minute")
async def verify_email(
    payload: VerifyEmailIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    verification: VerificationService = Depends(get_verification_service),
):
    await verification.verify_code(current_user, Channel.email, payload.verification_code)
    return MessageOut(message="Email verified successfully")

# ---------- password ----------
@router.post("/forgot-password", response_model=MessageOut)
@limiter.limit("3/minute")
async def forgot_password(
    payload: ForgotPasswordIn,
    request: Request,
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.forgot_password(payload.email)
    return MessageOut(message="If an account exists for this email, a reset link has been sent")

@router.post("/reset-password/{token}", response_model=TokenOut)
@limiter.limit("5/minute")
async def reset_password(
    token: str,
    payload: ResetPasswordIn,
    request: Request,
    accounts: AccountService = Depends(get_account_service),
    sessions: SessionService = Depends(get_session_service),
):
    user = await accounts.reset_password(token, payload.password)
    return _token_out(await sessions.issue(user))

@router.post("/change-password", response_model=MessageOut)
async def change_password(
    payload: ChangePasswordIn,
    current_user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.change_password(current_user, payload.current_password, payload.new_password)
    return MessageOut(message="Password changed successfully")

# ---------- profile ----------
@router.get("/me", response_model=UserOut)
async def me(current_user: User = Depends(get_current_user)):
    return current_user

@router.patch("/me", response_model=UserOut)
async def update_me(
    payload: ProfileUpdateIn,
    current_user: User = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    return await accounts.update_profile(current_user, payload)

# ---------- one-time login ----------
@router.post("/one-time-login", response_model=MessageOut)
@limiter.limit("3/minute")
async def request_one_time_login(
    payload: OneTimeLoginRequestIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
):
    user = await find_user_by_identifier(db, payload.identifier)
    # same answer for unknown and disabled accounts, and when delivery fails
    if user and user.status not in (UserStatus.inactive, UserStatus.suspended):
        try:
            await verification.issue_one_time_login_token(user)
        except DeliveryFailed:
            logger.error("One-time login link for user %s was not delivered", user.id)
    return MessageOut(message="If the account exists, a one-time login link has been sent")

@router.post("/one-time-login/verify", response_model=TokenOut)
@limiter.limit("10/minute")
async def verify_one_time_login(
    payload: OneTimeLoginVerifyIn,
    request: Request,
    sessions: SessionService = Depends(get_session_service),
):
    return _token_out(await sessions.login_via_one_time_token(payload.token))

@router.get("/one-time-login/{token}", response_model=OneTimeLoginStatusOut)
@limiter.limit("20/minute")
async def one_time_login_status(
    token: str,
    request: Request,
    verification: VerificationService = Depends(get_verification_service),
):
    state, expires_at = await verification.one_time_login_status(token)
    return OneTimeLoginStatusOut(status=state, expires_at=expires_at)
