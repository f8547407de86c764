from fastapi import APIRouter, Depends, Request

from nettoria.api.deps import get_current_user, get_verification_service, require_success_password
from nettoria.core.rate_limit import limiter
from nettoria.models.user import User
from nettoria.schemas.common import MessageOut
from nettoria.schemas.twofa import TwoFACodeIn, TwoFASetupOut
from nettoria.services.verification import VerificationService

router = APIRouter(prefix="/2fa", tags=["2fa"])

# ---------- 2FA FLOW ----------
@router.post("/generate-secret", response_model=TwoFASetupOut)
async def generate_secret(
    current_user: User = Depends(get_current_user),
    verification: VerificationService = Depends(get_verification_service),
):
    # the secret only becomes active after /2fa/verify
    setup = await verification.setup_two_factor(current_user)
    return TwoFASetupOut(secret=setup.secret, otpauth_url=setup.otpauth_url, qr_code=setup.qr_code)

@router.post("/verify", response_model=MessageOut)
@limiter.limit("10/minute")
async def verify(
    body: TwoFACodeIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    verification: VerificationService = Depends(get_verification_service),
):
    await verification.confirm_two_factor(current_user, body.code)
    return MessageOut(message="Two-factor authentication enabled")

@router.post("/disable", response_model=MessageOut)
@limiter.limit("10/minute")
async def disable(
    body: TwoFACodeIn,
    request: Request,
    current_user: User = Depends(require_success_password),
    verification: VerificationService = Depends(get_verification_service),
):
    await verification.disable_two_factor(current_user, body.code)
    return MessageOut(message="Two-factor authentication disabled")
