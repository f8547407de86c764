from fastapi import APIRouter, Depends, Request

from nettoria.api.deps import get_current_user, get_success_password_service, require_success_password
from nettoria.core.rate_limit import limiter
from nettoria.models.user import User
from nettoria.schemas.auth import CodeSentOut
from nettoria.schemas.common import MessageOut
from nettoria.schemas.success_password import SuccessPasswordIn, SuccessPasswordResetConfirmIn
from nettoria.services.success_password import SuccessPasswordService

router = APIRouter(prefix="/success-password", tags=["success-password"])

@router.post("/set", response_model=MessageOut)
async def set_success_password(
    body: SuccessPasswordIn,
    current_user: User = Depends(require_success_password),  # replacing one needs the old one
    service: SuccessPasswordService = Depends(get_success_password_service),
):
    await service.set_success_password(current_user, body.password)
    return MessageOut(message="Success password set successfully")

@router.post("/verify", response_model=MessageOut)
@limiter.limit("5/minute")
async def verify_success_password(
    body: SuccessPasswordIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: SuccessPasswordService = Depends(get_success_password_service),
):
    service.verify_success_password(current_user, body.password)
    return MessageOut(message="Success password verified")

@router.post("/reset", response_model=CodeSentOut)
@limiter.limit("3/minute")
async def request_reset(
    request: Request,
    current_user: User = Depends(get_current_user),
    service: SuccessPasswordService = Depends(get_success_password_service),
):
    issued = await service.request_reset(current_user)
    return CodeSentOut(message="Reset code sent to your phone", expires_at=issued.expires_at)

@router.post("/confirm-reset", response_model=MessageOut)
@limiter.limit("5/minute")
async def confirm_reset(
    body: SuccessPasswordResetConfirmIn,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: SuccessPasswordService = Depends(get_success_password_service),
):
    await service.confirm_reset(current_user, body.code, body.new_password)
    return MessageOut(message="Success password reset successfully")
