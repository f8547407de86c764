from typing import Callable

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from nettoria.core.clock import Clock, utcnow
from nettoria.core.codes import generate_numeric_code
from nettoria.core.config import Settings, get_settings
from nettoria.core.db import get_db
from nettoria.core.errors import AccountDisabled
from nettoria.core.security import decode_access_token
from nettoria.models.user import User, RoleEnum, UserStatus
from nettoria.services.accounts import AccountService
from nettoria.services.notifications import Notifier
from nettoria.services.sessions import SessionService
from nettoria.services.success_password import SuccessPasswordService
from nettoria.services.verification import VerificationService


bearer = HTTPBearer(auto_error=False)

# --- collaborators (overridden in tests) ---
def get_clock() -> Clock:
    return utcnow

def get_code_generator() -> Callable[[int], str]:
    return generate_numeric_code

def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier

# --- services ---
def get_verification_service(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
    code_generator: Callable[[int], str] = Depends(get_code_generator),
) -> VerificationService:
    return VerificationService(db, notifier, settings, clock=clock, code_generator=code_generator)

def get_session_service(
    db: AsyncSession = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> SessionService:
    return SessionService(db, verification, settings, clock=clock)

def get_account_service(
    db: AsyncSession = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> AccountService:
    return AccountService(db, verification, settings, clock=clock)

def get_success_password_service(
    db: AsyncSession = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
) -> SuccessPasswordService:
    return SuccessPasswordService(db, verification)

# --- auth ---
def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

async def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    if creds is None:
        raise _unauthorized("Not authenticated")
    payload = decode_access_token(creds.credentials, settings)
    sub: str | None = payload.get("sub") if payload else None
    if not sub:
        raise _unauthorized("Invalid or expired token")

    user = await db.get(User, sub)
    if not user:
        raise _unauthorized("User not found")

    if user.status in (UserStatus.inactive, UserStatus.suspended):
        raise AccountDisabled()

    return user

# --- Role-based dependency ---
def require_roles(*roles: RoleEnum):
    async def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")
        return user
    return _guard

# --- step-up confirmation ---
async def require_success_password(
    x_success_password: str | None = Header(default=None),
    user: User = Depends(get_current_user),
    service: SuccessPasswordService = Depends(get_success_password_service),
) -> User:
    """Accounts that configured a success password must send it in X-Success-Password."""
    if not user.success_password_hash:
        return user
    if not x_success_password:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="X-Success-Password header required")
    service.verify_success_password(user, x_success_password)
    return user
