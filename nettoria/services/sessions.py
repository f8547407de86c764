import logging
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from nettoria.core.clock import Clock, utcnow
from nettoria.core.config import Settings
from nettoria.core.errors import (
    AccountDisabled, InvalidCredentials, NotFound, PhoneNotVerified, TwoFactorRequired,
)
from nettoria.core.security import create_access_token, verify_password
from nettoria.models.user import User, UserStatus
from nettoria.services.verification import Channel, VerificationService

logger = logging.getLogger(__name__)


@dataclass
class IssuedSession:
    token: str
    user: User


def ensure_can_sign_in(user: User) -> None:
    if user.status == UserStatus.pending:
        raise PhoneNotVerified()
    if user.status in (UserStatus.inactive, UserStatus.suspended):
        raise AccountDisabled()


def mask_identifier(identifier: str) -> str:
    """Log-safe form of an email or phone number: s***@mail.com, *******4567."""
    ident = identifier.strip()
    if "@" in ident:
        local, _, domain = ident.partition("@")
        return f"{local[:1]}***@{domain}"
    if len(ident) <= 4:
        return "***"
    return "*" * (len(ident) - 4) + ident[-4:]


async def find_user_by_identifier(db: AsyncSession, identifier: str) -> User | None:
    """Email (case-insensitive) or phone number."""
    ident = identifier.strip()
    res = await db.execute(
        select(User).where(or_(User.email == ident.lower(), User.phone_number == ident))
    )
    return res.scalars().first()


async def find_user_by_phone(db: AsyncSession, phone_number: str) -> User | None:
    res = await db.execute(select(User).where(User.phone_number == phone_number))
    return res.scalar_one_or_none()


class SessionService:
    def __init__(
        self,
        db: AsyncSession,
        verification: VerificationService,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.verification = verification
        self.settings = settings
        self.now = clock

    async def login(self, identifier: str, password: str, otp: str | None = None) -> IssuedSession:
        user = await find_user_by_identifier(self.db, identifier)
        # verify_password burns a bcrypt round on the dummy hash when user is None
        password_ok = verify_password(password, user.hashed_password if user else None)
        if user is None or not password_ok:
            logger.info("Failed login for %s", mask_identifier(identifier))
            raise InvalidCredentials()

        ensure_can_sign_in(user)

        if user.two_factor_enabled:
            if not otp:
                raise TwoFactorRequired()
            if not self.verification.check_totp(user, otp):
                raise InvalidCredentials("Invalid two-factor code")

        return await self.issue(user)

    async def login_via_one_time_token(self, token: str) -> IssuedSession:
        user = await self.verification.consume_one_time_login_token(token)
        if user.status in (UserStatus.inactive, UserStatus.suspended):
            raise AccountDisabled()
        return await self.issue(user)

    async def login_via_phone_code(self, phone_number: str, code: str) -> IssuedSession:
        user = await find_user_by_phone(self.db, phone_number)
        if user is None:
            raise NotFound("User not found")
        if user.status in (UserStatus.inactive, UserStatus.suspended):
            raise AccountDisabled()
        # also proves phone ownership, so a pending account becomes active here
        await self.verification.verify_code(user, Channel.phone, code)
        return await self.issue(user)

    async def issue(self, user: User) -> IssuedSession:
        user.last_login = self.now()
        await self.db.commit()
        await self.db.refresh(user)
        token = create_access_token(
            subject=user.id,
            extra={"role": user.role.value},
            settings=self.settings,
        )
        logger.info("Session issued for user %s", user.id)
        return IssuedSession(token=token, user=user)
