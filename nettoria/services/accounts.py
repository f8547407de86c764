import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nettoria.core.clock import Clock, utcnow
from nettoria.core.codes import generate_opaque_token
from nettoria.core.config import Settings
from nettoria.core.errors import (
    Conflict, DeliveryFailed, Expired, Forbidden, InvalidCredentials, InvalidToken,
    NotFound, ValidationFailed, WeakPassword,
)
from nettoria.core.security import hash_password, validate_password, verify_password
from nettoria.models.user import RoleEnum, User, UserStatus
from nettoria.schemas.auth import ProfileUpdateIn, RegisterIn
from nettoria.services.notifications import NotificationError
from nettoria.services.verification import Channel, IssuedCode, VerificationService, hash_token

logger = logging.getLogger(__name__)


def ensure_strong_password(password: str) -> None:
    failures = validate_password(password)
    if failures:
        raise WeakPassword(details={"rules": failures})


@dataclass
class Registration:
    user: User
    phone_code: IssuedCode


class AccountService:
    """Registration, account password lifecycle, profile and admin changes."""

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

    async def register(self, payload: RegisterIn) -> Registration:
        ensure_strong_password(payload.password)
        email = payload.email.lower()

        clauses = [User.email == email, User.phone_number == payload.phone_number]
        if payload.national_id:
            clauses.append(User.national_id == payload.national_id)
        exists = await self.db.execute(select(User.id).where(or_(*clauses)))
        if exists.first() is not None:
            raise Conflict()

        user = User(
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            email=email,
            phone_number=payload.phone_number,
            national_id=payload.national_id or None,
            hashed_password=hash_password(payload.password),
            role=RoleEnum.user,
            status=UserStatus.pending,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # lost a race with a concurrent registration for the same email/phone
            await self.db.rollback()
            raise Conflict() from e
        await self.db.refresh(user)
        logger.info("Registered user %s", user.id)

        try:
            issued = await self.verification.issue_code(user, Channel.phone)
        except DeliveryFailed as e:
            e.details["userId"] = user.id
            raise
        return Registration(user=user, phone_code=issued)

    # ---------- account password ----------
    async def forgot_password(self, email: str) -> None:
        """Email a reset link. The outcome is the same whether or not the account exists."""
        res = await self.db.execute(select(User).where(User.email == email.lower()))
        user = res.scalar_one_or_none()
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        token = generate_opaque_token()
        user.password_reset_token = hash_token(token)
        user.password_reset_expires = self.now() + timedelta(minutes=self.settings.PASSWORD_RESET_TTL_MINUTES)
        await self.db.commit()

        link = f"{self.settings.FRONTEND_URL.rstrip('/')}/reset-password/{token}"
        try:
            await asyncio.wait_for(
                self.verification.notifier.send_email(
                    user.email,
                    "Nettoria password reset",
                    f"<p>You requested a password reset. Click the link below to choose a new password:</p>"
                    f"<a href=\"{link}\">{link}</a>"
                    f"<p>This link will expire in {self.settings.PASSWORD_RESET_TTL_MINUTES} minutes.</p>",
                ),
                timeout=self.settings.NOTIFY_TIMEOUT_SECONDS,
            )
        except (NotificationError, asyncio.TimeoutError) as e:
            # surfacing this would reveal that the account exists
            logger.error("Password reset email to user %s failed: %s", user.id, e)

    async def reset_password(self, token: str, new_password: str) -> User:
        ensure_strong_password(new_password)
        now = self.now()
        token_hash = hash_token(token)
        res = await self.db.execute(select(User).where(User.password_reset_token == token_hash))
        user = res.scalar_one_or_none()
        if user is None:
            raise InvalidToken()
        if user.password_reset_expires is None or now > user.password_reset_expires:
            raise Expired("Password reset link has expired")

        result = await self.db.execute(
            update(User)
            .where(
                User.id == user.id,
                User.password_reset_token == token_hash,
                User.password_reset_expires >= now,
            )
            .values(
                hashed_password=hash_password(new_password),
                password_reset_token=None,
                password_reset_expires=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidToken()
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Password reset for user %s", user.id)
        return user

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.hashed_password):
            raise InvalidCredentials("Current password is incorrect")
        if current_password == new_password:
            raise ValidationFailed("New password must be different from the current password")
        ensure_strong_password(new_password)
        user.hashed_password = hash_password(new_password)
        await self.db.commit()
        logger.info("Password changed for user %s", user.id)

    # ---------- profile ----------
    async def update_profile(self, user: User, payload: ProfileUpdateIn) -> User:
        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if isinstance(value, str):
                value = value.strip() or None
            if field in ("first_name", "last_name") and value is None:
                raise ValidationFailed(f"{field} cannot be empty")
            setattr(user, field, value)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise Conflict("National ID already registered") from e
        await self.db.refresh(user)
        return user

    # ---------- admin ----------
    async def _get_user(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def get_user(self, user_id: str) -> User:
        return await self._get_user(user_id)

    async def set_role(self, actor: User, user_id: str, role: RoleEnum) -> User:
        user = await self._get_user(user_id)
        if user.id == actor.id and role != RoleEnum.admin:
            raise Forbidden("Administrators cannot remove their own admin role")
        user.role = role
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Admin %s set role of %s to %s", actor.id, user.id, role.value)
        return user

    async def set_status(self, actor: User, user_id: str, status: UserStatus) -> User:
        user = await self._get_user(user_id)
        if user.id == actor.id and status != UserStatus.active:
            raise Forbidden("Administrators cannot disable their own account")
        user.status = status
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Admin %s set status of %s to %s", actor.id, user.id, status.value)
        return user
