"""Secondary "success password" used to confirm sensitive actions."""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from nettoria.core.errors import InvalidCredentials, NotFound
from nettoria.core.security import hash_password, verify_password
from nettoria.models.user import User
from nettoria.services.accounts import ensure_strong_password
from nettoria.services.notifications import NotificationError
from nettoria.services.verification import IssuedCode, VerificationService

logger = logging.getLogger(__name__)

RESET_SLOT = "success_password_reset"


class SuccessPasswordService:
    def __init__(self, db: AsyncSession, verification: VerificationService):
        self.db = db
        self.verification = verification

    async def set_success_password(self, user: User, password: str) -> None:
        ensure_strong_password(password)
        user.success_password_hash = hash_password(password)
        await self.db.commit()
        logger.info("Success password set for user %s", user.id)

        try:
            await asyncio.wait_for(
                self.verification.notifier.send_sms(
                    user.phone_number,
                    "Your Nettoria success password has been set. "
                    "If you did not do this, please contact support immediately.",
                ),
                timeout=self.verification.settings.NOTIFY_TIMEOUT_SECONDS,
            )
        except (NotificationError, asyncio.TimeoutError) as e:
            # informational notice only; the new secret is already stored
            logger.warning("Success password notice to user %s failed: %s", user.id, e)

    def verify_success_password(self, user: User, password: str) -> None:
        if not user.success_password_hash:
            raise NotFound("Success password not set")
        if not verify_password(password, user.success_password_hash):
            raise InvalidCredentials("Invalid success password")

    async def request_reset(self, user: User) -> IssuedCode:
        if not user.success_password_hash:
            raise NotFound("Success password not set")
        return await self.verification.issue_code(user, RESET_SLOT)

    async def confirm_reset(self, user: User, code: str, new_password: str) -> None:
        ensure_strong_password(new_password)
        await self.verification.consume_success_password_reset_code(user, code, hash_password(new_password))
        logger.info("Success password reset for user %s", user.id)
