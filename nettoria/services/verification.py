"""Verification state machine.

Each channel (phone, email) moves UNVERIFIED -> CODE_ISSUED -> VERIFIED. A reissue
overwrites the pending code and its expiry. Consuming a code, a one-time login token
or a reset code is a single conditional UPDATE, so two concurrent requests cannot
both spend the same secret.
"""
import asyncio
import enum
import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import case, delete, literal, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nettoria.core.clock import Clock, utcnow
from nettoria.core.codes import generate_numeric_code, generate_opaque_token
from nettoria.core.config import Settings
from nettoria.core.errors import (
    Conflict, DeliveryFailed, Expired, InvalidToken, Mismatch, NotFound, RateLimited,
)
from nettoria.core.security import (
    generate_2fa_secret, qr_png_base64_from_text, totp_uri_from_secret, verify_totp,
)
from nettoria.models.one_time_login import OneTimeLogin
from nettoria.models.user import User, UserStatus
from nettoria.services.notifications import NotificationError, Notifier

logger = logging.getLogger(__name__)


class Channel(str, enum.Enum):
    phone = "phone"
    email = "email"


@dataclass(frozen=True)
class _CodeSlot:
    """Column names holding one pending code on the users row."""
    code: str
    expires: str
    sent_at: str | None = None
    verified_flag: str | None = None


_SLOTS: dict[str, _CodeSlot] = {
    Channel.phone.value: _CodeSlot(
        "phone_verification_code", "phone_verification_expires", "phone_code_sent_at", "is_phone_verified"
    ),
    Channel.email.value: _CodeSlot(
        "email_verification_token", "email_verification_expires", "email_code_sent_at", "is_email_verified"
    ),
    # delivered by SMS, consumed together with the new success password hash
    "success_password_reset": _CodeSlot("success_password_reset_code", "success_password_reset_expires"),
}


@dataclass
class IssuedCode:
    channel: str
    target: str
    expires_at: datetime


@dataclass
class IssuedOneTimeLogin:
    token: str
    link: str
    expires_at: datetime


@dataclass
class TwoFactorSetup:
    secret: str
    otpauth_url: str
    qr_code: str


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _slot_key(channel: "Channel | str") -> str:
    return channel.value if isinstance(channel, Channel) else str(channel)


class VerificationService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: Notifier,
        settings: Settings,
        clock: Clock = utcnow,
        code_generator: Callable[[int], str] = generate_numeric_code,
    ):
        self.db = db
        self.notifier = notifier
        self.settings = settings
        self.now = clock
        self.generate_code = code_generator

    # ---------- phone / email codes ----------
    async def issue_code(self, user: User, channel: Channel | str) -> IssuedCode:
        """Store a fresh code for the channel, commit, then deliver it.

        Raises RateLimited when the previous code for the channel was sent less than
        CODE_RESEND_INTERVAL_SECONDS ago, and DeliveryFailed when the notifier fails
        (the code stays stored and the resend window is reopened).
        """
        key = _slot_key(channel)
        slot = _SLOTS[key]
        now = self.now()
        code = self.generate_code(self.settings.VERIFICATION_CODE_LENGTH)
        expires_at = now + timedelta(seconds=self.settings.VERIFICATION_CODE_TTL_SECONDS)

        values: dict[str, Any] = {slot.code: code, slot.expires: expires_at}
        stmt = update(User).where(User.id == user.id)
        interval = self.settings.CODE_RESEND_INTERVAL_SECONDS
        if slot.sent_at:
            values[slot.sent_at] = now
            if interval > 0:
                sent_col = getattr(User, slot.sent_at)
                stmt = stmt.where(or_(sent_col.is_(None), sent_col <= now - timedelta(seconds=interval)))

        result = await self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        if result.rowcount != 1:
            last_sent = getattr(user, slot.sent_at) if slot.sent_at else None
            retry_after = interval
            if last_sent is not None:
                retry_after = max(1, int(interval - (now - last_sent).total_seconds()))
            # rollback expires loaded instances
            await self.db.rollback()
            await self.db.refresh(user)
            raise RateLimited(details={"retryAfter": retry_after})
        await self.db.commit()
        await self.db.refresh(user)

        target = user.email if key == Channel.email.value else user.phone_number
        try:
            if key == Channel.email.value:
                await self._deliver_email(
                    target,
                    "Nettoria email verification",
                    f"<p>Hello {user.full_name},</p><p>Your verification code is <strong>{code}</strong>.</p>"
                    f"<p>It expires in {self.settings.VERIFICATION_CODE_TTL_SECONDS} seconds.</p>",
                    expires_at,
                )
            else:
                await self._deliver_sms(target, self._sms_text(key, code), expires_at)
        except DeliveryFailed:
            if slot.sent_at:
                await self._reopen_resend_window(user, slot, now)
            raise

        logger.info("Issued %s code for user %s", key, user.id)
        return IssuedCode(channel=key, target=target, expires_at=expires_at)

    async def _reopen_resend_window(self, user: User, slot: _CodeSlot, sent_at: datetime) -> None:
        # the undelivered code stays valid; only the throttle is lifted
        sent_col = getattr(User, slot.sent_at)
        await self.db.execute(
            update(User)
            .where(User.id == user.id, sent_col == sent_at)
            .values(**{slot.sent_at: None})
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(user)

    async def verify_code(self, user: User, channel: Channel | str, submitted_code: str) -> User:
        key = _slot_key(channel)
        slot = _SLOTS[key]
        values: dict[str, Any] = {}
        if slot.verified_flag:
            values[slot.verified_flag] = True
        if key == Channel.phone.value:
            # a verified phone activates a pending registration
            values["status"] = case(
                (User.status == UserStatus.pending, literal(UserStatus.active, User.__table__.c.status.type)),
                else_=User.status,
            )
        await self._consume_code(user, slot, submitted_code, values)
        logger.info("User %s verified %s", user.id, key)
        return user

    async def consume_success_password_reset_code(self, user: User, submitted_code: str, new_hash: str) -> None:
        await self._consume_code(
            user, _SLOTS["success_password_reset"], submitted_code, {"success_password_hash": new_hash}
        )

    async def _consume_code(self, user: User, slot: _CodeSlot, submitted_code: str, extra: dict[str, Any]) -> None:
        now = self.now()
        stored: str | None = getattr(user, slot.code)
        expires: datetime | None = getattr(user, slot.expires)
        if not stored or expires is None:
            raise NotFound("No pending verification code. Please request a new one.")
        if now > expires:
            raise Expired("Verification code has expired. Please request a new one.")
        # exact string match: leading zeros are significant
        if not hmac.compare_digest(stored.encode(), submitted_code.encode()):
            raise Mismatch()

        code_col = getattr(User, slot.code)
        expires_col = getattr(User, slot.expires)
        stmt = (
            update(User)
            .where(User.id == user.id, code_col == stored, expires_col >= now)
            .values(**{slot.code: None, slot.expires: None}, **extra)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            # spent by a concurrent request between our read and the update
            await self.db.rollback()
            await self.db.refresh(user)
            raise NotFound("Verification code was already used")
        await self.db.commit()
        await self.db.refresh(user)

    # ---------- one-time login ----------
    async def issue_one_time_login_token(self, user: User) -> IssuedOneTimeLogin:
        now = self.now()
        token = generate_opaque_token()
        expires_at = now + timedelta(minutes=self.settings.ONE_TIME_LOGIN_TTL_MINUTES)

        # one live link per user
        await self.db.execute(
            delete(OneTimeLogin).where(OneTimeLogin.user_id == user.id, OneTimeLogin.used.is_(False))
        )
        self.db.add(OneTimeLogin(user_id=user.id, token_hash=hash_token(token), expires_at=expires_at))
        await self.db.commit()

        link = f"{self.settings.FRONTEND_URL.rstrip('/')}/one-time-login?token={token}"
        await self._deliver_email(
            user.email,
            "Your Nettoria one-time login link",
            f"<p>Click the link below to log in to your account:</p><a href=\"{link}\">{link}</a>"
            f"<p>This link will expire in {self.settings.ONE_TIME_LOGIN_TTL_MINUTES} minutes.</p>",
            expires_at,
        )
        logger.info("Issued one-time login link for user %s", user.id)
        return IssuedOneTimeLogin(token=token, link=link, expires_at=expires_at)

    async def consume_one_time_login_token(self, token: str) -> User:
        now = self.now()
        row = await self._find_one_time_login(token)
        if row is None or row.used:
            raise InvalidToken()
        if now > row.expires_at:
            raise Expired("One-time login link has expired")

        result = await self.db.execute(
            update(OneTimeLogin)
            .where(OneTimeLogin.id == row.id, OneTimeLogin.used.is_(False), OneTimeLogin.expires_at >= now)
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidToken()
        await self.db.commit()

        user = await self.db.get(User, row.user_id)
        if user is None:
            raise InvalidToken()
        return user

    async def one_time_login_status(self, token: str) -> tuple[str, datetime | None]:
        row = await self._find_one_time_login(token)
        if row is None:
            return "invalid", None
        if row.used:
            return "used", row.expires_at
        if self.now() > row.expires_at:
            return "expired", row.expires_at
        return "valid", row.expires_at

    async def _find_one_time_login(self, token: str) -> OneTimeLogin | None:
        res = await self.db.execute(
            select(OneTimeLogin)
            .where(OneTimeLogin.token_hash == hash_token(token))
            .execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    # ---------- 2FA ----------
    async def setup_two_factor(self, user: User) -> TwoFactorSetup:
        if user.two_factor_enabled:
            raise Conflict("Two-factor authentication is already enabled. Disable it first.")
        # a new secret replaces any unconfirmed one
        secret = generate_2fa_secret()
        user.two_factor_secret = secret
        user.two_factor_enabled = False
        await self.db.commit()

        otpauth = totp_uri_from_secret(secret, email=user.email, issuer=self.settings.TOTP_ISSUER)
        qr = "data:image/png;base64," + qr_png_base64_from_text(otpauth)
        return TwoFactorSetup(secret=secret, otpauth_url=otpauth, qr_code=qr)

    async def confirm_two_factor(self, user: User, submitted_code: str) -> User:
        if not user.two_factor_secret:
            raise NotFound("No 2FA secret configured. Call /2fa/generate-secret first.")
        if not self.check_totp(user, submitted_code):
            raise Mismatch("Invalid two-factor code")
        user.two_factor_enabled = True
        await self.db.commit()
        logger.info("2FA enabled for user %s", user.id)
        return user

    async def disable_two_factor(self, user: User, submitted_code: str) -> User:
        if user.two_factor_enabled and user.two_factor_secret:
            if not self.check_totp(user, submitted_code):
                raise Mismatch("Invalid two-factor code")
        user.two_factor_enabled = False
        user.two_factor_secret = None
        await self.db.commit()
        logger.info("2FA disabled for user %s", user.id)
        return user

    def check_totp(self, user: User, submitted_code: str) -> bool:
        if not user.two_factor_secret:
            return False
        return verify_totp(submitted_code, user.two_factor_secret, for_time=self.now())

    # ---------- delivery ----------
    def _sms_text(self, key: str, code: str) -> str:
        ttl = self.settings.VERIFICATION_CODE_TTL_SECONDS
        if key == "success_password_reset":
            return f"Your Nettoria success password reset code is: {code}. It expires in {ttl} seconds."
        return f"Your Nettoria verification code is: {code}. It expires in {ttl} seconds."

    async def _deliver_sms(self, phone_number: str, message: str, expires_at: datetime) -> None:
        await self._deliver(self.notifier.send_sms(phone_number, message), phone_number, expires_at)

    async def _deliver_email(self, to: str, subject: str, html: str, expires_at: datetime) -> None:
        await self._deliver(self.notifier.send_email(to, subject, html), to, expires_at)

    async def _deliver(self, send, target: str, expires_at: datetime) -> None:
        try:
            await asyncio.wait_for(send, timeout=self.settings.NOTIFY_TIMEOUT_SECONDS)
        except (NotificationError, asyncio.TimeoutError) as e:
            logger.warning("Delivery to %s failed: %s", target, e)
            raise DeliveryFailed(details={"expiresAt": expires_at.isoformat()}) from e
