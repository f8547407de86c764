import logging
from typing import Protocol

import httpx

from nettoria.core.config import Settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationError(Exception):
    """Raised when a message could not be handed to the provider."""


class SmsSender(Protocol):
    async def send(self, phone_number: str, message: str) -> None: ...


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str) -> None: ...


class SmsIrSender:
    """SMS.ir REST API (bulk endpoint, one recipient per call)."""

    def __init__(self, api_url: str, api_key: str, line_number: str, timeout: float = 10.0):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.line_number = line_number
        self.timeout = timeout

    async def send(self, phone_number: str, message: str) -> None:
        if not self.api_key:
            raise NotificationError("SMS service not configured")
        payload = {
            "lineNumber": self.line_number,
            "messageText": message,
            "mobiles": [phone_number],
        }
        headers = {"X-API-KEY": self.api_key, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as cx:
                r = await cx.post(f"{self.api_url}/send/bulk", json=payload, headers=headers)
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NotificationError(f"SMS provider error: {e}") from e
        if data.get("status") != 1:
            raise NotificationError(f"SMS provider rejected message: {data.get('message', 'unknown error')}")
        logger.info("SMS sent to %s", phone_number)


class SendGridEmailSender:
    def __init__(self, api_key: str, sender: str, timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    async def send(self, to: str, subject: str, html: str) -> None:
        if not self.api_key:
            raise NotificationError("Email service not configured")
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [{"type": "text/html", "value": html}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as cx:
                r = await cx.post(
                    SENDGRID_SEND_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Email provider error: {e}") from e
        logger.info("Email '%s' sent to %s", subject, to)


class ConsoleSmsSender:
    """Local development: the message goes to the log instead of a provider."""

    async def send(self, phone_number: str, message: str) -> None:
        logger.info("[console sms] to=%s message=%r", phone_number, message)


class ConsoleEmailSender:
    async def send(self, to: str, subject: str, html: str) -> None:
        logger.info("[console email] to=%s subject=%r body=%r", to, subject, html)


class Notifier:
    """Delivery channel handed to the services; holds one SMS and one email backend."""

    def __init__(self, sms: SmsSender, email: EmailSender):
        self.sms = sms
        self.email = email

    async def send_sms(self, phone_number: str, message: str) -> None:
        await self.sms.send(phone_number, message)

    async def send_email(self, to: str, subject: str, html: str) -> None:
        await self.email.send(to, subject, html)


def build_notifier(settings: Settings) -> Notifier:
    if settings.SMS_BACKEND == "smsir":
        sms: SmsSender = SmsIrSender(
            settings.SMS_API_URL,
            settings.SMS_API_KEY,
            settings.SMS_LINE_NUMBER,
            timeout=settings.NOTIFY_TIMEOUT_SECONDS,
        )
    elif settings.SMS_BACKEND == "console":
        sms = ConsoleSmsSender()
    else:
        raise ValueError(f"Unknown SMS_BACKEND: {settings.SMS_BACKEND}")

    if settings.EMAIL_BACKEND == "sendgrid":
        email: EmailSender = SendGridEmailSender(
            settings.SENDGRID_API_KEY,
            settings.EMAIL_FROM,
            timeout=settings.NOTIFY_TIMEOUT_SECONDS,
        )
    elif settings.EMAIL_BACKEND == "console":
        email = ConsoleEmailSender()
    else:
        raise ValueError(f"Unknown EMAIL_BACKEND: {settings.EMAIL_BACKEND}")

    if settings.is_production and "console" in (settings.SMS_BACKEND, settings.EMAIL_BACKEND):
        logger.warning("Console notification backend in production: codes will only reach the log")

    return Notifier(sms=sms, email=email)
