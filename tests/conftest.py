import os

os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMS_BACKEND"] = "console"
os.environ["EMAIL_BACKEND"] = "console"

import re
from datetime import timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nettoria.api.deps import get_clock, get_code_generator, get_notifier
from nettoria.core.clock import utcnow
from nettoria.core.codes import generate_numeric_code
from nettoria.core.config import get_settings
from nettoria.core.db import Base, build_engine, get_db
from nettoria.core.security import create_access_token, hash_password
from nettoria.main import create_app
from nettoria.models.user import RoleEnum, User, UserStatus
from nettoria.services.notifications import NotificationError
from nettoria.services.verification import VerificationService

PASSWORD = "Str0ng!Pass"
PASSWORD_HASH = hash_password(PASSWORD)


class FrozenClock:
    """Starts at the real time (JWT iat/exp use it) and only moves when advanced."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


class ScriptedCodes:
    def __init__(self):
        self.queue: list[str] = []

    def __call__(self, length: int) -> str:
        if self.queue:
            return self.queue.pop(0)
        return generate_numeric_code(length)


class RecordingNotifier:
    def __init__(self):
        self.sms: list[tuple[str, str]] = []
        self.emails: list[tuple[str, str, str]] = []
        self.fail = False

    async def send_sms(self, phone_number: str, message: str) -> None:
        if self.fail:
            raise NotificationError("provider down")
        self.sms.append((phone_number, message))

    async def send_email(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise NotificationError("provider down")
        self.emails.append((to, subject, html))

    def last_sms_code(self) -> str:
        return re.search(r"\b(\d{4,12})\b", self.sms[-1][1]).group(1)

    def last_email_token(self) -> str:
        return re.search(r"[?/=]([0-9a-f]{64})\b", self.emails[-1][2]).group(1)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def codes():
    return ScriptedCodes()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def verification(db, notifier, settings, clock, codes):
    return VerificationService(db, notifier, settings, clock=clock, code_generator=codes)


@pytest.fixture
def make_user(db):
    counter = iter(range(1, 1000))

    async def _make(**overrides) -> User:
        n = next(counter)
        data = dict(
            first_name="Sara",
            last_name="Ahmadi",
            email=f"user{n}@mail.com",
            phone_number=f"0912{n:07d}",
            hashed_password=PASSWORD_HASH,
            role=RoleEnum.user,
            status=UserStatus.active,
            is_phone_verified=True,
        )
        data.update(overrides)
        user = User(**data)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(settings):
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(subject=user.id, extra={"role": user.role.value}, settings=settings)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def app(session_factory, clock, notifier, codes):
    app = create_app()

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_code_generator] = lambda: codes
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def registration_payload():
    return {
        "firstName": "Ali",
        "lastName": "Rezaei",
        "email": "a@x.com",
        "phoneNumber": "09121234567",
        "password": PASSWORD,
    }
