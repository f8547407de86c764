from datetime import datetime, timedelta, timezone
from typing import Optional
import re

from passlib.context import CryptContext
from jose import jwt, JWTError

from nettoria.core.config import Settings, settings as default_settings

# --- 2FA helpers ---
import base64
from io import BytesIO
import pyotp


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# verified against when the identifier matches nobody, so both paths cost one bcrypt round
_DUMMY_HASH = pwd_context.hash("nettoria-timing-equalizer")

def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)

def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        pwd_context.verify(plain, _DUMMY_HASH)
        return False
    return pwd_context.verify(plain, hashed)

# --- password policy ---
SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
PASSWORD_MIN_LENGTH = 8

_PASSWORD_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("Password must contain at least one uppercase letter", re.compile(r"[A-Z]")),
    ("Password must contain at least one lowercase letter", re.compile(r"[a-z]")),
    ("Password must contain at least one number", re.compile(r"\d")),
    ("Password must contain at least one special character", re.compile(f"[{re.escape(SPECIAL_CHARACTERS)}]")),
]

def validate_password(password: str) -> list[str]:
    """Return the list of failed complexity rules; empty means the password is acceptable."""
    failures = []
    if len(password) < PASSWORD_MIN_LENGTH:
        failures.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    failures.extend(message for message, pattern in _PASSWORD_RULES if not pattern.search(password))
    return failures

# --- session tokens ---
def create_access_token(
        subject: str,
        extra: Optional[dict] = None,
        expires_minutes: int | None = None,
        settings: Settings = default_settings,
        ) -> str:
    now = datetime.now(tz=timezone.utc)
    to_encode = {"sub": subject, "iat": now}
    if extra:
        to_encode.update(extra)
    expire = now + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

def decode_access_token(token: str, settings: Settings = default_settings) -> dict | None:
    """Payload of a valid, unexpired token; None when the signature or expiry check fails."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

# --- 2FA functions ---

def generate_2fa_secret() -> str:
    # 32 chars base32 (TOTP)
    return pyotp.random_base32(length=32)

def totp_uri_from_secret(secret: str, email: str, issuer: str = "Nettoria") -> str:
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=email, issuer_name=issuer)

def verify_totp(otp: str, secret: str, for_time: datetime | None = None) -> bool:
    """30 s step, 6 digits, one step of tolerance either side."""
    if for_time is not None and for_time.tzinfo is None:
        # pyotp reads naive datetimes as local time
        for_time = for_time.replace(tzinfo=timezone.utc)
    try:
        return pyotp.TOTP(secret).verify(otp, for_time=for_time, valid_window=1)
    except (ValueError, TypeError):
        return False

def qr_png_base64_from_text(text: str) -> str:
    import qrcode
    img = qrcode.make(text)
    buf = BytesIO()
    img.save(buf, "PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")
