from datetime import datetime
from typing import Literal

from pydantic import EmailStr, Field

from nettoria.models.user import RoleEnum, UserStatus
from nettoria.schemas.common import CamelModel

PHONE_REGEX = r"^09\d{9}$"
CODE_REGEX = r"^\d{4,12}$"

class RegisterIn(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone_number: str = Field(..., pattern=PHONE_REGEX, description="Mobile number in the form 09XXXXXXXXX")
    password: str = Field(..., min_length=1, max_length=128)
    national_id: str | None = Field(default=None, max_length=20)

class RegisterOut(CamelModel):
    status: str = "success"
    message: str
    user_id: str
    phone_number: str
    expires_at: datetime | None = None

class LoginIn(CamelModel):
    identifier: str = Field(..., min_length=3, description="Email address or phone number")
    password: str = Field(..., min_length=1)
    otp: str | None = None   # required when 2FA is enabled

class UserOut(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: EmailStr
    phone_number: str
    national_id: str | None = None
    role: RoleEnum
    status: UserStatus
    is_email_verified: bool
    is_phone_verified: bool
    two_factor_enabled: bool
    last_login: datetime | None = None

class TokenOut(CamelModel):
    token: str
    token_type: str = "bearer"
    user: UserOut

class VerifyPhoneIn(CamelModel):
    user_id: str
    phone_number: str = Field(..., pattern=PHONE_REGEX)
    verification_code: str = Field(..., pattern=CODE_REGEX)

class PhoneIn(CamelModel):
    phone_number: str = Field(..., pattern=PHONE_REGEX)

class VerifyLoginOtpIn(CamelModel):
    phone_number: str = Field(..., pattern=PHONE_REGEX)
    verification_code: str = Field(..., pattern=CODE_REGEX)

class VerifyEmailIn(CamelModel):
    verification_code: str = Field(..., pattern=CODE_REGEX)

class CodeSentOut(CamelModel):
    status: str = "success"
    message: str
    expires_at: datetime

class ForgotPasswordIn(CamelModel):
    email: EmailStr

class ResetPasswordIn(CamelModel):
    password: str = Field(..., min_length=1, max_length=128)

class ChangePasswordIn(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)

class ProfileUpdateIn(CamelModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    national_id: str | None = Field(default=None, max_length=20)

# --- one-time login ---
class OneTimeLoginRequestIn(CamelModel):
    identifier: str = Field(..., min_length=3, description="Email address or phone number")

class OneTimeLoginVerifyIn(CamelModel):
    token: str = Field(..., min_length=64, max_length=64)

class OneTimeLoginStatusOut(CamelModel):
    status: Literal["valid", "used", "expired", "invalid"]
    expires_at: datetime | None = None
