import datetime as dt
import enum
import uuid
from sqlalchemy import String, Enum, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from nettoria.core.db import Base

class RoleEnum(str, enum.Enum):
    user = "user"
    admin = "admin"

class UserStatus(str, enum.Enum):
    pending = "pending"
    active = "active"
    inactive = "inactive"
    suspended = "suspended"

class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    phone_number: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    national_id: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)

    hashed_password: Mapped[str] = mapped_column(String(255))
    # step-up secret for sensitive operations
    success_password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    success_password_reset_code: Mapped[str | None] = mapped_column(String(12), nullable=True)
    success_password_reset_expires: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    role: Mapped[RoleEnum] = mapped_column(Enum(RoleEnum), default=RoleEnum.user)
    status: Mapped[UserStatus] = mapped_column(Enum(UserStatus), default=UserStatus.pending)

    # email / phone verification, one pending code per channel
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    email_verification_token: Mapped[str | None] = mapped_column(String(12), nullable=True)
    email_verification_expires: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    email_code_sent_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    is_phone_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    phone_verification_code: Mapped[str | None] = mapped_column(String(12), nullable=True)
    phone_verification_expires: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    phone_code_sent_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    password_reset_token: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    password_reset_expires: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    two_factor_secret: Mapped[str | None] = mapped_column(String(64), nullable=True)

    last_login: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    one_time_logins = relationship(
        "OneTimeLogin",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
