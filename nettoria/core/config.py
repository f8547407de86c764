# nettoria/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore")

    APP_NAME: str = "Nettoria"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite+aiosqlite:///./nettoria.db"
    DB_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = False

    JWT_SECRET: str = Field(...)
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # verification windows (seconds unless noted)
    VERIFICATION_CODE_LENGTH: int = 6
    VERIFICATION_CODE_TTL_SECONDS: int = 120
    CODE_RESEND_INTERVAL_SECONDS: int = 60
    ONE_TIME_LOGIN_TTL_MINUTES: int = 15
    PASSWORD_RESET_TTL_MINUTES: int = 10

    TOTP_ISSUER: str = "Nettoria"

    # notifications: "smsir" / "sendgrid" in production, "console" for local work
    SMS_BACKEND: str = "console"
    SMS_API_URL: str = "https://api.sms.ir/v1"
    SMS_API_KEY: str = ""
    SMS_LINE_NUMBER: str = ""
    EMAIL_BACKEND: str = "console"
    SENDGRID_API_KEY: str = ""
    EMAIL_FROM: str = "no-reply@nettoria.com"
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    RATE_LIMIT_ENABLED: bool = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


settings = get_settings()
