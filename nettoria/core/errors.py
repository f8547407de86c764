# nettoria/core/errors.py
import enum
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TWO_FACTOR_REQUIRED = "TWO_FACTOR_REQUIRED"
    PHONE_NOT_VERIFIED = "PHONE_NOT_VERIFIED"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    EXPIRED = "EXPIRED"
    MISMATCH = "MISMATCH"
    INVALID = "INVALID"
    RATE_LIMITED = "RATE_LIMITED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    INTERNAL = "INTERNAL"


STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.TWO_FACTOR_REQUIRED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PHONE_NOT_VERIFIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ACCOUNT_DISABLED: status.HTTP_403_FORBIDDEN,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.EXPIRED: status.HTTP_410_GONE,
    ErrorCode.MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.DELIVERY_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ServiceError(Exception):
    """Tagged failure raised by the service layer and rendered by the API."""

    code: ErrorCode = ErrorCode.INTERNAL
    message = "Internal server error"

    def __init__(self, message: str | None = None, *, details: dict | None = None):
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE[self.code]


class ValidationFailed(ServiceError):
    code = ErrorCode.VALIDATION_ERROR
    message = "Invalid input"


class WeakPassword(ServiceError):
    code = ErrorCode.WEAK_PASSWORD
    message = "Password does not meet the complexity policy"


class InvalidCredentials(ServiceError):
    code = ErrorCode.INVALID_CREDENTIALS
    message = "Invalid credentials"


class TwoFactorRequired(ServiceError):
    code = ErrorCode.TWO_FACTOR_REQUIRED
    message = "A two-factor code is required for this account"


class PhoneNotVerified(ServiceError):
    code = ErrorCode.PHONE_NOT_VERIFIED
    message = "Your account is pending verification. Please verify your phone number first."


class AccountDisabled(ServiceError):
    code = ErrorCode.ACCOUNT_DISABLED
    message = "Your account is disabled. Please contact support."


class Forbidden(ServiceError):
    code = ErrorCode.FORBIDDEN
    message = "Permission denied"


class NotFound(ServiceError):
    code = ErrorCode.NOT_FOUND
    message = "Not found"


class Conflict(ServiceError):
    code = ErrorCode.CONFLICT
    message = "User with this email or phone number already exists"


class Expired(ServiceError):
    code = ErrorCode.EXPIRED
    message = "Code or token has expired"


class Mismatch(ServiceError):
    code = ErrorCode.MISMATCH
    message = "Invalid verification code"


class InvalidToken(ServiceError):
    code = ErrorCode.INVALID
    message = "Invalid or expired token"


class RateLimited(ServiceError):
    code = ErrorCode.RATE_LIMITED
    message = "Please wait before requesting a new code"


class DeliveryFailed(ServiceError):
    code = ErrorCode.DELIVERY_FAILED
    message = "The code was created but could not be delivered. Please request a resend."


def _error_body(code: ErrorCode, message: str, details: dict | None = None) -> dict:
    body = {"status": "error", "code": code.value, "message": message}
    if details:
        body["details"] = details
    return body


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.code is ErrorCode.INTERNAL:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s on %s %s", exc.code.value, request.method, request.url.path)
    headers = None
    if exc.code is ErrorCode.RATE_LIMITED and "retryAfter" in exc.details:
        headers = {"Retry-After": str(exc.details["retryAfter"])}
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(
            {"status": "error", "code": ErrorCode.VALIDATION_ERROR.value, "detail": exc.errors()}
        ),
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "-")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=_error_body(ErrorCode.RATE_LIMITED, f"Too many requests: {exc.detail}"),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(ErrorCode.INTERNAL, ServiceError.message),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
