from pydantic import Field

from nettoria.schemas.common import CamelModel

class TwoFASetupOut(CamelModel):
    secret: str
    otpauth_url: str
    qr_code: str  # data:image/png;base64,...

class TwoFACodeIn(CamelModel):
    code: str = Field(..., pattern=r"^\d{6}$")
