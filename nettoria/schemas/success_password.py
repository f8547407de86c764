from pydantic import Field

from nettoria.schemas.common import CamelModel

class SuccessPasswordIn(CamelModel):
    password: str = Field(..., min_length=1, max_length=128)

class SuccessPasswordResetConfirmIn(CamelModel):
    code: str = Field(..., pattern=r"^\d{4,12}$")
    new_password: str = Field(..., min_length=1, max_length=128)
