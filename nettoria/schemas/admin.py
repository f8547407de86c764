from nettoria.models.user import RoleEnum, UserStatus
from nettoria.schemas.common import CamelModel

class RoleUpdateIn(CamelModel):
    role: RoleEnum

class StatusUpdateIn(CamelModel):
    status: UserStatus
