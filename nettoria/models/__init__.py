from nettoria.models.user import User, RoleEnum, UserStatus
from nettoria.models.one_time_login import OneTimeLogin
