from slowapi import Limiter
from slowapi.util import get_remote_address

from nettoria.core.config import settings

# per client IP; the decorated endpoints must accept `request: Request`
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
