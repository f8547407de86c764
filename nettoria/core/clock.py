from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    # naive UTC: the store keeps timezone-less DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)
