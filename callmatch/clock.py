from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Server-observed wall clock, timezone-aware UTC."""
    return datetime.now(timezone.utc)
