"""Time source used for retention cutoffs."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how audit rows are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
