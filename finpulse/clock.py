"""
Time helpers.

All timestamps in FinPulse are naive UTC datetimes. Engines take a `clock`
callable so tests can pin "now" and get deterministic windows.
"""

from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    """Identifier for newly created records."""
    return uuid4().hex
