"""Clock helpers shared by the release engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

# purpose: single injectable source of "now" for trigger evaluation and sweeps
# status: active

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    SQLite drops tzinfo on round trip, so stored timestamps come back naive
    and are interpreted as UTC.
    """

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_clock() -> Clock:
    """FastAPI dependency returning the clock routes evaluate against."""

    return utcnow
