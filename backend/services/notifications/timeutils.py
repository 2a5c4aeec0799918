"""Clock and elapsed-time helpers shared by the notification policies."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    # SQLite hands back naive values; everything is stored as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(earlier: datetime, later: datetime) -> float:
    delta = ensure_aware(later) - ensure_aware(earlier)
    return delta.total_seconds() / 3600


def parse_clock_minutes(value: str | None) -> int | None:
    """Parse "HH:MM" into minutes since midnight; None when malformed."""
    if not value:
        return None
    hours_raw, separator, minutes_raw = value.strip().partition(":")
    if not separator:
        return None
    try:
        hours = int(hours_raw)
        minutes = int(minutes_raw)
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes


def local_minutes(now: datetime, timezone_name: str | None = None) -> int:
    """Minutes since midnight of `now` read on the configured wall clock.

    Naive datetimes are taken as already local. Aware ones are converted to
    `timezone_name` or, when unset, to the server process local zone.
    """
    if now.tzinfo is not None:
        if timezone_name:
            now = now.astimezone(ZoneInfo(timezone_name))
        else:
            now = now.astimezone()
    return now.hour * 60 + now.minute
