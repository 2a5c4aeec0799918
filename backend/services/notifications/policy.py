"""Pure notification policies: quiet hours and completion escalation."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from .timeutils import hours_between, local_minutes, parse_clock_minutes

CompletionStage = Literal["24h", "72h"]

COMPLETION_FIRST_FOLLOWUP_HOURS = 24
COMPLETION_SECOND_FOLLOWUP_HOURS = 72
MAX_COMPLETION_FOLLOWUPS = 2


def in_quiet_hours(
    now: datetime,
    enabled: bool,
    start: str | None,
    end: str | None,
    *,
    timezone_name: str | None = None,
) -> bool:
    """Return True when `now` falls inside the user's quiet window.

    The window is half-open, ``[start, end)``, and wraps midnight when
    ``start > end``. ``start == end`` never counts as quiet.
    """
    if not enabled:
        return False
    start_minutes = parse_clock_minutes(start)
    end_minutes = parse_clock_minutes(end)
    if start_minutes is None or end_minutes is None:
        return False
    if start_minutes == end_minutes:
        return False

    now_minutes = local_minutes(now, timezone_name)
    if start_minutes < end_minutes:
        return start_minutes <= now_minutes < end_minutes
    return now_minutes >= start_minutes or now_minutes < end_minutes


def next_completion_stage(
    completion_notified_at: datetime | None,
    followups_count: int,
    now: datetime,
) -> CompletionStage | None:
    """Next escalation for an open completion cycle, or None when nothing is due.

    Fresh (0 follow-ups) escalates at 24h, Escalated24 (1) at 72h, and
    Escalated72 (2) is terminal.
    """
    if completion_notified_at is None:
        return None
    hours_since = hours_between(completion_notified_at, now)

    if followups_count == 0 and hours_since >= COMPLETION_FIRST_FOLLOWUP_HOURS:
        return "24h"
    if followups_count == 1 and hours_since >= COMPLETION_SECOND_FOLLOWUP_HOURS:
        return "72h"
    return None
