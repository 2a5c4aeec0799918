"""Persistence glue for the per-deal notification scoreboard."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.errors import is_unique_violation
from models import NotificationState

from .common import eq
from .timeutils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

STATE_FIELDS = frozenset(
    {
        "invite_notified_at",
        "invite_followup_notified_at",
        "due_soon_notified_at",
        "overdue_notified_at",
        "overdue_creator_notified_at",
        "completion_notified_at",
        "completion_followups_count",
        "completion_followup_last_at",
        "completion_cycle_id",
        "completion_cycle_started_at",
    }
)


async def get_notification_state(
    session: AsyncSession,
    promise_id: str,
) -> NotificationState | None:
    result = await session.execute(
        select(NotificationState).where(eq(NotificationState.promise_id, promise_id))
    )
    return result.scalar_one_or_none()


async def ensure_notification_state(
    session: AsyncSession,
    promise_id: str,
    *,
    now: datetime | None = None,
) -> NotificationState:
    """Return the state row for a deal, creating an all-null one if missing."""
    state = await get_notification_state(session, promise_id)
    if state is not None:
        return state

    state = NotificationState(
        promise_id=promise_id,
        updated_at=ensure_aware(now or utcnow()),
    )
    session.add(state)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not is_unique_violation(exc):
            raise
        # Another writer created it first.
        existing = await get_notification_state(session, promise_id)
        if existing is None:
            raise
        return existing
    return state


async def update_notification_state(
    session: AsyncSession,
    promise_id: str,
    *,
    now: datetime | None = None,
    **changes: Any,
) -> NotificationState:
    """Apply `changes`, bump the version and commit."""
    unknown = set(changes) - STATE_FIELDS
    if unknown:
        raise ValueError(f"Unknown notification state fields: {sorted(unknown)}")

    now = ensure_aware(now or utcnow())
    state = await ensure_notification_state(session, promise_id, now=now)
    for name, value in changes.items():
        setattr(state, name, value)
    state.version = (state.version or 0) + 1
    state.updated_at = now
    session.add(state)
    await session.commit()
    return state


async def start_completion_cycle(
    session: AsyncSession,
    promise_id: str,
    *,
    now: datetime | None = None,
) -> NotificationState:
    """Open a new completion cycle so its dedupe keys never reuse an old one."""
    now = ensure_aware(now or utcnow())
    state = await ensure_notification_state(session, promise_id, now=now)
    cycle_id = (state.completion_cycle_id or 0) + 1
    state = await update_notification_state(
        session,
        promise_id,
        now=now,
        completion_cycle_id=cycle_id,
        completion_cycle_started_at=now,
        completion_notified_at=None,
        completion_followups_count=0,
        completion_followup_last_at=None,
    )
    logger.info(
        "Completion cycle started",
        extra={"promise_id": promise_id, "completion_cycle_id": cycle_id},
    )
    return state


__all__ = [
    "STATE_FIELDS",
    "ensure_notification_state",
    "get_notification_state",
    "start_completion_cycle",
    "update_notification_state",
]
