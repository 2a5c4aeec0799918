"""Dedupe key builders and the per-user existence check."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, cast

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Notification

from .common import eq
from .timeutils import ensure_aware

NotificationEvent = Literal[
    "accepted",
    "completed",
    "confirmed",
    "disputed",
    "reminder_due",
    "reminder_overdue",
]


def build_dedupe_key(*parts: str | int) -> str:
    return ":".join(str(part) for part in parts)


def build_event_dedupe_key(event: NotificationEvent, promise_id: str) -> str:
    return build_dedupe_key(event, promise_id)


def build_invite_dedupe_key(promise_id: str) -> str:
    return build_dedupe_key("invite", promise_id)


def build_invite_reminder_dedupe_key(promise_id: str) -> str:
    return build_dedupe_key("invite", promise_id, "followup")


def build_invite_followup_dedupe_key(promise_id: str, role: str) -> str:
    return build_dedupe_key("invite_followup", promise_id, role)


def build_overdue_executor_dedupe_key(
    promise_id: str,
    previous_sent_at: datetime | None,
) -> str:
    if previous_sent_at is None:
        return build_dedupe_key("overdue", promise_id, "executor", "first")
    # Each repeat is keyed by the send it follows, so a re-run of the same
    # scan collides while the next 72h window gets a fresh key.
    anchor = int(ensure_aware(previous_sent_at).timestamp())
    return build_dedupe_key("overdue", promise_id, "executor", "repeat", anchor)


def build_overdue_creator_dedupe_key(promise_id: str) -> str:
    return build_dedupe_key("overdue", promise_id, "creator")


def build_completion_waiting_dedupe_key(promise_id: str, cycle_id: int) -> str:
    return build_dedupe_key("completion_waiting", promise_id, cycle_id, "initial")


def build_completion_followup_dedupe_key(
    promise_id: str,
    cycle_id: int,
    stage: str,
) -> str:
    return build_dedupe_key("completion_followup", promise_id, cycle_id, stage)


def build_deal_cta_url(promise_id: str, path: str | None = None) -> str:
    if path:
        return path
    return f"/promises/{promise_id}"


def build_invite_cta_url(promise_id: str, invite_token: str | None) -> str:
    if invite_token:
        return f"/p/invite/{invite_token}"
    return build_deal_cta_url(promise_id)


def build_confirm_cta_url(promise_id: str) -> str:
    return f"/promises/{promise_id}/confirm"


async def notification_exists(
    session: AsyncSession,
    user_id: str,
    dedupe_key: str,
) -> bool:
    id_column = cast(ColumnElement[int], Notification.id)
    result = await session.execute(
        select(id_column)
        .where(
            eq(Notification.user_id, user_id),
            eq(Notification.dedupe_key, dedupe_key),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None
