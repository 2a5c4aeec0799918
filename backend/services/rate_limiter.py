"""Per-user notification rate limits.

Two independent policies guard non-critical categories:

* daily cap: at most ``DAILY_NOTIFICATION_CAP`` notifications of any
  category in the trailing 24 hours;
* per-deal cooldown: one notification per (user, deal, category) every
  24 hours.

Both windows slide with ``now``; they are recomputed from fresh queries on
every check and never cached.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Literal, cast

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Notification
from services.notifications.categories import NotificationCategory, is_critical
from services.notifications.common import desc, eq, gte
from services.notifications.timeutils import ensure_aware

DAILY_NOTIFICATION_CAP = 3
RATE_LIMIT_WINDOW = timedelta(hours=24)
PER_DEAL_COOLDOWN = timedelta(hours=24)

RateLimitReason = Literal["per_deal_cap", "daily_cap"]


def daily_cap_exceeded(
    count_in_window: int,
    category: NotificationCategory | str,
    *,
    cap: int = DAILY_NOTIFICATION_CAP,
) -> bool:
    if is_critical(category):
        return False
    return count_in_window >= cap


def per_deal_cap_exceeded(
    last_sent_at: datetime | None,
    now: datetime,
    category: NotificationCategory | str,
) -> bool:
    if is_critical(category):
        return False
    if last_sent_at is None:
        return False
    return ensure_aware(now) - ensure_aware(last_sent_at) < PER_DEAL_COOLDOWN


async def count_notifications_since(
    session: AsyncSession,
    user_id: str,
    since: datetime,
) -> int:
    id_column = cast(ColumnElement[int], Notification.id)
    result = await session.execute(
        select(func.count(id_column)).where(
            eq(Notification.user_id, user_id),
            gte(Notification.created_at, since),
        )
    )
    return int(result.scalar_one() or 0)


async def last_deal_notification_at(
    session: AsyncSession,
    user_id: str,
    promise_id: str,
    category: NotificationCategory | str,
) -> datetime | None:
    created_at_column = cast(ColumnElement[datetime], Notification.created_at)
    result = await session.execute(
        select(created_at_column)
        .where(
            eq(Notification.user_id, user_id),
            eq(Notification.promise_id, promise_id),
            eq(Notification.category, NotificationCategory(category).value),
        )
        .order_by(desc(cast(Any, Notification.created_at)))
        .limit(1)
    )
    last_sent_at = result.scalar_one_or_none()
    if last_sent_at is None:
        return None
    return ensure_aware(last_sent_at)


class NotificationRateLimiter:
    """Evaluates both caps for one pending notification."""

    def __init__(
        self,
        daily_cap: int = DAILY_NOTIFICATION_CAP,
        window: timedelta = RATE_LIMIT_WINDOW,
    ) -> None:
        self.daily_cap = max(daily_cap, 0)
        self.window = window

    async def check(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        promise_id: str,
        category: NotificationCategory | str,
        now: datetime,
    ) -> RateLimitReason | None:
        """Return the skip reason, or None when the notification may be sent."""
        if is_critical(category):
            return None

        last_sent_at = await last_deal_notification_at(
            session, user_id, promise_id, category
        )
        if per_deal_cap_exceeded(last_sent_at, now, category):
            return "per_deal_cap"

        count = await count_notifications_since(session, user_id, now - self.window)
        if daily_cap_exceeded(count, category, cap=self.daily_cap):
            return "daily_cap"
        return None


__all__ = [
    "DAILY_NOTIFICATION_CAP",
    "NotificationRateLimiter",
    "PER_DEAL_COOLDOWN",
    "RATE_LIMIT_WINDOW",
    "count_notifications_since",
    "daily_cap_exceeded",
    "last_deal_notification_at",
    "per_deal_cap_exceeded",
]
