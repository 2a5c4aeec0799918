"""Read per-user notification settings with engine defaults."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import UserNotificationSettings

from .common import eq
from .copy import normalize_locale


@dataclass(frozen=True)
class NotificationSettings:
    locale: str = "en"
    push_enabled: bool = True
    deadline_reminders_enabled: bool = True
    quiet_hours_enabled: bool = True
    quiet_hours_start: str = "22:00"
    quiet_hours_end: str = "09:00"


DEFAULT_NOTIFICATION_SETTINGS = NotificationSettings()


def settings_from_row(row: UserNotificationSettings | None) -> NotificationSettings:
    if row is None:
        return DEFAULT_NOTIFICATION_SETTINGS

    defaults = DEFAULT_NOTIFICATION_SETTINGS

    def _pick(value, default):
        return default if value is None else value

    return NotificationSettings(
        locale=normalize_locale(row.locale),
        push_enabled=_pick(row.push_enabled, defaults.push_enabled),
        deadline_reminders_enabled=_pick(
            row.deadline_reminders_enabled, defaults.deadline_reminders_enabled
        ),
        quiet_hours_enabled=_pick(row.quiet_hours_enabled, defaults.quiet_hours_enabled),
        quiet_hours_start=_pick(row.quiet_hours_start, defaults.quiet_hours_start),
        quiet_hours_end=_pick(row.quiet_hours_end, defaults.quiet_hours_end),
    )


async def load_notification_settings(
    session: AsyncSession,
    user_id: str,
) -> NotificationSettings:
    result = await session.execute(
        select(UserNotificationSettings)
        .where(eq(UserNotificationSettings.user_id, user_id))
        .limit(1)
    )
    return settings_from_row(result.scalar_one_or_none())
