"""Notification Writer: policy checks and persistence for a single notification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core import settings as app_settings
from db.errors import describe_db_error, is_unique_violation
from models import Notification
from services.rate_limiter import NotificationRateLimiter

from .categories import (
    NotificationCategory,
    NotificationPriority,
    default_priority,
    is_critical,
    requires_deadline_reminder,
)
from .copy import CopyResolver, resolve_notification_copy
from .ids import notification_exists
from .policy import in_quiet_hours
from .preferences import NotificationSettings, load_notification_settings
from .push import PushSender, deliver_push, get_push_sender
from .timeutils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

SkipReason = Literal[
    "dedupe",
    "deadline_reminders_disabled",
    "per_deal_cap",
    "daily_cap",
    "db_error",
]


@dataclass(frozen=True)
class NotificationRequest:
    user_id: str
    promise_id: str
    category: NotificationCategory
    dedupe_key: str
    cta_url: str
    priority: NotificationPriority | None = None
    role: str | None = None
    stage: str | None = None
    delta: int | None = None
    title: str | None = None
    body: str | None = None
    cta_label: str | None = None


@dataclass(frozen=True)
class NotificationOutcome:
    created: bool
    skipped_reason: SkipReason | None = None

    @classmethod
    def skipped(cls, reason: SkipReason) -> NotificationOutcome:
        return cls(created=False, skipped_reason=reason)


CREATED = NotificationOutcome(created=True)


def _log_skip(
    request: NotificationRequest,
    reason: SkipReason,
    user_settings: NotificationSettings,
    *,
    db_error: str | None = None,
) -> None:
    logger.info(
        "Notification skipped",
        extra={
            "user_id": request.user_id,
            "promise_id": request.promise_id,
            "category": NotificationCategory(request.category).value,
            "dedupe_key": request.dedupe_key,
            "role": request.role,
            "skipped_reason": reason,
            "quiet_hours_enabled": user_settings.quiet_hours_enabled,
            "deadline_reminders_enabled": user_settings.deadline_reminders_enabled,
            "db_error": db_error,
        },
    )


async def write_notification(
    session: AsyncSession,
    request: NotificationRequest,
    *,
    now: datetime | None = None,
    rate_limiter: NotificationRateLimiter | None = None,
    copy_resolver: CopyResolver | None = None,
    push_sender: PushSender | None = None,
    timezone_name: str | None = None,
) -> NotificationOutcome:
    """Apply every gate to one request and persist it when allowed.

    Expected skips are returned, never raised. The (user_id, dedupe_key)
    unique constraint is the final word on duplicates: an insert conflict
    is reported as ``dedupe`` even when the pre-check passed.
    """
    now = ensure_aware(now or utcnow())
    category = NotificationCategory(request.category)
    limiter = rate_limiter or NotificationRateLimiter()
    resolve_copy = copy_resolver or resolve_notification_copy
    if timezone_name is None:
        timezone_name = app_settings.quiet_hours_timezone or None

    user_settings = await load_notification_settings(session, request.user_id)

    def skip(reason: SkipReason, *, db_error: str | None = None) -> NotificationOutcome:
        _log_skip(request, reason, user_settings, db_error=db_error)
        return NotificationOutcome.skipped(reason)

    if await notification_exists(session, request.user_id, request.dedupe_key):
        return skip("dedupe")

    if requires_deadline_reminder(category) and not user_settings.deadline_reminders_enabled:
        return skip("deadline_reminders_disabled")

    rate_limit_reason = await limiter.check(
        session,
        user_id=request.user_id,
        promise_id=request.promise_id,
        category=category,
        now=now,
    )
    if rate_limit_reason is not None:
        return skip(rate_limit_reason)

    quiet = in_quiet_hours(
        now,
        user_settings.quiet_hours_enabled,
        user_settings.quiet_hours_start,
        user_settings.quiet_hours_end,
        timezone_name=timezone_name,
    )
    critical = is_critical(category)
    should_push = user_settings.push_enabled and (not quiet or critical)
    if user_settings.push_enabled and quiet and not critical:
        logger.info(
            "Notification deferred by quiet hours",
            extra={
                "user_id": request.user_id,
                "promise_id": request.promise_id,
                "category": category.value,
                "dedupe_key": request.dedupe_key,
                "quiet_hours_start": user_settings.quiet_hours_start,
                "quiet_hours_end": user_settings.quiet_hours_end,
            },
        )

    copy = resolve_copy(
        user_settings.locale,
        category,
        request.role,
        request.stage,
        request.delta,
    )
    notification = Notification(
        user_id=request.user_id,
        promise_id=request.promise_id,
        category=category.value,
        role=request.role,
        title=request.title if request.title is not None else copy.title,
        body=request.body if request.body is not None else copy.body,
        cta_url=request.cta_url,
        cta_label=request.cta_label if request.cta_label is not None else copy.cta_label,
        priority=request.priority or default_priority(category),
        dedupe_key=request.dedupe_key,
        delivered_at=now if should_push else None,
        created_at=now,
    )
    session.add(notification)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            return skip("dedupe")
        return skip("db_error", db_error=describe_db_error(exc))
    except SQLAlchemyError as exc:
        await session.rollback()
        return skip("db_error", db_error=describe_db_error(exc))

    if should_push:
        await deliver_push(
            push_sender or get_push_sender(),
            user_id=request.user_id,
            category=category.value,
            cta_url=request.cta_url,
        )

    return CREATED
