"""Synchronous event dispatch used by deal lifecycle handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from models import Deal

from .categories import default_priority
from .ids import NotificationEvent, build_deal_cta_url
from .recipients import event_category, event_dedupe_key, recipients_for_event
from .writer import NotificationOutcome, NotificationRequest, write_notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    user_id: str
    outcome: NotificationOutcome


async def dispatch_notification_event(
    session: AsyncSession,
    event: NotificationEvent,
    deal: Deal,
    *,
    actor_id: str | None = None,
    cta_url: str | None = None,
    delta: int | None = None,
    stage: str | None = None,
    dedupe_key: str | None = None,
    now: datetime | None = None,
) -> list[DispatchResult]:
    promise_id = deal.id
    recipients = recipients_for_event(event, deal, actor_id)
    if not recipients:
        logger.info(
            "Notification event dispatch skipped",
            extra={
                "event": event,
                "promise_id": promise_id,
                "actor_id": actor_id,
                "reason": "no_recipients",
            },
        )
        return []

    category = event_category(event)
    key = dedupe_key or event_dedupe_key(event, promise_id)
    url = cta_url or build_deal_cta_url(promise_id)

    results: list[DispatchResult] = []
    for recipient in recipients:
        outcome = await write_notification(
            session,
            NotificationRequest(
                user_id=recipient.user_id,
                promise_id=promise_id,
                category=category,
                dedupe_key=key,
                cta_url=url,
                priority=default_priority(category),
                role=recipient.role,
                stage=stage,
                delta=delta,
            ),
            now=now,
        )
        results.append(DispatchResult(user_id=recipient.user_id, outcome=outcome))

    logger.info(
        "Notification event dispatched",
        extra={
            "event": event,
            "promise_id": promise_id,
            "actor_id": actor_id,
            "dedupe_key": key,
            "category": category.value,
            "created": sum(1 for result in results if result.outcome.created),
        },
    )
    return results


__all__ = ["DispatchResult", "dispatch_notification_event"]
