"""Entry points called by deal lifecycle handlers after their own commit."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from models import Deal

from .categories import NotificationCategory, NotificationRole, default_priority
from .dispatch import DispatchResult, dispatch_notification_event
from .ids import (
    build_completion_waiting_dedupe_key,
    build_confirm_cta_url,
    build_deal_cta_url,
    build_invite_cta_url,
    build_invite_dedupe_key,
    build_invite_followup_dedupe_key,
)
from .recipients import resolve_role
from .state import (
    ensure_notification_state,
    start_completion_cycle,
    update_notification_state,
)
from .timeutils import ensure_aware, utcnow
from .writer import NotificationOutcome, NotificationRequest, write_notification

logger = logging.getLogger(__name__)


async def notify_deal_created(
    session: AsyncSession,
    deal: Deal,
    *,
    now: datetime | None = None,
) -> NotificationOutcome | None:
    """Create the deal's state row and send the invite to the counterparty."""
    now = ensure_aware(now or utcnow())
    promise_id = deal.id
    recipient_id = deal.invitee_id
    request = None
    if recipient_id:
        request = NotificationRequest(
            user_id=recipient_id,
            promise_id=promise_id,
            category=NotificationCategory.INVITE,
            dedupe_key=build_invite_dedupe_key(promise_id),
            cta_url=build_invite_cta_url(promise_id, deal.invite_token),
            priority=default_priority(NotificationCategory.INVITE),
            role=resolve_role(deal, recipient_id),
        )
    await ensure_notification_state(session, promise_id, now=now)

    if request is None:
        logger.info(
            "Invite notification skipped",
            extra={"promise_id": promise_id, "reason": "missing_counterparty"},
        )
        return None

    outcome = await write_notification(session, request, now=now)
    if outcome.created:
        await update_notification_state(
            session, promise_id, now=now, invite_notified_at=now
        )
    return outcome


async def notify_invite_accepted(
    session: AsyncSession,
    deal: Deal,
    *,
    now: datetime | None = None,
) -> list[DispatchResult]:
    """Tell both sides the agreement is active, one notification per role."""
    now = ensure_aware(now or utcnow())
    promise_id = deal.id
    targets: list[tuple[str, NotificationRole]] = []
    executor_id = deal.executor_id
    if executor_id and executor_id != deal.creator_id:
        targets.append((executor_id, "executor"))
    targets.append((deal.creator_id, "creator"))

    results: list[DispatchResult] = []
    for user_id, role in targets:
        outcome = await write_notification(
            session,
            NotificationRequest(
                user_id=user_id,
                promise_id=promise_id,
                category=NotificationCategory.INVITE_FOLLOWUP,
                dedupe_key=build_invite_followup_dedupe_key(promise_id, role),
                cta_url=build_deal_cta_url(promise_id),
                priority=default_priority(NotificationCategory.INVITE_FOLLOWUP),
                role=role,
            ),
            now=now,
        )
        results.append(DispatchResult(user_id=user_id, outcome=outcome))
    return results


async def notify_deal_completed(
    session: AsyncSession,
    deal: Deal,
    *,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> list[DispatchResult]:
    """Open a completion cycle and ask the confirmer to confirm or dispute."""
    now = ensure_aware(now or utcnow())
    promise_id = deal.id
    state = await start_completion_cycle(session, promise_id, now=now)
    results = await dispatch_notification_event(
        session,
        "completed",
        deal,
        actor_id=actor_id,
        cta_url=build_confirm_cta_url(promise_id),
        dedupe_key=build_completion_waiting_dedupe_key(
            promise_id, state.completion_cycle_id
        ),
        now=now,
    )
    if any(result.outcome.created for result in results):
        await update_notification_state(
            session, promise_id, now=now, completion_notified_at=now
        )
    return results


async def notify_deal_confirmed(
    session: AsyncSession,
    deal: Deal,
    *,
    actor_id: str | None = None,
    delta: int | None = None,
    now: datetime | None = None,
) -> list[DispatchResult]:
    return await dispatch_notification_event(
        session, "confirmed", deal, actor_id=actor_id, delta=delta, now=now
    )


async def notify_deal_disputed(
    session: AsyncSession,
    deal: Deal,
    *,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> list[DispatchResult]:
    return await dispatch_notification_event(
        session, "disputed", deal, actor_id=actor_id, now=now
    )


__all__ = [
    "notify_deal_completed",
    "notify_deal_confirmed",
    "notify_deal_created",
    "notify_deal_disputed",
    "notify_invite_accepted",
]
