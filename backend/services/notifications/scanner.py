"""Periodic scan that sends staged reminders for open deals.

One call is one tick. Every candidate is evaluated on its own: the
NotificationState row gates re-attempts between ticks, the dedupe key gates
duplicates, and a failure on one deal never stops the rest of the pass.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, cast

from sqlalchemy import Select, and_, not_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import settings
from models import Deal, NotificationState
from models.deal import (
    DEAL_STATUS_ACTIVE,
    DEAL_STATUS_AWAITING_CONFIRMATION,
    INVITE_STATUS_ACCEPTED,
    INVITE_STATUS_AWAITING,
    INVITE_STATUSES,
)

from .categories import NotificationCategory, default_priority
from .common import asc, eq, gte, is_not_null, is_null, lt, lte
from .dispatch import dispatch_notification_event
from .ids import (
    build_completion_followup_dedupe_key,
    build_confirm_cta_url,
    build_deal_cta_url,
    build_invite_cta_url,
    build_invite_reminder_dedupe_key,
    build_overdue_creator_dedupe_key,
    build_overdue_executor_dedupe_key,
)
from .policy import (
    COMPLETION_FIRST_FOLLOWUP_HOURS,
    COMPLETION_SECOND_FOLLOWUP_HOURS,
    MAX_COMPLETION_FOLLOWUPS,
    CompletionStage,
    next_completion_stage,
)
from .recipients import resolve_role
from .state import update_notification_state
from .timeutils import ensure_aware, hours_between, utcnow
from .writer import NotificationOutcome, NotificationRequest, write_notification

logger = logging.getLogger(__name__)

INVITE_FOLLOWUP_AFTER_HOURS = 24
DUE_SOON_WINDOW = timedelta(hours=24)
OVERDUE_REPEAT_HOURS = 72

SCAN_CATEGORIES = ("invite_followups", "due_soon", "overdue", "completion_followups")

Candidate = tuple[Deal, NotificationState | None]


def _counts() -> dict[str, int]:
    return {name: 0 for name in SCAN_CATEGORIES}


@dataclass
class ScanSummary:
    ok: bool = True
    results: dict[str, int] = field(default_factory=_counts)
    processed: dict[str, int] = field(default_factory=_counts)
    skipped: Counter[str] = field(default_factory=Counter)

    def record(self, outcome: NotificationOutcome) -> None:
        if outcome.skipped_reason:
            self.skipped[outcome.skipped_reason] += 1


# Eligibility predicates. Pure over (deal, state, now).


def invite_followup_due(
    deal: Deal, state: NotificationState | None, now: datetime
) -> bool:
    if deal.status != DEAL_STATUS_ACTIVE:
        return False
    if deal.resolved_invite_status != INVITE_STATUS_AWAITING:
        return False
    if state is None or state.invite_notified_at is None:
        return False
    if state.invite_followup_notified_at is not None:
        return False
    return hours_between(state.invite_notified_at, now) >= INVITE_FOLLOWUP_AFTER_HOURS


def due_soon_due(deal: Deal, state: NotificationState | None, now: datetime) -> bool:
    if deal.status != DEAL_STATUS_ACTIVE or not deal.is_accepted:
        return False
    if deal.due_at is None:
        return False
    due_at = ensure_aware(deal.due_at)
    if not (now <= due_at <= now + DUE_SOON_WINDOW):
        return False
    return state is None or state.due_soon_notified_at is None


def _is_overdue(deal: Deal, now: datetime) -> bool:
    if deal.status != DEAL_STATUS_ACTIVE or not deal.is_accepted:
        return False
    return deal.due_at is not None and ensure_aware(deal.due_at) < now


def overdue_executor_due(
    deal: Deal, state: NotificationState | None, now: datetime
) -> bool:
    if not _is_overdue(deal, now) or deal.executor_id is None:
        return False
    last_sent_at = state.overdue_notified_at if state is not None else None
    if last_sent_at is None:
        return True
    return hours_between(last_sent_at, now) >= OVERDUE_REPEAT_HOURS


def overdue_creator_due(
    deal: Deal, state: NotificationState | None, now: datetime
) -> bool:
    if not _is_overdue(deal, now):
        return False
    if deal.executor_id == deal.creator_id:
        return False
    return state is None or state.overdue_creator_notified_at is None


def completion_cycle_current(deal: Deal, state: NotificationState) -> bool:
    """True when the anchor belongs to the cycle that is open right now."""
    if state.completion_notified_at is None or state.completion_cycle_started_at is None:
        return False
    started_at = ensure_aware(state.completion_cycle_started_at)
    if ensure_aware(state.completion_notified_at) < started_at:
        return False
    if deal.completed_at is not None and ensure_aware(deal.completed_at) > started_at:
        return False
    return True


def completion_followup_stage(
    deal: Deal, state: NotificationState | None, now: datetime
) -> CompletionStage | None:
    if deal.status != DEAL_STATUS_AWAITING_CONFIRMATION or state is None:
        return None
    if not completion_cycle_current(deal, state):
        return None
    if state.completion_followups_count >= MAX_COMPLETION_FOLLOWUPS:
        return None
    return next_completion_stage(
        state.completion_notified_at, state.completion_followups_count, now
    )


# Candidate queries. Each filter mirrors its predicate so rows that can never
# qualify do not take up slots under the scan limit.


def _candidates_query(*conditions: ColumnElement[bool], limit: int) -> Select[Any]:
    state_promise_id = cast(Any, NotificationState.promise_id)
    return (
        select(Deal, NotificationState)
        .outerjoin(NotificationState, state_promise_id == Deal.id)
        .where(*conditions)
        .order_by(asc(cast(Any, Deal.created_at)), asc(cast(Any, Deal.id)))
        .limit(limit)
    )


def _invite_status_unset() -> ColumnElement[bool]:
    invite_status = cast(Any, Deal.invite_status)
    return or_(invite_status.is_(None), invite_status.not_in(sorted(INVITE_STATUSES)))


def _invite_awaiting() -> ColumnElement[bool]:
    return or_(
        eq(Deal.invite_status, INVITE_STATUS_AWAITING),
        and_(
            _invite_status_unset(),
            is_null(Deal.accepted_at),
            is_null(Deal.counterparty_accepted_at),
        ),
    )


def _invite_accepted() -> ColumnElement[bool]:
    return or_(
        eq(Deal.invite_status, INVITE_STATUS_ACCEPTED),
        and_(
            _invite_status_unset(),
            or_(
                is_not_null(Deal.accepted_at),
                is_not_null(Deal.counterparty_accepted_at),
            ),
        ),
    )


def _has_executor() -> ColumnElement[bool]:
    return or_(is_not_null(Deal.promisor_id), is_null(Deal.promisee_id))


def _creator_executes() -> ColumnElement[bool]:
    return or_(
        and_(is_not_null(Deal.promisor_id), eq(Deal.promisor_id, Deal.creator_id)),
        and_(is_null(Deal.promisor_id), is_null(Deal.promisee_id)),
    )


def invite_followup_query(now: datetime, limit: int) -> Select[Any]:
    cutoff = now - timedelta(hours=INVITE_FOLLOWUP_AFTER_HOURS)
    return _candidates_query(
        eq(Deal.status, DEAL_STATUS_ACTIVE),
        _invite_awaiting(),
        is_not_null(NotificationState.invite_notified_at),
        is_null(NotificationState.invite_followup_notified_at),
        lte(NotificationState.invite_notified_at, cutoff),
        limit=limit,
    )


def due_soon_query(now: datetime, limit: int) -> Select[Any]:
    return _candidates_query(
        eq(Deal.status, DEAL_STATUS_ACTIVE),
        _invite_accepted(),
        gte(Deal.due_at, now),
        lte(Deal.due_at, now + DUE_SOON_WINDOW),
        is_null(NotificationState.due_soon_notified_at),
        limit=limit,
    )


def overdue_query(now: datetime, limit: int) -> Select[Any]:
    repeat_cutoff = now - timedelta(hours=OVERDUE_REPEAT_HOURS)
    executor_track = and_(
        _has_executor(),
        or_(
            is_null(NotificationState.overdue_notified_at),
            lte(NotificationState.overdue_notified_at, repeat_cutoff),
        ),
    )
    creator_track = and_(
        is_null(NotificationState.overdue_creator_notified_at),
        not_(_creator_executes()),
    )
    return _candidates_query(
        eq(Deal.status, DEAL_STATUS_ACTIVE),
        _invite_accepted(),
        lt(Deal.due_at, now),
        or_(executor_track, creator_track),
        limit=limit,
    )


def completion_followup_query(now: datetime, limit: int) -> Select[Any]:
    notified_at = NotificationState.completion_notified_at
    count = NotificationState.completion_followups_count
    stage_due = or_(
        and_(
            eq(count, 0),
            lte(notified_at, now - timedelta(hours=COMPLETION_FIRST_FOLLOWUP_HOURS)),
        ),
        and_(
            eq(count, 1),
            lte(notified_at, now - timedelta(hours=COMPLETION_SECOND_FOLLOWUP_HOURS)),
        ),
    )
    cycle_started_at = NotificationState.completion_cycle_started_at
    return _candidates_query(
        eq(Deal.status, DEAL_STATUS_AWAITING_CONFIRMATION),
        is_not_null(notified_at),
        is_not_null(cycle_started_at),
        gte(notified_at, cycle_started_at),
        or_(is_null(Deal.completed_at), lte(Deal.completed_at, cycle_started_at)),
        lt(count, MAX_COMPLETION_FOLLOWUPS),
        stage_due,
        limit=limit,
    )


async def _load_candidates(
    session: AsyncSession,
    statement: Select[Any],
) -> list[Candidate]:
    result = await session.execute(statement)
    candidates: list[Candidate] = []
    for deal, state in result.all():
        # Detach so a rollback for one candidate leaves the rest readable.
        session.expunge(deal)
        if state is not None:
            session.expunge(state)
        candidates.append((deal, state))
    return candidates


# Per-candidate handlers. Each returns how many notifications it created.


def _row_exists(outcome: NotificationOutcome) -> bool:
    """True when the staged row is stored, whether this tick wrote it or not.

    A ``dedupe`` skip on a scanner-built key means an earlier tick inserted
    the row but never stamped the state, so the state still has to advance.
    """
    return outcome.created or outcome.skipped_reason == "dedupe"


def _log_state_recovered(deal: Deal, scan_category: str) -> None:
    logger.info(
        "Notification state advanced for existing row",
        extra={"promise_id": deal.id, "scan_category": scan_category},
    )


async def _process_invite_followup(
    session: AsyncSession,
    deal: Deal,
    state: NotificationState | None,
    now: datetime,
    summary: ScanSummary,
) -> int:
    recipient_id = deal.invitee_id
    if not invite_followup_due(deal, state, now) or not recipient_id:
        return 0
    summary.processed["invite_followups"] += 1
    outcome = await write_notification(
        session,
        NotificationRequest(
            user_id=recipient_id,
            promise_id=deal.id,
            category=NotificationCategory.INVITE,
            dedupe_key=build_invite_reminder_dedupe_key(deal.id),
            cta_url=build_invite_cta_url(deal.id, deal.invite_token),
            priority=default_priority(NotificationCategory.INVITE),
            role=resolve_role(deal, recipient_id),
            stage="followup",
        ),
        now=now,
    )
    summary.record(outcome)
    if not _row_exists(outcome):
        return 0
    if not outcome.created:
        _log_state_recovered(deal, "invite_followups")
    await update_notification_state(
        session, deal.id, now=now, invite_followup_notified_at=now
    )
    return int(outcome.created)


async def _process_due_soon(
    session: AsyncSession,
    deal: Deal,
    state: NotificationState | None,
    now: datetime,
    summary: ScanSummary,
) -> int:
    if not due_soon_due(deal, state, now):
        return 0
    summary.processed["due_soon"] += 1
    results = await dispatch_notification_event(session, "reminder_due", deal, now=now)
    for result in results:
        summary.record(result.outcome)
    if not any(_row_exists(result.outcome) for result in results):
        return 0
    created = any(result.outcome.created for result in results)
    if not created:
        _log_state_recovered(deal, "due_soon")
    await update_notification_state(session, deal.id, now=now, due_soon_notified_at=now)
    return int(created)


async def _process_overdue(
    session: AsyncSession,
    deal: Deal,
    state: NotificationState | None,
    now: datetime,
    summary: ScanSummary,
) -> int:
    created = 0

    if overdue_executor_due(deal, state, now):
        summary.processed["overdue"] += 1
        previous_sent_at = state.overdue_notified_at if state is not None else None
        results = await dispatch_notification_event(
            session,
            "reminder_overdue",
            deal,
            dedupe_key=build_overdue_executor_dedupe_key(deal.id, previous_sent_at),
            now=now,
        )
        for result in results:
            summary.record(result.outcome)
        if any(_row_exists(result.outcome) for result in results):
            if any(result.outcome.created for result in results):
                created += 1
            else:
                _log_state_recovered(deal, "overdue")
            await update_notification_state(
                session, deal.id, now=now, overdue_notified_at=now
            )

    if overdue_creator_due(deal, state, now):
        summary.processed["overdue"] += 1
        outcome = await write_notification(
            session,
            NotificationRequest(
                user_id=deal.creator_id,
                promise_id=deal.id,
                category=NotificationCategory.OVERDUE,
                dedupe_key=build_overdue_creator_dedupe_key(deal.id),
                cta_url=build_deal_cta_url(deal.id),
                priority=default_priority(NotificationCategory.OVERDUE),
                role="creator",
            ),
            now=now,
        )
        summary.record(outcome)
        if _row_exists(outcome):
            if outcome.created:
                created += 1
            else:
                _log_state_recovered(deal, "overdue")
            await update_notification_state(
                session, deal.id, now=now, overdue_creator_notified_at=now
            )

    return created


async def _process_completion_followup(
    session: AsyncSession,
    deal: Deal,
    state: NotificationState | None,
    now: datetime,
    summary: ScanSummary,
) -> int:
    stage = completion_followup_stage(deal, state, now)
    recipient_id = deal.confirmer_id
    if stage is None or state is None or not recipient_id:
        return 0
    summary.processed["completion_followups"] += 1
    outcome = await write_notification(
        session,
        NotificationRequest(
            user_id=recipient_id,
            promise_id=deal.id,
            category=NotificationCategory.COMPLETION_FOLLOWUP,
            dedupe_key=build_completion_followup_dedupe_key(
                deal.id, state.completion_cycle_id, stage
            ),
            cta_url=build_confirm_cta_url(deal.id),
            priority=default_priority(NotificationCategory.COMPLETION_FOLLOWUP),
            role=resolve_role(deal, recipient_id),
            stage=stage,
        ),
        now=now,
    )
    summary.record(outcome)
    if not _row_exists(outcome):
        return 0
    if not outcome.created:
        _log_state_recovered(deal, "completion_followups")
    await update_notification_state(
        session,
        deal.id,
        now=now,
        completion_followups_count=state.completion_followups_count + 1,
        completion_followup_last_at=now,
    )
    return int(outcome.created)


Handler = Callable[
    [AsyncSession, Deal, "NotificationState | None", datetime, ScanSummary],
    Awaitable[int],
]

SCAN_STEPS: tuple[tuple[str, Callable[[datetime, int], Select[Any]], Handler], ...] = (
    ("invite_followups", invite_followup_query, _process_invite_followup),
    ("due_soon", due_soon_query, _process_due_soon),
    ("overdue", overdue_query, _process_overdue),
    ("completion_followups", completion_followup_query, _process_completion_followup),
)


async def run_notification_scan(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    limit: int | None = None,
) -> ScanSummary:
    """Run one tick over all four reminder categories."""
    now = ensure_aware(now or utcnow())
    limit = limit or settings.notification_scan_limit
    summary = ScanSummary()

    for name, build_query, handler in SCAN_STEPS:
        try:
            candidates = await _load_candidates(session, build_query(now, limit))
        except SQLAlchemyError:
            await session.rollback()
            summary.ok = False
            logger.warning(
                "Notification scan query failed",
                extra={"scan_category": name},
                exc_info=True,
            )
            continue

        for deal, state in candidates:
            try:
                summary.results[name] += await handler(session, deal, state, now, summary)
            except Exception:
                await session.rollback()
                summary.skipped["error"] += 1
                logger.warning(
                    "Notification scan candidate failed",
                    extra={"scan_category": name, "promise_id": deal.id},
                    exc_info=True,
                )

    logger.info(
        "Notification scan completed",
        extra={
            "created": dict(summary.results),
            "processed": dict(summary.processed),
            "skipped": dict(summary.skipped),
            "ok": summary.ok,
        },
    )
    return summary


__all__ = [
    "ScanSummary",
    "completion_cycle_current",
    "completion_followup_stage",
    "due_soon_due",
    "invite_followup_due",
    "overdue_creator_due",
    "overdue_executor_due",
    "run_notification_scan",
]
