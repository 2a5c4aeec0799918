"""Tests for the periodic notification scan."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Deal, Notification, NotificationState
from models.deal import (
    DEAL_STATUS_ACTIVE,
    DEAL_STATUS_AWAITING_CONFIRMATION,
    INVITE_STATUS_ACCEPTED,
    INVITE_STATUS_AWAITING,
    INVITE_STATUS_DECLINED,
)
from services.notifications import (
    NotificationCategory,
    NotificationRequest,
    notify_deal_completed,
    notify_deal_created,
    write_notification,
)
from services.notifications import scanner as scanner_module
from services.notifications.scanner import (
    completion_followup_stage,
    due_soon_due,
    invite_followup_due,
    overdue_creator_due,
    overdue_executor_due,
    run_notification_scan,
)
from services.notifications.state import get_notification_state, update_notification_state

NOON = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


async def _deal_notifications(session: AsyncSession, promise_id: str) -> list[Notification]:
    result = await session.execute(
        select(Notification)
        .where(Notification.promise_id == promise_id)  # type: ignore[arg-type]
        .order_by(Notification.id)  # type: ignore[arg-type]
    )
    return list(result.scalars().all())


def _memory_deal(**overrides) -> Deal:
    values = {
        "id": "deal-1",
        "creator_id": "creator",
        "promisee_id": "creator",
        "promisor_id": "executor",
        "counterparty_id": "executor",
        "status": DEAL_STATUS_ACTIVE,
        "invite_status": INVITE_STATUS_ACCEPTED,
    }
    values.update(overrides)
    return Deal(**values)


# Eligibility predicates


def test_invite_followup_waits_24_hours_after_invite() -> None:
    deal = _memory_deal(invite_status=INVITE_STATUS_AWAITING)
    state = NotificationState(promise_id="deal-1", invite_notified_at=NOON)

    assert not invite_followup_due(deal, state, NOON + timedelta(hours=23))
    assert invite_followup_due(deal, state, NOON + timedelta(hours=24))
    assert not invite_followup_due(deal, None, NOON + timedelta(hours=48))

    state.invite_followup_notified_at = NOON + timedelta(hours=24)
    assert not invite_followup_due(deal, state, NOON + timedelta(hours=48))


def test_invite_followup_stops_once_invite_is_answered() -> None:
    state = NotificationState(promise_id="deal-1", invite_notified_at=NOON)
    later = NOON + timedelta(hours=30)

    assert not invite_followup_due(_memory_deal(), state, later)
    assert not invite_followup_due(
        _memory_deal(invite_status=INVITE_STATUS_DECLINED), state, later
    )


def test_due_soon_window_is_next_24_hours() -> None:
    assert due_soon_due(_memory_deal(due_at=NOON + timedelta(hours=5)), None, NOON)
    assert due_soon_due(_memory_deal(due_at=NOON + timedelta(hours=24)), None, NOON)
    assert not due_soon_due(_memory_deal(due_at=NOON + timedelta(hours=25)), None, NOON)
    assert not due_soon_due(_memory_deal(due_at=NOON - timedelta(minutes=1)), None, NOON)
    assert not due_soon_due(
        _memory_deal(due_at=NOON + timedelta(hours=5), invite_status=INVITE_STATUS_AWAITING),
        None,
        NOON,
    )
    sent = NotificationState(promise_id="deal-1", due_soon_notified_at=NOON)
    assert not due_soon_due(_memory_deal(due_at=NOON + timedelta(hours=5)), sent, NOON)


def test_overdue_tracks() -> None:
    deal = _memory_deal(due_at=NOON - timedelta(hours=1))
    state = NotificationState(
        promise_id="deal-1",
        overdue_notified_at=NOON,
        overdue_creator_notified_at=NOON,
    )

    assert overdue_executor_due(deal, None, NOON)
    assert overdue_creator_due(deal, None, NOON)
    assert not overdue_executor_due(deal, state, NOON + timedelta(hours=71))
    assert overdue_executor_due(deal, state, NOON + timedelta(hours=72))
    assert not overdue_creator_due(deal, state, NOON + timedelta(hours=500))


def test_creator_track_skipped_when_creator_executes() -> None:
    deal = _memory_deal(
        promisor_id=None,
        promisee_id=None,
        counterparty_id="other",
        due_at=NOON - timedelta(hours=1),
    )
    assert overdue_executor_due(deal, None, NOON)
    assert not overdue_creator_due(deal, None, NOON)


def test_completion_stage_ignores_stale_cycles() -> None:
    deal = _memory_deal(status=DEAL_STATUS_AWAITING_CONFIRMATION, completed_at=NOON)
    current = NotificationState(
        promise_id="deal-1",
        completion_notified_at=NOON,
        completion_cycle_started_at=NOON,
        completion_cycle_id=1,
        completion_followups_count=0,
    )
    stale_anchor = NotificationState(
        promise_id="deal-1",
        completion_notified_at=NOON - timedelta(hours=1),
        completion_cycle_started_at=NOON,
        completion_cycle_id=2,
        completion_followups_count=0,
    )
    recompleted = _memory_deal(
        status=DEAL_STATUS_AWAITING_CONFIRMATION,
        completed_at=NOON + timedelta(hours=1),
    )

    later = NOON + timedelta(hours=30)
    assert completion_followup_stage(deal, current, later) == "24h"
    assert completion_followup_stage(deal, stale_anchor, later) is None
    assert completion_followup_stage(recompleted, current, later) is None
    assert completion_followup_stage(_memory_deal(), current, later) is None


# Scan passes


@pytest.mark.asyncio
async def test_overdue_scan_repeats_for_executor_but_not_creator(
    db_session: AsyncSession,
    make_deal,
) -> None:
    deal = await make_deal(due_at=NOON - timedelta(hours=1))
    promise_id, creator_id, executor_id = deal.id, deal.creator_id, deal.promisor_id

    first = await run_notification_scan(db_session, now=NOON)
    rerun = await run_notification_scan(db_session, now=NOON + timedelta(hours=1))
    later = await run_notification_scan(db_session, now=NOON + timedelta(hours=80))
    again = await run_notification_scan(db_session, now=NOON + timedelta(hours=81))

    assert first.results["overdue"] == 2
    assert rerun.results["overdue"] == 0
    assert later.results["overdue"] == 1
    assert again.results["overdue"] == 0

    rows = await _deal_notifications(db_session, promise_id)
    executor_keys = [row.dedupe_key for row in rows if row.user_id == executor_id]
    creator_keys = [row.dedupe_key for row in rows if row.user_id == creator_id]
    assert executor_keys == [
        f"overdue:{promise_id}:executor:first",
        f"overdue:{promise_id}:executor:repeat:{int(NOON.timestamp())}",
    ]
    assert creator_keys == [f"overdue:{promise_id}:creator"]
    assert {row.category for row in rows} == {"overdue"}

    state = await get_notification_state(db_session, promise_id)
    assert state is not None
    assert state.overdue_creator_notified_at is not None


@pytest.mark.asyncio
async def test_invite_followup_scan(
    db_session: AsyncSession,
    make_deal,
) -> None:
    deal = await make_deal(invite_status=INVITE_STATUS_AWAITING)
    promise_id, invitee_id = deal.id, deal.promisor_id
    await notify_deal_created(db_session, deal, now=NOON)

    early = await run_notification_scan(db_session, now=NOON + timedelta(hours=23))
    due = await run_notification_scan(db_session, now=NOON + timedelta(hours=25))
    after = await run_notification_scan(db_session, now=NOON + timedelta(hours=50))

    assert early.results["invite_followups"] == 0
    assert due.results["invite_followups"] == 1
    assert after.results["invite_followups"] == 0

    rows = await _deal_notifications(db_session, promise_id)
    assert [(row.user_id, row.category, row.dedupe_key) for row in rows] == [
        (invitee_id, "invite", f"invite:{promise_id}"),
        (invitee_id, "invite", f"invite:{promise_id}:followup"),
    ]
    assert rows[1].body == "Still pending. Confirm or decline"


@pytest.mark.asyncio
async def test_due_soon_scan_sends_once(
    db_session: AsyncSession,
    make_deal,
) -> None:
    deal = await make_deal(due_at=NOON + timedelta(hours=10))
    promise_id, executor_id = deal.id, deal.promisor_id

    first = await run_notification_scan(db_session, now=NOON)
    second = await run_notification_scan(db_session, now=NOON + timedelta(hours=1))

    assert first.results == {
        "invite_followups": 0,
        "due_soon": 1,
        "overdue": 0,
        "completion_followups": 0,
    }
    assert second.results["due_soon"] == 0
    [row] = await _deal_notifications(db_session, promise_id)
    assert row.user_id == executor_id
    assert row.category == "due_soon"
    assert row.dedupe_key == f"reminder_due:{promise_id}"


@pytest.mark.asyncio
async def test_due_soon_scan_respects_reminder_opt_out(
    db_session: AsyncSession,
    make_deal,
    save_settings,
) -> None:
    deal = await make_deal(due_at=NOON + timedelta(hours=10))
    promise_id = deal.id
    await save_settings(deal.promisor_id, deadline_reminders_enabled=False)

    summary = await run_notification_scan(db_session, now=NOON)

    assert summary.results["due_soon"] == 0
    assert summary.processed["due_soon"] == 1
    assert summary.skipped["deadline_reminders_disabled"] == 1
    state = await get_notification_state(db_session, promise_id)
    assert state is None or state.due_soon_notified_at is None


@pytest.mark.asyncio
async def test_completion_followups_escalate_twice(
    db_session: AsyncSession,
    make_deal,
) -> None:
    deal = await make_deal(
        status=DEAL_STATUS_AWAITING_CONFIRMATION,
        completed_at=NOON,
    )
    promise_id, creator_id = deal.id, deal.creator_id
    await notify_deal_completed(db_session, deal, actor_id=deal.promisor_id, now=NOON)

    counts = []
    for hours in (23, 25, 30, 73, 200):
        summary = await run_notification_scan(db_session, now=NOON + timedelta(hours=hours))
        counts.append(summary.results["completion_followups"])

    assert counts == [0, 1, 0, 1, 0]
    rows = await _deal_notifications(db_session, promise_id)
    followups = [row for row in rows if row.category == "completion_followup"]
    assert [row.dedupe_key for row in followups] == [
        f"completion_followup:{promise_id}:1:24h",
        f"completion_followup:{promise_id}:1:72h",
    ]
    assert {row.user_id for row in followups} == {creator_id}
    assert followups[1].body == "Still pending. Please confirm or dispute"

    state = await get_notification_state(db_session, promise_id)
    assert state is not None
    assert state.completion_followups_count == 2
    assert state.completion_followup_last_at is not None


@pytest.mark.asyncio
async def test_completion_followup_skips_stale_cycle(
    db_session: AsyncSession,
    make_deal,
) -> None:
    deal = await make_deal(
        status=DEAL_STATUS_AWAITING_CONFIRMATION,
        completed_at=NOON,
    )
    promise_id = deal.id
    await update_notification_state(
        db_session,
        promise_id,
        now=NOON,
        completion_cycle_id=2,
        completion_cycle_started_at=NOON,
        completion_notified_at=NOON - timedelta(hours=5),
    )

    summary = await run_notification_scan(db_session, now=NOON + timedelta(hours=100))

    assert summary.results["completion_followups"] == 0
    assert await _deal_notifications(db_session, promise_id) == []


@pytest.mark.asyncio
async def test_failed_candidate_does_not_stop_the_scan(
    db_session: AsyncSession,
    make_deal,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    broken = await make_deal(due_at=NOON - timedelta(hours=2))
    healthy = await make_deal(due_at=NOON - timedelta(hours=1))
    broken_id, healthy_id = broken.id, healthy.id
    original_dispatch = scanner_module.dispatch_notification_event

    async def _flaky_dispatch(session, event, deal, **kwargs):
        if deal.id == broken_id:
            raise RuntimeError("store unavailable")
        return await original_dispatch(session, event, deal, **kwargs)

    monkeypatch.setattr(scanner_module, "dispatch_notification_event", _flaky_dispatch)

    summary = await run_notification_scan(db_session, now=NOON)

    assert summary.ok is True
    assert summary.results["overdue"] == 2
    assert summary.skipped["error"] == 1
    assert await _deal_notifications(db_session, broken_id) == []
    assert len(await _deal_notifications(db_session, healthy_id)) == 2


@pytest.mark.asyncio
async def test_failed_candidate_query_zeroes_that_category(
    db_session: AsyncSession,
    make_deal,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await make_deal(due_at=NOON - timedelta(hours=1))

    def _broken_query(now, limit):
        raise OperationalError("SELECT deals", {}, Exception("connection lost"))

    steps = tuple(
        (name, _broken_query if name == "due_soon" else build, handler)
        for name, build, handler in scanner_module.SCAN_STEPS
    )
    monkeypatch.setattr(scanner_module, "SCAN_STEPS", steps)

    summary = await run_notification_scan(db_session, now=NOON)

    assert summary.ok is False
    assert summary.results["due_soon"] == 0
    assert summary.results["overdue"] == 2


@pytest.mark.asyncio
async def test_scan_limit_caps_candidates_per_category(
    db_session: AsyncSession,
    make_deal,
) -> None:
    for hours in (1, 2, 3):
        await make_deal(due_at=NOON + timedelta(hours=hours))

    summary = await run_notification_scan(db_session, now=NOON, limit=2)

    assert summary.processed["due_soon"] == 2
    assert summary.results["due_soon"] == 2


# Candidates that can never qualify must not starve newer deals.

LONG_AGO = NOON - timedelta(days=30)


@pytest.mark.asyncio
async def test_answered_invites_do_not_fill_the_scan_limit(
    db_session: AsyncSession,
    make_deal,
) -> None:
    for _ in range(3):
        answered = await make_deal(created_at=LONG_AGO)
        await update_notification_state(
            db_session,
            answered.id,
            now=LONG_AGO,
            invite_notified_at=NOON - timedelta(days=20),
        )
    pending = await make_deal(invite_status=INVITE_STATUS_AWAITING)
    pending_id = pending.id
    await update_notification_state(
        db_session,
        pending_id,
        now=NOON,
        invite_notified_at=NOON - timedelta(hours=48),
    )

    summary = await run_notification_scan(db_session, now=NOON, limit=3)

    assert summary.results["invite_followups"] == 1
    [row] = await _deal_notifications(db_session, pending_id)
    assert row.dedupe_key == f"invite:{pending_id}:followup"


@pytest.mark.asyncio
async def test_recently_reminded_overdue_deals_do_not_fill_the_scan_limit(
    db_session: AsyncSession,
    make_deal,
) -> None:
    for _ in range(3):
        reminded = await make_deal(
            created_at=LONG_AGO,
            due_at=NOON - timedelta(days=10),
        )
        await update_notification_state(
            db_session,
            reminded.id,
            now=NOON,
            overdue_notified_at=NOON - timedelta(hours=1),
            overdue_creator_notified_at=NOON - timedelta(days=9),
        )
    fresh = await make_deal(due_at=NOON - timedelta(hours=1))
    fresh_id = fresh.id

    summary = await run_notification_scan(db_session, now=NOON, limit=3)

    assert summary.results["overdue"] == 2
    assert len(await _deal_notifications(db_session, fresh_id)) == 2


@pytest.mark.asyncio
async def test_stale_completion_cycles_do_not_fill_the_scan_limit(
    db_session: AsyncSession,
    make_deal,
) -> None:
    for _ in range(3):
        stale = await make_deal(
            created_at=LONG_AGO,
            status=DEAL_STATUS_AWAITING_CONFIRMATION,
            completed_at=LONG_AGO,
        )
        await update_notification_state(
            db_session,
            stale.id,
            now=LONG_AGO,
            completion_cycle_id=2,
            completion_cycle_started_at=LONG_AGO,
            completion_notified_at=LONG_AGO - timedelta(hours=1),
        )
    waiting = await make_deal(
        status=DEAL_STATUS_AWAITING_CONFIRMATION,
        completed_at=NOON,
    )
    waiting_id = waiting.id
    await notify_deal_completed(db_session, waiting, actor_id=waiting.promisor_id, now=NOON)

    summary = await run_notification_scan(
        db_session, now=NOON + timedelta(hours=25), limit=3
    )

    assert summary.results["completion_followups"] == 1
    keys = {row.dedupe_key for row in await _deal_notifications(db_session, waiting_id)}
    assert f"completion_followup:{waiting_id}:1:24h" in keys


# A stored row whose state stamp was lost still advances the state.


@pytest.mark.asyncio
async def test_completion_followup_recovers_from_unstamped_row(
    db_session: AsyncSession,
    make_deal,
) -> None:
    deal = await make_deal(
        status=DEAL_STATUS_AWAITING_CONFIRMATION,
        completed_at=NOON,
    )
    promise_id, creator_id = deal.id, deal.creator_id
    await notify_deal_completed(db_session, deal, actor_id=deal.promisor_id, now=NOON)
    await write_notification(
        db_session,
        NotificationRequest(
            user_id=creator_id,
            promise_id=promise_id,
            category=NotificationCategory.COMPLETION_FOLLOWUP,
            dedupe_key=f"completion_followup:{promise_id}:1:24h",
            cta_url=f"/promises/{promise_id}/confirm",
            stage="24h",
        ),
        now=NOON + timedelta(hours=25),
    )

    recovered = await run_notification_scan(db_session, now=NOON + timedelta(hours=26))
    escalated = await run_notification_scan(db_session, now=NOON + timedelta(hours=80))

    assert recovered.results["completion_followups"] == 0
    assert recovered.skipped["dedupe"] == 1
    assert escalated.results["completion_followups"] == 1
    keys = [row.dedupe_key for row in await _deal_notifications(db_session, promise_id)]
    assert f"completion_followup:{promise_id}:1:72h" in keys

    state = await get_notification_state(db_session, promise_id)
    assert state is not None
    assert state.completion_followups_count == 2


@pytest.mark.asyncio
async def test_overdue_executor_recovers_from_unstamped_first_row(
    db_session: AsyncSession,
    make_deal,
) -> None:
    deal = await make_deal(due_at=NOON - timedelta(hours=2))
    promise_id, executor_id = deal.id, deal.promisor_id
    await write_notification(
        db_session,
        NotificationRequest(
            user_id=executor_id,
            promise_id=promise_id,
            category=NotificationCategory.OVERDUE,
            dedupe_key=f"overdue:{promise_id}:executor:first",
            cta_url=f"/promises/{promise_id}",
            role="executor",
        ),
        now=NOON,
    )
    recovered_at = NOON + timedelta(hours=1)

    recovered = await run_notification_scan(db_session, now=recovered_at)
    repeated = await run_notification_scan(
        db_session, now=recovered_at + timedelta(hours=73)
    )

    assert recovered.results["overdue"] == 1
    assert recovered.skipped["dedupe"] == 1
    assert repeated.results["overdue"] == 1
    executor_keys = [
        row.dedupe_key
        for row in await _deal_notifications(db_session, promise_id)
        if row.user_id == executor_id
    ]
    assert executor_keys == [
        f"overdue:{promise_id}:executor:first",
        f"overdue:{promise_id}:executor:repeat:{int(recovered_at.timestamp())}",
    ]
