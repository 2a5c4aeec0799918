"""Map deal lifecycle events to the participants who should hear about them."""

from __future__ import annotations

from dataclasses import dataclass

from models import Deal

from .categories import NotificationCategory, NotificationRole
from .ids import NotificationEvent, build_event_dedupe_key

EVENT_CATEGORIES: dict[str, NotificationCategory] = {
    "accepted": NotificationCategory.INVITE_FOLLOWUP,
    "completed": NotificationCategory.COMPLETION_WAITING,
    "confirmed": NotificationCategory.CONFIRMED,
    "disputed": NotificationCategory.DISPUTE,
    "reminder_due": NotificationCategory.DUE_SOON,
    "reminder_overdue": NotificationCategory.OVERDUE,
}


@dataclass(frozen=True)
class NotificationRecipient:
    user_id: str
    role: NotificationRole | None = None


def resolve_role(deal: Deal, user_id: str) -> NotificationRole | None:
    if user_id == deal.creator_id:
        return "creator"
    executor_id = deal.executor_id
    if executor_id and user_id == executor_id:
        return "executor"
    return None


def _recipient(
    deal: Deal,
    user_id: str | None,
    actor_id: str | None,
) -> list[NotificationRecipient]:
    if not user_id:
        return []
    if actor_id and user_id == actor_id:
        return []
    return [NotificationRecipient(user_id=user_id, role=resolve_role(deal, user_id))]


def recipients_for_event(
    event: NotificationEvent,
    deal: Deal,
    actor_id: str | None = None,
) -> list[NotificationRecipient]:
    """Resolve who receives `event`; the acting user never notifies themselves.

    Every event except ``accepted`` requires an accepted deal.
    """
    if event != "accepted" and not deal.is_accepted:
        return []

    if event == "accepted":
        return _recipient(deal, deal.creator_id, actor_id)
    if event == "completed":
        return _recipient(deal, deal.confirmer_id, actor_id)
    if event in ("confirmed", "disputed", "reminder_due", "reminder_overdue"):
        return _recipient(deal, deal.executor_id, actor_id)
    raise ValueError(f"Unknown notification event: {event}")


def event_category(event: NotificationEvent) -> NotificationCategory:
    try:
        return EVENT_CATEGORIES[event]
    except KeyError as exc:
        raise ValueError(f"Unknown notification event: {event}") from exc


def event_dedupe_key(event: NotificationEvent, promise_id: str) -> str:
    event_category(event)
    return build_event_dedupe_key(event, promise_id)


__all__ = [
    "EVENT_CATEGORIES",
    "NotificationRecipient",
    "event_category",
    "event_dedupe_key",
    "recipients_for_event",
    "resolve_role",
]
