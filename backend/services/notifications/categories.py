"""Closed set of notification categories and their delivery policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

NotificationPriority = Literal["low", "normal", "high", "critical"]
NotificationRole = Literal["creator", "executor"]


class NotificationCategory(str, Enum):
    INVITE = "invite"
    INVITE_FOLLOWUP = "invite_followup"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    COMPLETION_WAITING = "completion_waiting"
    COMPLETION_FOLLOWUP = "completion_followup"
    DISPUTE = "dispute"
    CONFIRMED = "confirmed"

    @classmethod
    def _missing_(cls, value: object) -> NotificationCategory | None:
        if isinstance(value, str):
            alias = LEGACY_CATEGORY_CODES.get(value.strip().upper())
            if alias is not None:
                return cls(alias)
        return None


# Short codes still sent by older clients.
LEGACY_CATEGORY_CODES: dict[str, str] = {
    "N1": "invite",
    "N2": "invite_followup",
    "N3": "due_soon",
    "N4": "overdue",
    "N5": "completion_waiting",
    "N6": "completion_followup",
    "N7": "dispute",
}


@dataclass(frozen=True)
class CategoryPolicy:
    # Critical categories skip both rate limits and quiet-hours deferral.
    critical: bool
    requires_deadline_reminder: bool
    priority: NotificationPriority


CATEGORY_POLICIES: dict[NotificationCategory, CategoryPolicy] = {
    NotificationCategory.INVITE: CategoryPolicy(False, False, "normal"),
    NotificationCategory.INVITE_FOLLOWUP: CategoryPolicy(False, False, "normal"),
    NotificationCategory.DUE_SOON: CategoryPolicy(False, True, "normal"),
    NotificationCategory.OVERDUE: CategoryPolicy(False, True, "high"),
    NotificationCategory.COMPLETION_WAITING: CategoryPolicy(True, False, "critical"),
    NotificationCategory.COMPLETION_FOLLOWUP: CategoryPolicy(True, False, "high"),
    NotificationCategory.DISPUTE: CategoryPolicy(True, False, "high"),
    NotificationCategory.CONFIRMED: CategoryPolicy(False, False, "normal"),
}


def policy_for(category: NotificationCategory | str) -> CategoryPolicy:
    return CATEGORY_POLICIES[NotificationCategory(category)]


def is_critical(category: NotificationCategory | str) -> bool:
    return policy_for(category).critical


def requires_deadline_reminder(category: NotificationCategory | str) -> bool:
    return policy_for(category).requires_deadline_reminder


def default_priority(category: NotificationCategory | str) -> NotificationPriority:
    return policy_for(category).priority


CRITICAL_CATEGORIES = frozenset(
    category for category, policy in CATEGORY_POLICIES.items() if policy.critical
)
