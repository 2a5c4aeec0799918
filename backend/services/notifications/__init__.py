"""Notification domain services."""

from .categories import (
    CATEGORY_POLICIES,
    CRITICAL_CATEGORIES,
    NotificationCategory,
    default_priority,
    is_critical,
    requires_deadline_reminder,
)
from .dispatch import DispatchResult, dispatch_notification_event
from .flows import (
    notify_deal_completed,
    notify_deal_confirmed,
    notify_deal_created,
    notify_deal_disputed,
    notify_invite_accepted,
)
from .policy import in_quiet_hours, next_completion_stage
from .recipients import NotificationRecipient, recipients_for_event
from .scanner import ScanSummary, run_notification_scan
from .schemas import CronResponse, CronResultsResponse
from .writer import NotificationOutcome, NotificationRequest, write_notification

__all__ = [
    "CATEGORY_POLICIES",
    "CRITICAL_CATEGORIES",
    "NotificationCategory",
    "default_priority",
    "is_critical",
    "requires_deadline_reminder",
    "DispatchResult",
    "dispatch_notification_event",
    "notify_deal_created",
    "notify_invite_accepted",
    "notify_deal_completed",
    "notify_deal_confirmed",
    "notify_deal_disputed",
    "in_quiet_hours",
    "next_completion_stage",
    "NotificationRecipient",
    "recipients_for_event",
    "ScanSummary",
    "run_notification_scan",
    "CronResponse",
    "CronResultsResponse",
    "NotificationOutcome",
    "NotificationRequest",
    "write_notification",
]
