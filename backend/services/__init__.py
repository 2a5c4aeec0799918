"""Business logic services."""

from .notifications import (
    NotificationOutcome,
    NotificationRequest,
    ScanSummary,
    dispatch_notification_event,
    run_notification_scan,
    write_notification,
)
from .rate_limiter import (
    DAILY_NOTIFICATION_CAP,
    NotificationRateLimiter,
    daily_cap_exceeded,
    per_deal_cap_exceeded,
)

__all__ = [
    "NotificationOutcome",
    "NotificationRequest",
    "ScanSummary",
    "dispatch_notification_event",
    "run_notification_scan",
    "write_notification",
    "DAILY_NOTIFICATION_CAP",
    "NotificationRateLimiter",
    "daily_cap_exceeded",
    "per_deal_cap_exceeded",
]
