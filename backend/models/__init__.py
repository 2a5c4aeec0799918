"""SQLModel models package."""

from .deal import Deal
from .notification import Notification
from .notification_settings import UserNotificationSettings
from .notification_state import NotificationState

__all__ = [
    "Deal",
    "Notification",
    "NotificationState",
    "UserNotificationSettings",
]
