"""Per-user notification preferences, written by the profile settings screen."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlmodel import Field, SQLModel


class UserNotificationSettings(SQLModel, table=True):
    """Nullable columns fall back to the engine defaults when read."""

    __tablename__ = "user_notification_settings"

    user_id: str = Field(sa_column=Column(String(36), primary_key=True))
    locale: str | None = Field(default=None, sa_column=Column(String(8), nullable=True))
    push_enabled: bool | None = Field(
        default=None, sa_column=Column(Boolean, nullable=True)
    )
    deadline_reminders_enabled: bool | None = Field(
        default=None, sa_column=Column(Boolean, nullable=True)
    )
    quiet_hours_enabled: bool | None = Field(
        default=None, sa_column=Column(Boolean, nullable=True)
    )
    # Local wall-clock "HH:MM", no timezone stored.
    quiet_hours_start: str | None = Field(
        default=None, sa_column=Column(String(5), nullable=True)
    )
    quiet_hours_end: str | None = Field(
        default=None, sa_column=Column(String(5), nullable=True)
    )
    updated_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        )
    )
