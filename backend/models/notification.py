"""Persisted notification addressed to one user about one deal."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlmodel import Field, SQLModel

MAX_DEDUPE_KEY_LENGTH = 191


class Notification(SQLModel, table=True):
    """One delivered or deferred message. delivered_at is null while quiet hours hold it back."""

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "dedupe_key",
            name="ux_notifications_user_dedupe_key",
        ),
        Index("ix_notifications_user_created_at", "user_id", "created_at"),
        Index(
            "ix_notifications_user_promise_category_created_at",
            "user_id",
            "promise_id",
            "category",
            "created_at",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(sa_column=Column(String(36), nullable=False))
    promise_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("deals.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    category: str = Field(sa_column=Column(String(32), nullable=False))
    role: str | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    title: str = Field(default="", sa_column=Column(String(200), nullable=False))
    body: str = Field(default="", sa_column=Column(Text, nullable=False))
    cta_url: str = Field(sa_column=Column(String(512), nullable=False))
    cta_label: str | None = Field(
        default=None, sa_column=Column(String(80), nullable=True)
    )
    priority: str = Field(sa_column=Column(String(16), nullable=False))
    dedupe_key: str = Field(
        sa_column=Column(String(MAX_DEDUPE_KEY_LENGTH), nullable=False)
    )
    delivered_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    read_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
