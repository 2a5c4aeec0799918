"""Read-only projection of a deal (promise) owned by the deal lifecycle service."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, String, func, text
from sqlmodel import Field, SQLModel

DEAL_STATUS_ACTIVE = "active"
DEAL_STATUS_AWAITING_CONFIRMATION = "completed_by_promisor"
DEAL_STATUS_CONFIRMED = "confirmed"
DEAL_STATUS_DISPUTED = "disputed"
DEAL_STATUS_CANCELED = "canceled"

INVITE_STATUS_AWAITING = "awaiting_acceptance"
INVITE_STATUS_ACCEPTED = "accepted"
INVITE_STATUS_DECLINED = "declined"
INVITE_STATUS_IGNORED = "ignored"
INVITE_STATUSES = frozenset(
    {
        INVITE_STATUS_AWAITING,
        INVITE_STATUS_ACCEPTED,
        INVITE_STATUS_DECLINED,
        INVITE_STATUS_IGNORED,
    }
)


class Deal(SQLModel, table=True):
    """Bilateral promise between a creator and a counterparty."""

    __tablename__ = "deals"
    __table_args__ = (
        Index("ix_deals_status_due_at", "status", "due_at"),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        sa_column=Column(String(36), primary_key=True),
    )
    creator_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    promisor_id: str | None = Field(
        default=None, sa_column=Column(String(36), nullable=True)
    )
    promisee_id: str | None = Field(
        default=None, sa_column=Column(String(36), nullable=True)
    )
    counterparty_id: str | None = Field(
        default=None, sa_column=Column(String(36), nullable=True)
    )
    status: str = Field(
        default=DEAL_STATUS_ACTIVE,
        sa_column=Column(
            String(32),
            nullable=False,
            server_default=text(f"'{DEAL_STATUS_ACTIVE}'"),
        ),
    )
    invite_status: str | None = Field(
        default=INVITE_STATUS_AWAITING,
        sa_column=Column(String(32), nullable=True),
    )
    invite_token: str | None = Field(
        default=None, sa_column=Column(String(64), nullable=True)
    )
    due_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    completed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    accepted_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    counterparty_accepted_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
    updated_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        )
    )

    @property
    def executor_id(self) -> str | None:
        """Who performs the promise: promisor, else nobody when a promisee is named, else the creator."""
        if self.promisor_id:
            return self.promisor_id
        if self.promisee_id:
            return None
        return self.creator_id

    @property
    def counterparty_user_id(self) -> str | None:
        if self.promisee_id:
            return self.promisee_id
        return self.counterparty_id

    @property
    def invitee_id(self) -> str | None:
        """The non-creator participant the invite is addressed to."""
        for candidate in (self.counterparty_id, self.promisor_id, self.promisee_id):
            if candidate and candidate != self.creator_id:
                return candidate
        return None

    @property
    def confirmer_id(self) -> str | None:
        """Participant expected to confirm or dispute a completion."""
        executor_id = self.executor_id
        if executor_id is None:
            return None
        if executor_id == self.creator_id:
            counterparty = self.counterparty_user_id
            if counterparty == executor_id:
                return None
            return counterparty
        return self.creator_id

    @property
    def resolved_invite_status(self) -> str:
        if self.invite_status in INVITE_STATUSES:
            return self.invite_status
        if self.accepted_at is not None or self.counterparty_accepted_at is not None:
            return INVITE_STATUS_ACCEPTED
        return INVITE_STATUS_AWAITING

    @property
    def is_accepted(self) -> bool:
        return self.resolved_invite_status == INVITE_STATUS_ACCEPTED
