"""Notification API payload schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CronResultsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invite_followups: int = Field(default=0, alias="inviteFollowups")
    due_soon: int = Field(default=0, alias="dueSoon")
    overdue: int = 0
    completion_followups: int = Field(default=0, alias="completionFollowups")


class CronResponse(BaseModel):
    ok: bool
    results: CronResultsResponse
