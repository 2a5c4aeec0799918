"""Notification scheduler endpoints."""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from core.config import settings
from services.notifications import CronResponse, CronResultsResponse, run_notification_scan

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    secret = settings.notifications_cron_secret
    if not secret:
        return
    token = _bearer_token(authorization)
    if not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        logger.warning("Rejected notification cron trigger")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


@router.post(
    "/cron",
    response_model=CronResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def run_cron(
    session: AsyncSession = Depends(get_db),
) -> CronResponse:
    summary = await run_notification_scan(session)
    return CronResponse(
        ok=summary.ok,
        results=CronResultsResponse(**summary.results),
    )
