"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.v1 import health, notifications
from core.config import settings
from db import async_engine

API_PREFIX = "/api/v1"

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Notification service starting", extra={"app_name": settings.app_name})
    yield
    await async_engine.dispose()


def create_app() -> FastAPI:
    configure_logging()
    application = FastAPI(title=settings.app_name, lifespan=lifespan)
    application.include_router(health.router, prefix=API_PREFIX)
    application.include_router(notifications.router, prefix=API_PREFIX)
    return application
