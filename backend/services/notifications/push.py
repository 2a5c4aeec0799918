"""Push delivery seam.

The engine only hands a delivery attempt to the configured sender and never
waits on its result. The default sender logs the attempt; a real transport
(APNs, FCM, web push) is plugged in with ``set_push_sender``.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class PushSender(Protocol):
    async def send(self, *, user_id: str, category: str, cta_url: str) -> None: ...


class LoggingPushSender:
    """Stub transport that records the attempt in the application log."""

    async def send(self, *, user_id: str, category: str, cta_url: str) -> None:
        logger.info(
            "Push delivery attempted",
            extra={"user_id": user_id, "category": category, "cta_url": cta_url},
        )


_cached_push_sender: PushSender | None = None


def get_push_sender() -> PushSender:
    """Singleton accessor for the shared push sender."""
    global _cached_push_sender
    if _cached_push_sender is None:
        _cached_push_sender = LoggingPushSender()
    return _cached_push_sender


def set_push_sender(sender: PushSender | None) -> None:
    """Override the cached push sender (primarily for tests)."""
    global _cached_push_sender
    _cached_push_sender = sender


async def deliver_push(
    sender: PushSender,
    *,
    user_id: str,
    category: str,
    cta_url: str,
) -> None:
    """Fire one push; transport failures are logged and never propagate."""
    try:
        await sender.send(user_id=user_id, category=category, cta_url=cta_url)
    except Exception:
        logger.warning(
            "Push delivery failed",
            extra={"user_id": user_id, "category": category},
            exc_info=True,
        )
