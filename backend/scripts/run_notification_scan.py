"""Run one notification scan tick outside the HTTP surface.

Usage:
    uv run python scripts/run_notification_scan.py

Environment overrides:
    NOTIFICATION_SCAN_LIMIT=500
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from time import perf_counter

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from core.config import settings  # noqa: E402
from db.session import AsyncSessionMaker  # noqa: E402
from services.notifications import ScanSummary, run_notification_scan  # noqa: E402

SCAN_LIMIT_ENV = "NOTIFICATION_SCAN_LIMIT"


def _parse_positive_int(raw_value: str | None, *, default: int, label: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if parsed <= 0:
        raise ValueError(f"{label} must be positive")
    return parsed


def format_summary(summary: ScanSummary, *, elapsed_ms: int) -> str:
    created = ", ".join(f"{name}={count}" for name, count in summary.results.items())
    skipped = ", ".join(
        f"{reason}={count}" for reason, count in sorted(summary.skipped.items())
    )
    return (
        "Notification scan complete: "
        f"ok={summary.ok}, created=[{created}], skipped=[{skipped}], "
        f"elapsed_ms={elapsed_ms}"
    )


async def run() -> ScanSummary:
    limit = _parse_positive_int(
        os.getenv(SCAN_LIMIT_ENV),
        default=settings.notification_scan_limit,
        label=SCAN_LIMIT_ENV,
    )
    started_at = perf_counter()
    async with AsyncSessionMaker() as session:
        summary = await run_notification_scan(session, limit=limit)
    elapsed_ms = int((perf_counter() - started_at) * 1000)
    print(format_summary(summary, elapsed_ms=elapsed_ms))
    return summary


def main() -> None:
    summary = asyncio.run(run())
    if not summary.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
