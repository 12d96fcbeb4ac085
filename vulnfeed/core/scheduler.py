"""Background vulnerability-database sync scheduler.

Runs as an asyncio task in the app lifespan. Every 60 seconds it reads the
per-source sync status and starts a sync cycle when ``sync_interval_hours``
have elapsed since the most recent run started, failed runs included (or
when nothing has run yet).
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone

from vulnfeed.core.logging import get_logger
from vulnfeed.models.sync_status import SyncStatus
from vulnfeed.sync.feeds import ensure_utc

logger = get_logger(__name__)

_CHECK_INTERVAL_SECONDS = 60  # how often the scheduler wakes up to check


def sync_due(statuses: Sequence[SyncStatus], *, now: datetime, interval_hours: float) -> bool:
    """Due when the newest run, successful or not, started *interval_hours* ago."""
    attempts = [
        ensure_utc(moment)
        for s in statuses
        for moment in (s.last_attempt_at, s.last_sync_at)
        if moment is not None
    ]
    if not attempts:
        return True
    elapsed_hours = (now - max(attempts)).total_seconds() / 3600
    return elapsed_hours >= interval_hours


async def scheduler_loop(check_interval_seconds: float = _CHECK_INTERVAL_SECONDS) -> None:
    """Infinite loop: wake periodically and run the sync cycle when due."""
    logger.info("Vulnerability sync scheduler started")
    while True:
        await asyncio.sleep(check_interval_seconds)
        try:
            await _check_and_run_sync()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sync scheduler error, will retry next cycle")


async def _check_and_run_sync() -> None:
    from vulnfeed.core.config import get_settings
    from vulnfeed.core.database import get_session_factory
    from vulnfeed.sync import status as sync_status
    from vulnfeed.sync.orchestrator import run_sync_cycle, sync_in_progress

    if sync_in_progress():
        return

    settings = get_settings()
    async with get_session_factory()() as session:
        statuses = await sync_status.list_statuses(session)

    now = datetime.now(timezone.utc)
    if not sync_due(statuses, now=now, interval_hours=settings.sync_interval_hours):
        return

    logger.info("Scheduled sync due", interval_hours=settings.sync_interval_hours)
    # Runs inline: the loop does not wake again until the cycle is over
    await run_sync_cycle(settings=settings)
