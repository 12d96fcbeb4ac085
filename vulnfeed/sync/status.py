"""Per-source sync status: the full-vs-incremental decision and the
running/completed/error transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vulnfeed.models.sync_status import SyncStatus
from vulnfeed.sync.feeds import ensure_utc

NVD_SOURCE = "nvd"


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


def choose_mode(
    status: SyncStatus | None,
    *,
    now: datetime,
    full_sync_interval_days: float,
    require_marker: bool = True,
) -> SyncMode:
    """Full sync when the source has no usable history or the last full sync
    is at least *full_sync_interval_days* old; incremental otherwise.

    OSV sources also need a watermark to run incrementally; NVD only needs a
    previous sync (``require_marker=False``).
    """
    if status is None:
        return SyncMode.FULL
    if require_marker and status.last_modified_marker is None:
        return SyncMode.FULL
    if not require_marker and status.last_sync_at is None:
        return SyncMode.FULL

    last_full = ensure_utc(status.last_full_sync_at)
    if last_full is None:
        return SyncMode.FULL

    elapsed_days = (now - last_full).total_seconds() / 86400
    if elapsed_days >= full_sync_interval_days:
        return SyncMode.FULL
    return SyncMode.INCREMENTAL


async def load_status(session: AsyncSession, source: str) -> SyncStatus | None:
    return await session.get(SyncStatus, source)


async def list_statuses(session: AsyncSession) -> list[SyncStatus]:
    result = await session.execute(select(SyncStatus).order_by(SyncStatus.source))
    return list(result.scalars().all())


async def mark_running(session: AsyncSession, source: str) -> SyncStatus:
    status = await session.get(SyncStatus, source)
    if status is None:
        status = SyncStatus(source=source, status="running", advisory_count=0, package_count=0)
        session.add(status)
    else:
        status.status = "running"
    status.last_attempt_at = datetime.now(timezone.utc)
    await session.commit()
    return status


async def mark_completed(
    session: AsyncSession,
    source: str,
    *,
    mode: SyncMode,
    duration_seconds: float,
    advisory_count: int,
    package_count: int = 0,
    marker: datetime | None = None,
) -> None:
    now = datetime.now(timezone.utc)
    status = await session.get(SyncStatus, source)
    if status is None:
        status = SyncStatus(source=source)
        session.add(status)
    status.status = "completed"
    status.last_sync_at = now
    if mode is SyncMode.FULL:
        status.last_full_sync_at = now
    if marker is not None:
        status.last_modified_marker = marker
    status.advisory_count = advisory_count
    status.package_count = package_count
    status.duration_seconds = round(duration_seconds, 2)
    status.error_message = None
    await session.commit()


async def mark_error(
    session: AsyncSession, source: str, message: str, *, duration_seconds: float | None = None
) -> None:
    # The session may hold a failed transaction from the error being recorded
    await session.rollback()
    status = await session.get(SyncStatus, source)
    if status is None:
        status = SyncStatus(source=source, advisory_count=0, package_count=0)
        session.add(status)
    status.status = "error"
    status.error_message = message
    if status.last_attempt_at is None:
        status.last_attempt_at = datetime.now(timezone.utc)
    if duration_seconds is not None:
        status.duration_seconds = round(duration_seconds, 2)
    await session.commit()
