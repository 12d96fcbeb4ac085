"""Sync cycle driver and the two library entry points.

``run_sync_cycle()`` syncs every configured OSV ecosystem one after another,
then NVD, and notifies administrators once if any source failed. It never
raises. ``get_vuln_db_stats()`` reads the per-source status table.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vulnfeed.core.config import Settings, get_settings
from vulnfeed.core.database import get_session_factory
from vulnfeed.core.logging import get_logger, source_context
from vulnfeed.core.tasks import spawn
from vulnfeed.services.notifications import notify_platform_admins
from vulnfeed.sync import status as sync_status
from vulnfeed.sync.feeds import build_client, ensure_utc
from vulnfeed.sync.nvd import sync_nvd
from vulnfeed.sync.osv import sync_osv_ecosystem
from vulnfeed.sync.status import NVD_SOURCE

logger = get_logger(__name__)

SYNC_ERROR_NOTIFICATION = "vuln_db_sync_error"

# Single-flight guard: at most one cycle per process
_cycle_lock = asyncio.Lock()
_sync_task: asyncio.Task[Any] | None = None


@dataclass
class CycleReport:
    started: bool
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class SourceStats:
    source: str
    status: str
    advisory_count: int
    package_count: int
    last_sync_at: datetime | None
    last_full_sync_at: datetime | None
    duration_seconds: float | None
    error_message: str | None


@dataclass
class VulnDbStats:
    sources: list[SourceStats]
    total_advisories: int
    total_cves: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "sources": [asdict(s) for s in self.sources],
            "total_advisories": self.total_advisories,
            "total_cves": self.total_cves,
        }


def sync_in_progress() -> bool:
    return _cycle_lock.locked()


async def run_sync_cycle(
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> CycleReport:
    """Run one full sync cycle. Never raises.

    Returns immediately (``started=False``) when a cycle is already running
    in this process.
    """
    if _cycle_lock.locked():
        logger.warning("Sync cycle already running, skipping")
        return CycleReport(started=False)

    async with _cycle_lock:
        settings = settings or get_settings()
        factory = session_factory or get_session_factory()
        owns_client = client is None
        http = client or build_client(settings)
        report = CycleReport(started=True)
        started = time.monotonic()

        logger.info("Vulnerability database sync starting", ecosystems=settings.osv_ecosystems)
        try:
            for ecosystem in settings.osv_ecosystems:
                try:
                    with source_context(ecosystem):
                        async with factory() as session:
                            await sync_osv_ecosystem(
                                session, ecosystem, client=http, settings=settings
                            )
                except Exception as exc:
                    logger.exception("OSV ecosystem sync failed", ecosystem=ecosystem)
                    report.errors.append(f"{ecosystem}: {exc}")

            try:
                with source_context(NVD_SOURCE):
                    async with factory() as session:
                        await sync_nvd(session, client=http, settings=settings)
            except Exception as exc:
                logger.exception("NVD sync failed")
                report.errors.append(f"{NVD_SOURCE}: {exc}")

            report.duration_seconds = round(time.monotonic() - started, 2)
            logger.info(
                "Vulnerability database sync complete",
                duration_s=report.duration_seconds,
                errors=len(report.errors),
            )

            if report.errors:
                await _notify_errors(factory, report)
        except Exception:
            logger.exception("Vulnerability database sync aborted")
        finally:
            if owns_client:
                await http.aclose()

    return report


async def _notify_errors(
    factory: async_sessionmaker[AsyncSession], report: CycleReport
) -> None:
    try:
        async with factory() as session:
            await notify_platform_admins(
                session,
                type=SYNC_ERROR_NOTIFICATION,
                severity="medium",
                title="Vulnerability database sync had errors",
                body="Failed sources: " + "; ".join(report.errors),
                link="/admin/vuln-scan",
                metadata={
                    "errors": report.errors,
                    "duration_seconds": report.duration_seconds,
                },
            )
    except Exception:
        logger.exception("Failed to notify administrators about sync errors")


def trigger_sync() -> bool:
    """Start a sync cycle in the background.

    Returns False if a cycle is already running. Must be called from within
    a running event loop.
    """
    global _sync_task
    if _cycle_lock.locked() or (_sync_task is not None and not _sync_task.done()):
        return False
    _sync_task = spawn(run_sync_cycle(), name="vuln-db-sync")
    return True


async def get_vuln_db_stats(session: AsyncSession | None = None) -> VulnDbStats:
    """Per-source status rows (ordered by source) plus OSV and NVD totals."""
    if session is None:
        async with get_session_factory()() as own_session:
            rows = await sync_status.list_statuses(own_session)
    else:
        rows = await sync_status.list_statuses(session)
    sources = [
        SourceStats(
            source=row.source,
            status=row.status,
            advisory_count=row.advisory_count or 0,
            package_count=row.package_count or 0,
            last_sync_at=ensure_utc(row.last_sync_at),
            last_full_sync_at=ensure_utc(row.last_full_sync_at),
            duration_seconds=row.duration_seconds,
            error_message=row.error_message,
        )
        for row in rows
    ]
    nvd = next((s for s in sources if s.source == NVD_SOURCE), None)
    return VulnDbStats(
        sources=sources,
        total_advisories=sum(s.advisory_count for s in sources if s.source != NVD_SOURCE),
        total_cves=nvd.advisory_count if nvd else 0,
    )
