"""Vulnerability-database admin router: manual sync trigger and status (admin only)."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from vulnfeed.api.dependencies import get_db, require_admin
from vulnfeed.core.logging import get_logger
from vulnfeed.schemas.vulndb import SourceStatusOut, SyncTriggerOut, VulnDbStatusOut
from vulnfeed.sync.orchestrator import get_vuln_db_stats, sync_in_progress, trigger_sync

router = APIRouter(prefix="/admin/vuln-db", tags=["vuln-db"])
logger = get_logger(__name__)

DbDep = Annotated[AsyncSession, Depends(get_db)]


@router.post("/sync", response_model=SyncTriggerOut,
             status_code=status.HTTP_202_ACCEPTED,
             dependencies=[Depends(require_admin)])
async def start_sync() -> SyncTriggerOut:
    """Start a sync cycle in the background; the response does not wait for it."""
    if not trigger_sync():
        return SyncTriggerOut(accepted=False, message="A sync cycle is already running")
    logger.info("Manual vulnerability database sync triggered")
    return SyncTriggerOut(accepted=True, message="Vulnerability database sync started")


@router.get("/status", response_model=VulnDbStatusOut,
            dependencies=[Depends(require_admin)])
async def get_status(db: DbDep) -> VulnDbStatusOut:
    stats = await get_vuln_db_stats(db)
    return VulnDbStatusOut(
        sources=[SourceStatusOut.model_validate(s, from_attributes=True) for s in stats.sources],
        total_advisories=stats.total_advisories,
        total_cves=stats.total_cves,
        sync_in_progress=sync_in_progress(),
    )
