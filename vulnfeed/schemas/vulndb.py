"""Schemas for the vulnerability-database admin endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SourceStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    source: str
    status: str
    advisory_count: int
    package_count: int
    last_sync_at: datetime | None
    last_full_sync_at: datetime | None
    duration_seconds: float | None
    error_message: str | None


class VulnDbStatusOut(BaseModel):
    sources: list[SourceStatusOut]
    total_advisories: int
    total_cves: int
    sync_in_progress: bool


class SyncTriggerOut(BaseModel):
    accepted: bool
    message: str
