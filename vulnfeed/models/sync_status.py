"""Sync status: one row per feed source (each OSV ecosystem, plus "nvd")."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vulnfeed.models.base import Base, TimestampMixin


class SyncStatus(TimestampMixin, Base):
    __tablename__ = "sync_status"

    source: Mapped[str] = mapped_column(String(50), primary_key=True)

    # running | completed | error
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")

    # Set when a run starts, whatever its outcome
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_full_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Incremental watermark: newest upstream "modified" timestamp seen so far
    last_modified_marker: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    advisory_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    package_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncStatus {self.source!r} status={self.status!r}>"
