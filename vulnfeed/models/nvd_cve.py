"""NVD CVE model: one record per CVE identifier."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vulnfeed.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


class NvdCve(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "nvd_cves"

    cve_id: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)

    # First English description
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    severity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cvss_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    cvss_vector: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Raw cvssData of the metric the score was taken from
    cvss_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    cpe_matches: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    references_json: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    # e.g. ">= 1.0 < 1.4 | <= 2.0.1"
    affected_versions: Mapped[str | None] = mapped_column(Text, nullable=True)
    fixed_version: Mapped[str | None] = mapped_column(String(255), nullable=True)

    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vuln_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    sync_batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<NvdCve {self.cve_id!r} severity={self.severity!r}>"
