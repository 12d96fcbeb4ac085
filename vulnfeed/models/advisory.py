"""Advisory model: one OSV advisory as it affects one package."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from vulnfeed.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


class Advisory(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "advisories"
    __table_args__ = (
        UniqueConstraint(
            "source", "advisory_id", "ecosystem", "package_name",
            name="uq_advisories_key",
        ),
        Index("ix_advisories_ecosystem_package", "ecosystem", "package_name"),
    )

    # "github" for GHSA-* ids, "osv" otherwise
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    advisory_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    ecosystem: Mapped[str] = mapped_column(String(50), nullable=False)
    package_name: Mapped[str] = mapped_column(String(500), nullable=False)
    package_purl: Mapped[str | None] = mapped_column(Text, nullable=True)

    # critical / high / medium / low
    severity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cvss_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    cvss_vector: Mapped[str | None] = mapped_column(String(255), nullable=True)

    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    affected_ranges: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    affected_versions: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    fixed_version: Mapped[str | None] = mapped_column(String(255), nullable=True)
    aliases: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    references_json: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sync_batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return (
            f"<Advisory {self.advisory_id!r} {self.ecosystem}/{self.package_name} "
            f"severity={self.severity!r}>"
        )
