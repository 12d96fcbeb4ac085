"""CPE index: one flattened row per (CVE, vulnerable CPE match).

Derived from ``nvd_cves.cpe_matches``; safe to truncate and rebuild.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vulnfeed.models.base import Base


class CpeIndexEntry(Base):
    __tablename__ = "nvd_cpe_index"
    __table_args__ = (
        Index("ix_nvd_cpe_index_vendor_product", "vendor", "product"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    cve_id: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    vendor: Mapped[str] = mapped_column(String(255), nullable=False)
    product: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    target_sw: Mapped[str | None] = mapped_column(String(255), nullable=True)

    version_exact: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version_start_incl: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version_start_excl: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version_end_incl: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version_end_excl: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<CpeIndexEntry {self.cve_id!r} {self.vendor}:{self.product}>"
