"""Advisory upsert/dedup engine.

Rows are deduplicated by their natural key before being written, because one
multi-row ``INSERT ... ON CONFLICT DO UPDATE`` cannot touch the same key twice.
Each batch is its own statement and its own commit; a failing batch is rolled
back, logged and dropped so the rest of the run carries on.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import ColumnElement, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vulnfeed.core.logging import get_logger
from vulnfeed.models.advisory import Advisory
from vulnfeed.models.nvd_cve import NvdCve

logger = get_logger(__name__)

ADVISORY_KEY = ("source", "advisory_id", "ecosystem", "package_name")

# Overwritten on conflict; identity columns and package_purl/published_at stay
ADVISORY_MUTABLE = (
    "severity", "cvss_score", "cvss_vector", "title", "description",
    "affected_ranges", "affected_versions", "fixed_version", "aliases",
    "references_json", "modified_at", "withdrawn_at", "sync_batch_id",
    "updated_at",
)

CVE_MUTABLE = (
    "description", "severity", "cvss_score", "cvss_vector", "cvss_data",
    "cpe_matches", "references_json", "affected_versions", "fixed_version",
    "modified_at", "vuln_status", "sync_batch_id", "updated_at",
)


@dataclass
class AdvisoryRow:
    """One advisory as it affects one package, ready to be stored."""

    source: str
    advisory_id: str
    ecosystem: str
    package_name: str
    package_purl: str | None = None
    severity: str | None = None
    cvss_score: float | None = None
    cvss_vector: str | None = None
    title: str | None = None
    description: str | None = None
    affected_ranges: list[dict[str, Any]] = field(default_factory=list)
    affected_versions: list[str] = field(default_factory=list)
    fixed_version: str | None = None
    aliases: list[str] = field(default_factory=list)
    references: list[dict[str, Any]] = field(default_factory=list)
    published_at: datetime | None = None
    modified_at: datetime | None = None
    withdrawn_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.source, self.advisory_id, self.ecosystem, self.package_name)

    def to_values(self, batch_id: str, now: datetime) -> dict[str, Any]:
        return {
            "id": uuid.uuid4(),
            "source": self.source,
            "advisory_id": self.advisory_id,
            "ecosystem": self.ecosystem,
            "package_name": self.package_name,
            "package_purl": self.package_purl,
            "severity": self.severity,
            "cvss_score": self.cvss_score,
            "cvss_vector": self.cvss_vector,
            "title": self.title,
            "description": self.description,
            "affected_ranges": self.affected_ranges,
            "affected_versions": self.affected_versions,
            "fixed_version": self.fixed_version,
            "aliases": self.aliases,
            "references_json": self.references,
            "published_at": self.published_at,
            "modified_at": self.modified_at,
            "withdrawn_at": self.withdrawn_at,
            "sync_batch_id": batch_id,
            "created_at": now,
            "updated_at": now,
        }


@dataclass
class CveRow:
    """One NVD CVE record, already filtered and flattened."""

    cve_id: str
    description: str | None = None
    severity: str | None = None
    cvss_score: float | None = None
    cvss_vector: str | None = None
    cvss_data: dict[str, Any] | None = None
    cpe_matches: list[dict[str, Any]] = field(default_factory=list)
    references: list[dict[str, Any]] = field(default_factory=list)
    affected_versions: str | None = None
    fixed_version: str | None = None
    published_at: datetime | None = None
    modified_at: datetime | None = None
    vuln_status: str | None = None

    def to_values(self, batch_id: str, now: datetime) -> dict[str, Any]:
        return {
            "id": uuid.uuid4(),
            "cve_id": self.cve_id,
            "description": self.description,
            "severity": self.severity,
            "cvss_score": self.cvss_score,
            "cvss_vector": self.cvss_vector,
            "cvss_data": self.cvss_data,
            "cpe_matches": self.cpe_matches,
            "references_json": self.references,
            "affected_versions": self.affected_versions,
            "fixed_version": self.fixed_version,
            "published_at": self.published_at,
            "modified_at": self.modified_at,
            "vuln_status": self.vuln_status,
            "sync_batch_id": batch_id,
            "created_at": now,
            "updated_at": now,
        }


def dedupe_advisories(rows: list[AdvisoryRow]) -> list[AdvisoryRow]:
    """Collapse rows sharing a key into one.

    Ranges are concatenated, versions unioned (first-seen order) and the first
    non-null fixed_version wins. Input rows are not mutated.
    """
    merged: dict[tuple[str, str, str, str], AdvisoryRow] = {}
    for row in rows:
        existing = merged.get(row.key)
        if existing is None:
            merged[row.key] = replace(
                row,
                affected_ranges=list(row.affected_ranges),
                affected_versions=list(dict.fromkeys(row.affected_versions)),
            )
            continue
        existing.affected_ranges.extend(row.affected_ranges)
        existing.affected_versions = list(
            dict.fromkeys(existing.affected_versions + row.affected_versions)
        )
        if not existing.fixed_version and row.fixed_version:
            existing.fixed_version = row.fixed_version
    return list(merged.values())


def dedupe_cves(rows: list[CveRow]) -> list[CveRow]:
    """Keep one row per cve_id; the last occurrence wins."""
    latest: dict[str, CveRow] = {}
    for row in rows:
        latest[row.cve_id] = row
    return list(latest.values())


def dialect_insert(session: AsyncSession):
    """The dialect-specific ``insert()`` that supports ON CONFLICT."""
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Upserts are not supported on the {name!r} dialect")


async def _upsert_batches(
    session: AsyncSession,
    model: type,
    values: list[dict[str, Any]],
    *,
    conflict_columns: tuple[str, ...],
    mutable_columns: tuple[str, ...],
    batch_size: int,
) -> int:
    insert = dialect_insert(session)
    table = model.__table__
    written = 0

    for start in range(0, len(values), batch_size):
        chunk = values[start:start + batch_size]
        stmt = insert(table).values(chunk)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={col: stmt.excluded[col] for col in mutable_columns},
        )
        try:
            await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            statement = getattr(exc, "statement", None) or ""
            logger.warning(
                "Batch upsert failed, dropping batch",
                table=table.name,
                rows=len(chunk),
                error=str(getattr(exc, "orig", exc))[:300],
                statement=statement[:500],
            )
            continue
        written += len(chunk)

    return written


async def upsert_advisories(
    session: AsyncSession,
    rows: list[AdvisoryRow],
    batch_id: str,
    *,
    batch_size: int = 500,
) -> int:
    """Deduplicate and upsert advisory rows. Returns the number of rows written."""
    if not rows:
        return 0
    now = datetime.now(timezone.utc)
    values = [row.to_values(batch_id, now) for row in dedupe_advisories(rows)]
    return await _upsert_batches(
        session,
        Advisory,
        values,
        conflict_columns=ADVISORY_KEY,
        mutable_columns=ADVISORY_MUTABLE,
        batch_size=batch_size,
    )


async def upsert_cves(
    session: AsyncSession,
    rows: list[CveRow],
    batch_id: str,
    *,
    batch_size: int = 500,
) -> int:
    """Deduplicate and upsert NVD CVE rows. Returns the number of rows written."""
    if not rows:
        return 0
    now = datetime.now(timezone.utc)
    values = [row.to_values(batch_id, now) for row in dedupe_cves(rows)]
    return await _upsert_batches(
        session,
        NvdCve,
        values,
        conflict_columns=("cve_id",),
        mutable_columns=CVE_MUTABLE,
        batch_size=batch_size,
    )


def _not_in_batch(model: type, batch_id: str) -> ColumnElement[bool]:
    return or_(model.sync_batch_id != batch_id, model.sync_batch_id.is_(None))


async def reassign_batch(
    session: AsyncSession, model: type, batch_id: str, *criteria: ColumnElement[bool]
) -> int:
    """Re-tag rows not touched this run so the next full-sync sweep keeps them."""
    stmt = (
        update(model)
        .where(*criteria, _not_in_batch(model, batch_id))
        # keep updated_at: the row content did not change
        .values(sync_batch_id=batch_id, updated_at=model.updated_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount or 0


async def delete_stale(
    session: AsyncSession, model: type, batch_id: str, *criteria: ColumnElement[bool]
) -> int:
    """Delete rows a full sync did not re-touch."""
    stmt = (
        delete(model)
        .where(*criteria, _not_in_batch(model, batch_id))
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount or 0


async def count_advisories(session: AsyncSession, ecosystem: str) -> tuple[int, int]:
    """(advisory rows, distinct packages) currently stored for *ecosystem*."""
    result = await session.execute(
        select(func.count(), func.count(func.distinct(Advisory.package_name))).where(
            Advisory.ecosystem == ecosystem
        )
    )
    total, packages = result.one()
    return int(total or 0), int(packages or 0)


async def count_cves(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(NvdCve))
    return int(result.scalar_one() or 0)
