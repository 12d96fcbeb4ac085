"""CPE 2.3 parsing and the flattened ``nvd_cpe_index`` table.

The index is rebuilt from ``nvd_cves.cpe_matches`` after a full NVD sync and
refreshed for the touched CVEs after an incremental one. Rebuilds are not
isolated from readers: a query running mid-rebuild may see a partial index.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from vulnfeed.core.logging import get_logger
from vulnfeed.models.cpe_index import CpeIndexEntry
from vulnfeed.models.nvd_cve import NvdCve

logger = get_logger(__name__)

_PAGE_SIZE = 1000
_INSERT_BATCH = 1000
_DELETE_CHUNK = 500


@dataclass(frozen=True)
class CpeName:
    part: str
    vendor: str
    product: str
    version: str
    target_sw: str


def split_cpe(criteria: str) -> list[str]:
    """Split a CPE 2.3 formatted string on unescaped colons.

    Escape sequences are kept verbatim in the returned fields.
    """
    fields: list[str] = []
    current: list[str] = []
    escaped = False
    for ch in criteria:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\":
            current.append(ch)
            escaped = True
        elif ch == ":":
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
    fields.append("".join(current))
    return fields


def unescape(value: str) -> str:
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch == "\\":
            out.append(next(chars, ""))
        else:
            out.append(ch)
    return "".join(out)


def parse_cpe(criteria: str) -> CpeName | None:
    """Vendor/product/version/target_sw of ``cpe:2.3:...``; None if malformed."""
    fields = split_cpe(criteria)
    if len(fields) < 6 or fields[0] != "cpe":
        return None

    def at(index: int) -> str:
        return fields[index] if index < len(fields) else ""

    return CpeName(
        part=at(2),
        vendor=unescape(at(3)),
        product=unescape(at(4)).lower(),
        version=unescape(at(5)),
        target_sw=unescape(at(10)).lower(),
    )


def index_rows(cve_id: str, matches: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Index rows for the vulnerable CPE matches of one CVE."""
    rows: list[dict[str, Any]] = []
    for match in matches:
        if not isinstance(match, dict) or match.get("vulnerable") is not True:
            continue
        criteria = match.get("criteria")
        if not isinstance(criteria, str):
            continue
        cpe = parse_cpe(criteria)
        if cpe is None or not cpe.vendor or not cpe.product:
            continue
        rows.append(
            {
                "cve_id": cve_id,
                "vendor": cpe.vendor,
                "product": cpe.product,
                "target_sw": cpe.target_sw or None,
                "version_exact": cpe.version if cpe.version not in ("", "*") else None,
                "version_start_incl": match.get("versionStartIncluding"),
                "version_start_excl": match.get("versionStartExcluding"),
                "version_end_incl": match.get("versionEndIncluding"),
                "version_end_excl": match.get("versionEndExcluding"),
            }
        )
    return rows


async def _insert_rows(session: AsyncSession, rows: list[dict[str, Any]]) -> int:
    written = 0
    for start in range(0, len(rows), _INSERT_BATCH):
        chunk = rows[start:start + _INSERT_BATCH]
        await session.execute(insert(CpeIndexEntry), chunk)
        written += len(chunk)
    return written


async def rebuild_cpe_index(session: AsyncSession) -> int:
    """Truncate and repopulate the index from every stored CVE."""
    await session.execute(delete(CpeIndexEntry))
    await session.commit()

    total = 0
    last_id = ""
    while True:
        page = (
            await session.execute(
                select(NvdCve.cve_id, NvdCve.cpe_matches)
                .where(NvdCve.cve_id > last_id)
                .order_by(NvdCve.cve_id)
                .limit(_PAGE_SIZE)
            )
        ).all()
        if not page:
            break
        rows: list[dict[str, Any]] = []
        for cve_id, matches in page:
            rows.extend(index_rows(cve_id, matches or []))
        total += await _insert_rows(session, rows)
        await session.commit()
        last_id = page[-1][0]

    logger.info("CPE index rebuilt", rows=total)
    return total


async def refresh_cpe_index(session: AsyncSession, cve_ids: Iterable[str]) -> int:
    """Replace the index rows of *cve_ids* only."""
    ids = sorted(set(cve_ids))
    total = 0
    for start in range(0, len(ids), _DELETE_CHUNK):
        chunk = ids[start:start + _DELETE_CHUNK]
        await session.execute(delete(CpeIndexEntry).where(CpeIndexEntry.cve_id.in_(chunk)))
        page = (
            await session.execute(
                select(NvdCve.cve_id, NvdCve.cpe_matches).where(NvdCve.cve_id.in_(chunk))
            )
        ).all()
        rows: list[dict[str, Any]] = []
        for cve_id, matches in page:
            rows.extend(index_rows(cve_id, matches or []))
        total += await _insert_rows(session, rows)
        await session.commit()

    logger.info("CPE index refreshed", cves=len(ids), rows=total)
    return total
