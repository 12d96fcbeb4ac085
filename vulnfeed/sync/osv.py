"""OSV ecosystem syncer.

Full sync downloads ``<bucket>/<ecosystem>/all.zip`` and treats it as the
authoritative set for the ecosystem; incremental sync walks the
reverse-chronological ``modified_id.csv`` down to the stored watermark and
fetches only the advisories that changed.
"""

from __future__ import annotations

import asyncio
import json
import tempfile
import time
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from vulnfeed.core.config import Settings, get_settings
from vulnfeed.core.logging import get_logger
from vulnfeed.models.advisory import Advisory
from vulnfeed.sync import status as sync_status
from vulnfeed.sync.feeds import (
    ErrorTally,
    download_to_file,
    ensure_utc,
    fetch_text,
    new_batch_id,
    parse_timestamp,
    run_bounded,
)
from vulnfeed.sync.status import SyncMode
from vulnfeed.sync.upsert import (
    AdvisoryRow,
    count_advisories,
    delete_stale,
    reassign_batch,
    upsert_advisories,
)

logger = get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 4000
_PROGRESS_EVERY = 2000


@dataclass
class OsvSyncResult:
    ecosystem: str
    mode: SyncMode
    advisory_count: int = 0
    package_names: set[str] = field(default_factory=set)
    latest_modified: datetime | None = None
    rows_written: int = 0


# ── Severity ────────────────────────────────────────────────────────────────


def approximate_cvss_score(vector: str) -> float | None:
    """Rough numeric score for a CVSS v3/v4 vector string.

    This is a weighted sum of the exploitability and impact metrics, not the
    official CVSS formula. Stored scores depend on it, so changing it changes
    every OSV row on the next full sync.
    """
    if not vector.startswith(("CVSS:3", "CVSS:4")):
        return None
    score = 0.0
    for part in vector.split("/"):
        if part.startswith("AV:N"):
            score += 2
        elif part.startswith("AV:A"):
            score += 1.5
        if part.startswith("AC:L"):
            score += 1
        if part.startswith("PR:N"):
            score += 1
        if part.startswith("UI:N"):
            score += 0.5
        if part.startswith("C:H"):
            score += 1.5
        if part.startswith("I:H"):
            score += 1.5
        if part.startswith("A:H"):
            score += 1.5
    return min(round(score, 1), 10.0)


def severity_from_score(score: float | None) -> str:
    if not score:
        return "medium"
    if score >= 9.0:
        return "critical"
    if score >= 7.0:
        return "high"
    if score >= 4.0:
        return "medium"
    return "low"


def _osv_severity(vuln: dict[str, Any]) -> tuple[str | None, float | None, str | None]:
    """(severity, cvss_score, cvss_vector) for an OSV record."""
    db_specific = vuln.get("database_specific") or {}
    db_severity = db_specific.get("severity") if isinstance(db_specific, dict) else None
    if isinstance(db_severity, str):
        return db_severity.lower(), None, None

    for entry in vuln.get("severity") or []:
        if entry.get("type") in ("CVSS_V3", "CVSS_V4") and entry.get("score"):
            vector = entry["score"]
            score = approximate_cvss_score(vector)
            severity = severity_from_score(score) if score is not None else "medium"
            return severity, score, vector

    return None, None, None


# ── Parsing ─────────────────────────────────────────────────────────────────


def _first_fixed(ranges: list[dict[str, Any]]) -> str | None:
    for rng in ranges:
        for event in rng.get("events") or []:
            if event.get("fixed"):
                return event["fixed"]
    return None


def parse_osv_advisory(vuln: dict[str, Any]) -> list[AdvisoryRow]:
    """One AdvisoryRow per affected package of an OSV record.

    Affected entries lacking a package name or ecosystem are skipped.
    Raises KeyError/TypeError/AttributeError on structurally broken input.
    """
    advisory_id = vuln["id"]
    affected = vuln.get("affected") or []
    if not affected:
        return []

    severity, score, vector = _osv_severity(vuln)
    source = "github" if advisory_id.startswith("GHSA-") else "osv"
    aliases = list(vuln.get("aliases") or [])
    references = [
        {"type": ref.get("type"), "url": ref.get("url")}
        for ref in vuln.get("references") or []
    ]
    title = vuln.get("summary") or advisory_id
    description = (vuln.get("details") or "")[:MAX_DESCRIPTION_LENGTH]
    published = parse_timestamp(vuln.get("published"))
    modified = parse_timestamp(vuln.get("modified"))
    withdrawn = parse_timestamp(vuln.get("withdrawn"))

    rows: list[AdvisoryRow] = []
    for entry in affected:
        package = entry.get("package") or {}
        name = package.get("name")
        ecosystem = package.get("ecosystem")
        if not name or not ecosystem:
            continue
        ranges = list(entry.get("ranges") or [])
        rows.append(
            AdvisoryRow(
                source=source,
                advisory_id=advisory_id,
                ecosystem=ecosystem,
                package_name=name,
                package_purl=package.get("purl") or None,
                severity=severity,
                cvss_score=score,
                cvss_vector=vector,
                title=title,
                description=description,
                affected_ranges=ranges,
                affected_versions=list(entry.get("versions") or []),
                fixed_version=_first_fixed(ranges),
                aliases=aliases,
                references=references,
                published_at=published,
                modified_at=modified,
                withdrawn_at=withdrawn,
            )
        )
    return rows


def parse_modified_csv(text: str, watermark: datetime) -> list[tuple[datetime, str]]:
    """Entries of a newest-first ``timestamp,id`` list strictly newer than *watermark*.

    Stops at the first entry at or before the watermark. Unparseable lines
    are skipped.
    """
    changed: list[tuple[datetime, str]] = []
    for line in text.strip().splitlines():
        date_str, sep, advisory_id = line.partition(",")
        if not sep:
            continue
        modified = parse_timestamp(date_str)
        advisory_id = advisory_id.strip()
        if modified is None or not advisory_id:
            continue
        if modified <= watermark:
            break
        changed.append((modified, advisory_id))
    return changed


# ── Full sync ───────────────────────────────────────────────────────────────


def _extract_archive(archive: Path, dest: Path) -> list[Path]:
    with zipfile.ZipFile(archive) as zf:
        zf.extractall(dest)
    archive.unlink(missing_ok=True)
    return sorted(p for p in dest.rglob("*.json") if p.is_file())


async def full_sync(
    session: AsyncSession,
    client: httpx.AsyncClient,
    ecosystem: str,
    batch_id: str,
    settings: Settings,
) -> OsvSyncResult:
    result = OsvSyncResult(ecosystem=ecosystem, mode=SyncMode.FULL)
    url = f"{settings.osv_bucket_url}/{ecosystem}/all.zip"
    tally = ErrorTally(f"osv:{ecosystem}")

    with tempfile.TemporaryDirectory(prefix=f"vulnfeed-osv-{ecosystem}-") as scratch:
        scratch_dir = Path(scratch)
        archive = scratch_dir / "all.zip"
        await download_to_file(client, url, archive)

        files = await run_bounded(
            _extract_archive,
            archive,
            scratch_dir / "extracted",
            timeout=settings.extraction_timeout_seconds,
            what=f"Extracting {ecosystem} archive",
        )
        logger.info("OSV archive extracted", ecosystem=ecosystem, files=len(files))

        pending: list[AdvisoryRow] = []
        for path in files:
            try:
                rows = parse_osv_advisory(json.loads(path.read_text(encoding="utf-8")))
            except (ValueError, KeyError, TypeError, AttributeError, OSError) as exc:
                tally.record(path.name, exc)
                continue

            result.advisory_count += 1
            for row in rows:
                result.package_names.add(row.package_name)
                if row.modified_at and (
                    result.latest_modified is None or row.modified_at > result.latest_modified
                ):
                    result.latest_modified = row.modified_at
            pending.extend(rows)

            if len(pending) >= settings.upsert_batch_size:
                result.rows_written += await upsert_advisories(
                    session, pending, batch_id, batch_size=settings.upsert_batch_size
                )
                pending = []

            if result.advisory_count % _PROGRESS_EVERY == 0:
                logger.info(
                    "OSV full sync progress",
                    ecosystem=ecosystem,
                    parsed=result.advisory_count,
                    total=len(files),
                    upserted=result.rows_written,
                )

        if pending:
            result.rows_written += await upsert_advisories(
                session, pending, batch_id, batch_size=settings.upsert_batch_size
            )

    tally.summarize()
    removed = await delete_stale(session, Advisory, batch_id, Advisory.ecosystem == ecosystem)
    if removed:
        logger.info("Removed stale advisories", ecosystem=ecosystem, rows=removed)
    return result


# ── Incremental sync ────────────────────────────────────────────────────────


async def _fetch_advisory(
    client: httpx.AsyncClient, url: str, tally: ErrorTally
) -> list[AdvisoryRow] | None:
    """Fetch and parse one advisory; None on any failure."""
    try:
        resp = await client.get(url)
        if resp.status_code != 200:
            return None
        return parse_osv_advisory(resp.json())
    except httpx.HTTPError as exc:
        logger.debug("Advisory fetch failed", url=url, error=str(exc))
        return None
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        tally.record(url, exc)
        return None


async def incremental_sync(
    session: AsyncSession,
    client: httpx.AsyncClient,
    ecosystem: str,
    batch_id: str,
    watermark: datetime,
    settings: Settings,
) -> OsvSyncResult:
    result = OsvSyncResult(ecosystem=ecosystem, mode=SyncMode.INCREMENTAL)
    base = f"{settings.osv_bucket_url}/{ecosystem}"
    tally = ErrorTally(f"osv:{ecosystem}")

    changed = parse_modified_csv(await fetch_text(client, f"{base}/modified_id.csv"), watermark)
    logger.info(
        "OSV incremental changes",
        ecosystem=ecosystem,
        changed=len(changed),
        since=watermark.isoformat(),
    )
    result.advisory_count = len(changed)
    if changed:
        result.latest_modified = max(modified for modified, _ in changed)

    rows: list[AdvisoryRow] = []
    width = settings.osv_fetch_concurrency
    for start in range(0, len(changed), width):
        window = changed[start:start + width]
        fetched = await asyncio.gather(
            *(_fetch_advisory(client, f"{base}/{advisory_id}.json", tally) for _, advisory_id in window)
        )
        for parsed in fetched:
            if parsed:
                rows.extend(parsed)
                result.package_names.update(row.package_name for row in parsed)

    tally.summarize()
    result.rows_written = await upsert_advisories(
        session, rows, batch_id, batch_size=settings.upsert_batch_size
    )
    await reassign_batch(session, Advisory, batch_id, Advisory.ecosystem == ecosystem)
    return result


# ── Per-ecosystem driver ────────────────────────────────────────────────────


async def sync_osv_ecosystem(
    session: AsyncSession,
    ecosystem: str,
    *,
    client: httpx.AsyncClient,
    settings: Settings | None = None,
) -> OsvSyncResult:
    """Sync one ecosystem and record the outcome on its status row.

    Source-level failures mark the row ``error`` and are re-raised.
    """
    settings = settings or get_settings()
    started = time.monotonic()
    batch_id = new_batch_id()

    current = await sync_status.load_status(session, ecosystem)
    mode = sync_status.choose_mode(
        current,
        now=datetime.now(timezone.utc),
        full_sync_interval_days=settings.full_sync_interval_days,
    )
    watermark = current.last_modified_marker if current is not None else None
    await sync_status.mark_running(session, ecosystem)

    logger.info("OSV sync starting", ecosystem=ecosystem, mode=mode.value, batch_id=batch_id)
    try:
        if mode is SyncMode.FULL:
            result = await full_sync(session, client, ecosystem, batch_id, settings)
        else:
            result = await incremental_sync(
                session, client, ecosystem, batch_id,
                ensure_utc(watermark), settings,
            )

        total, packages = await count_advisories(session, ecosystem)
        duration = time.monotonic() - started
        await sync_status.mark_completed(
            session,
            ecosystem,
            mode=mode,
            duration_seconds=duration,
            advisory_count=total,
            package_count=packages,
            marker=result.latest_modified,
        )
    except Exception as exc:
        await sync_status.mark_error(
            session, ecosystem, str(exc), duration_seconds=time.monotonic() - started
        )
        raise

    logger.info(
        "OSV sync complete",
        ecosystem=ecosystem,
        mode=mode.value,
        duration_s=round(duration, 1),
        advisories=total,
        packages=packages,
    )
    return result
