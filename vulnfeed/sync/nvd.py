"""NVD syncer: xz-compressed JSON feeds from the fkie-cad mirror.

Full sync walks the configured years (``CVE-<year>``), sweeps CVEs the run
did not see and rebuilds the CPE index. Incremental sync reads the
``CVE-Modified`` and ``CVE-Recent`` feeds, re-tags everything else to the
current batch and refreshes the index for the CVEs it touched.
"""

from __future__ import annotations

import json
import lzma
import re
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from vulnfeed.core.config import Settings, get_settings
from vulnfeed.core.logging import get_logger
from vulnfeed.models.nvd_cve import NvdCve
from vulnfeed.sync import status as sync_status
from vulnfeed.sync.cpe import rebuild_cpe_index, refresh_cpe_index
from vulnfeed.sync.errors import FeedDownloadError, FeedError
from vulnfeed.sync.feeds import (
    ErrorTally,
    download_to_file,
    new_batch_id,
    parse_timestamp,
    run_bounded,
)
from vulnfeed.sync.osv import severity_from_score
from vulnfeed.sync.status import NVD_SOURCE, SyncMode
from vulnfeed.sync.upsert import CveRow, count_cves, delete_stale, reassign_batch, upsert_cves

logger = get_logger(__name__)

INCREMENTAL_FEEDS = ("CVE-Modified", "CVE-Recent")

_RELEASE_TAG = re.compile(r"/releases/tag/v?(\d+\.\d+\.\d+[\w.-]*)")


@dataclass
class NvdSyncResult:
    mode: SyncMode
    feeds_processed: list[str] = field(default_factory=list)
    feeds_failed: list[str] = field(default_factory=list)
    cves_written: int = 0
    touched_ids: set[str] = field(default_factory=set)
    cve_count: int = 0


# ── Parsing ─────────────────────────────────────────────────────────────────


def _first_metric(metrics: dict[str, Any], key: str) -> dict[str, Any] | None:
    entries = metrics.get(key) or []
    if entries and isinstance(entries[0], dict):
        return entries[0].get("cvssData") or None
    return None


def _version_range(match: dict[str, Any]) -> str:
    parts = []
    if match.get("versionStartIncluding"):
        parts.append(f">= {match['versionStartIncluding']}")
    if match.get("versionEndExcluding"):
        parts.append(f"< {match['versionEndExcluding']}")
    if match.get("versionEndIncluding"):
        parts.append(f"<= {match['versionEndIncluding']}")
    return " ".join(parts)


def parse_nvd_item(item: dict[str, Any]) -> CveRow | None:
    """Flatten one feed item; None for items without an id or rejected CVEs."""
    if isinstance(item.get("cve"), dict):
        item = item["cve"]
    cve_id = item.get("id")
    if not cve_id or item.get("vulnStatus") == "Rejected":
        return None

    description = next(
        (d.get("value") for d in item.get("descriptions") or [] if d.get("lang") == "en"),
        None,
    )

    metrics = item.get("metrics") or {}
    cvss = _first_metric(metrics, "cvssMetricV31") or _first_metric(metrics, "cvssMetricV30")
    cvss_v2 = _first_metric(metrics, "cvssMetricV2")

    severity = None
    if cvss and cvss.get("baseSeverity"):
        severity = cvss["baseSeverity"].lower()
    elif cvss_v2 and cvss_v2.get("baseScore"):
        severity = severity_from_score(cvss_v2["baseScore"])
    score = (cvss or {}).get("baseScore") or (cvss_v2 or {}).get("baseScore") or None
    vector = (cvss or {}).get("vectorString") or (cvss_v2 or {}).get("vectorString") or None

    cpe_matches: list[dict[str, Any]] = []
    ranges: list[str] = []
    for config in item.get("configurations") or []:
        for node in config.get("nodes") or []:
            for match in node.get("cpeMatch") or []:
                if not match.get("vulnerable"):
                    continue
                cpe_matches.append(match)
                rng = _version_range(match)
                if rng:
                    ranges.append(rng)

    references = [
        {"url": ref.get("url"), "source": ref.get("source")}
        for ref in item.get("references") or []
    ]
    fixed_version = None
    for ref in references:
        found = _RELEASE_TAG.search(ref["url"] or "")
        if found:
            fixed_version = found.group(1)
            break

    return CveRow(
        cve_id=cve_id,
        description=description,
        severity=severity,
        cvss_score=float(score) if score is not None else None,
        cvss_vector=vector,
        cvss_data=cvss or cvss_v2,
        cpe_matches=cpe_matches,
        references=references,
        affected_versions=" | ".join(ranges) or None,
        fixed_version=fixed_version,
        published_at=parse_timestamp(item.get("published")),
        modified_at=parse_timestamp(item.get("lastModified")),
        vuln_status=item.get("vulnStatus"),
    )


def feed_items(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Items of either the mirror shape (``cve_items``) or the API shape
    (``vulnerabilities``)."""
    return data.get("cve_items") or data.get("vulnerabilities") or []


# ── Feed processing ─────────────────────────────────────────────────────────


def _decompress_and_load(xz_path: Path) -> dict[str, Any]:
    json_path = xz_path.with_suffix("")
    with lzma.open(xz_path) as src, json_path.open("wb") as dst:
        shutil.copyfileobj(src, dst)
    xz_path.unlink(missing_ok=True)
    try:
        with json_path.open("rb") as fh:
            return json.load(fh)
    finally:
        json_path.unlink(missing_ok=True)


async def process_feed(
    session: AsyncSession,
    client: httpx.AsyncClient,
    feed_name: str,
    scratch_dir: Path,
    batch_id: str,
    settings: Settings,
    result: NvdSyncResult,
) -> int:
    """Download, decompress and upsert one feed. Returns CVE rows written."""
    url = f"{settings.nvd_feeds_base_url}/{feed_name}.json.xz"
    xz_path = scratch_dir / f"{feed_name}.json.xz"
    await download_to_file(client, url, xz_path)

    data = await run_bounded(
        _decompress_and_load,
        xz_path,
        timeout=settings.extraction_timeout_seconds,
        what=f"Decompressing {feed_name}",
    )
    items = feed_items(data) if isinstance(data, dict) else []
    if not items:
        logger.info("NVD feed has no entries", feed=feed_name)
        return 0

    tally = ErrorTally(f"nvd:{feed_name}")
    rows: list[CveRow] = []
    for item in items:
        try:
            row = parse_nvd_item(item)
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            tally.record(str(item.get("id", "?")) if isinstance(item, dict) else "?", exc)
            continue
        if row is not None:
            rows.append(row)
    tally.summarize()

    written = await upsert_cves(session, rows, batch_id, batch_size=settings.upsert_batch_size)
    result.touched_ids.update(row.cve_id for row in rows)
    logger.info("NVD feed processed", feed=feed_name, entries=len(items), upserted=written)
    return written


async def _run_feeds(
    session: AsyncSession,
    client: httpx.AsyncClient,
    feeds: list[str],
    batch_id: str,
    settings: Settings,
    result: NvdSyncResult,
) -> None:
    with tempfile.TemporaryDirectory(prefix="vulnfeed-nvd-") as scratch:
        for feed_name in feeds:
            try:
                result.cves_written += await process_feed(
                    session, client, feed_name, Path(scratch), batch_id, settings, result
                )
            except FeedError as exc:
                logger.error("NVD feed failed, skipping", feed=feed_name, error=str(exc))
                result.feeds_failed.append(feed_name)
                continue
            result.feeds_processed.append(feed_name)

    if not result.feeds_processed:
        raise FeedDownloadError(
            settings.nvd_feeds_base_url, f"none of {', '.join(feeds)} could be processed"
        )


async def refresh_search_vectors(session: AsyncSession, since: datetime) -> None:
    """Fill ``description_tsv`` for new or changed rows (PostgreSQL only)."""
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(
        text(
            "UPDATE nvd_cves SET description_tsv = to_tsvector('english', COALESCE(description, '')) "
            "WHERE description_tsv IS NULL OR updated_at >= :since"
        ),
        {"since": since},
    )
    await session.commit()


# ── Driver ──────────────────────────────────────────────────────────────────


async def sync_nvd(
    session: AsyncSession,
    *,
    client: httpx.AsyncClient,
    settings: Settings | None = None,
) -> NvdSyncResult:
    """Sync NVD and record the outcome on the ``nvd`` status row.

    A single feed failing is logged and skipped; the source is marked
    ``error`` (and the exception re-raised) only when nothing could be
    processed or the store itself fails.
    """
    settings = settings or get_settings()
    started = time.monotonic()
    run_started_at = datetime.now(timezone.utc)
    batch_id = new_batch_id()

    current = await sync_status.load_status(session, NVD_SOURCE)
    mode = sync_status.choose_mode(
        current,
        now=run_started_at,
        full_sync_interval_days=settings.full_sync_interval_days,
        require_marker=False,
    )
    await sync_status.mark_running(session, NVD_SOURCE)
    result = NvdSyncResult(mode=mode)

    logger.info("NVD sync starting", mode=mode.value, batch_id=batch_id)
    try:
        if mode is SyncMode.FULL:
            feeds = [f"CVE-{year}" for year in settings.nvd_years]
            await _run_feeds(session, client, feeds, batch_id, settings, result)
            await refresh_search_vectors(session, run_started_at)
            if result.feeds_failed:
                # Rows of a year that failed to download are kept, not swept
                await reassign_batch(session, NvdCve, batch_id)
            else:
                removed = await delete_stale(session, NvdCve, batch_id)
                if removed:
                    logger.info("Removed stale CVEs", rows=removed)
            await rebuild_cpe_index(session)
        else:
            await _run_feeds(session, client, list(INCREMENTAL_FEEDS), batch_id, settings, result)
            await refresh_search_vectors(session, run_started_at)
            await reassign_batch(session, NvdCve, batch_id)
            await refresh_cpe_index(session, result.touched_ids)

        result.cve_count = await count_cves(session)
        duration = time.monotonic() - started
        await sync_status.mark_completed(
            session,
            NVD_SOURCE,
            mode=mode,
            duration_seconds=duration,
            advisory_count=result.cve_count,
        )
    except Exception as exc:
        await sync_status.mark_error(
            session, NVD_SOURCE, str(exc), duration_seconds=time.monotonic() - started
        )
        raise

    logger.info(
        "NVD sync complete",
        mode=mode.value,
        duration_s=round(duration, 1),
        cves=result.cve_count,
        upserted=result.cves_written,
        failed_feeds=result.feeds_failed,
    )
    return result
