"""Dependency hash enrichment against the npm and PyPI registries.

Registry lookups run concurrently in small batches with a pause between
batches; graph writes happen one at a time. The entry point never raises: it
is started fire-and-forget after an SBOM is stored and reports its outcome
through the returned counters and the log.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import quote

import httpx

from vulnfeed.core.config import Settings, get_settings
from vulnfeed.core.logging import get_logger
from vulnfeed.plugins.base import DetectedPackage

logger = get_logger(__name__)

NPM_REGISTRY = "https://registry.npmjs.org"
PYPI_REGISTRY = "https://pypi.org/pypi"

SUPPORTED_ECOSYSTEMS = ("npm", "pip", "pypi")

_SRI = re.compile(r"^(sha\d+)-(.+)$")


class DependencyStore(Protocol):
    """Graph-store operations the enrichment needs."""

    async def hashed_purls(self, product_id: str) -> set[str]: ...

    async def dependency_count(self, product_id: str) -> int: ...

    async def write_hash(
        self, purl: str, *, hash_value: str, algorithm: str, download_url: str
    ) -> None: ...

    async def write_gap_reasons(self, entries: list[tuple[str, str]]) -> None: ...

    async def clear_gap_reasons(self, purls: list[str]) -> None: ...


@dataclass(frozen=True)
class RegistryHash:
    hash: str
    algorithm: str
    download_url: str


@dataclass
class GapBreakdown:
    no_version: int = 0
    unsupported_ecosystem: int = 0
    not_found: int = 0
    fetch_error: int = 0


@dataclass
class EnrichmentResult:
    enriched: int = 0
    skipped: int = 0
    failed: int = 0
    gaps: GapBreakdown = field(default_factory=GapBreakdown)


def parse_sri(integrity: str) -> tuple[str, str] | None:
    """``sha512-<b64>`` → (``SHA-512``, ``<b64>``)."""
    match = _SRI.match(integrity or "")
    if match is None:
        return None
    algorithm = match.group(1).upper().replace("SHA", "SHA-", 1)
    return algorithm, match.group(2)


async def fetch_npm_hash(
    client: httpx.AsyncClient, name: str, version: str
) -> RegistryHash | None:
    """None when the registry has no such version or no usable integrity."""
    encoded = name.replace("/", "%2F", 1) if name.startswith("@") else name
    resp = await client.get(f"{NPM_REGISTRY}/{encoded}/{version}")
    if resp.status_code != 200:
        return None
    dist = (resp.json() or {}).get("dist") or {}
    parsed = parse_sri(dist.get("integrity") or "")
    if parsed is None:
        return None
    algorithm, digest = parsed
    return RegistryHash(hash=digest, algorithm=algorithm, download_url=dist.get("tarball") or "")


async def fetch_pypi_hash(
    client: httpx.AsyncClient, name: str, version: str
) -> RegistryHash | None:
    """SHA-256 of the sdist (or the first file when there is no sdist)."""
    resp = await client.get(f"{PYPI_REGISTRY}/{quote(name, safe='')}/{version}/json")
    if resp.status_code != 200:
        return None
    files = (resp.json() or {}).get("urls") or []
    chosen = next((f for f in files if f.get("packagetype") == "sdist"), None)
    if chosen is None and files:
        chosen = files[0]
    sha256 = ((chosen or {}).get("digests") or {}).get("sha256")
    if not sha256:
        return None
    return RegistryHash(hash=sha256, algorithm="SHA-256", download_url=chosen.get("url") or "")


async def _lookup(
    client: httpx.AsyncClient, pkg: DetectedPackage, timeout: float
) -> tuple[DetectedPackage, RegistryHash | None, bool]:
    """(package, hash or None, fetch_failed).

    *timeout* bounds the whole call; the client timeout only bounds each
    connect and read.
    """
    fetch = fetch_npm_hash if pkg.ecosystem == "npm" else fetch_pypi_hash
    try:
        info = await asyncio.wait_for(fetch(client, pkg.name, pkg.version), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "Registry lookup timed out",
            package=pkg.name,
            version=pkg.version,
            timeout_s=timeout,
        )
        return pkg, None, True
    except (httpx.HTTPError, ValueError, AttributeError, TypeError) as exc:
        logger.warning(
            "Registry lookup failed",
            package=pkg.name,
            version=pkg.version,
            error=str(exc) or type(exc).__name__,
        )
        return pkg, None, True
    return pkg, info, False


async def enrich_dependency_hashes(
    product_id: str,
    packages: Sequence[DetectedPackage],
    *,
    store: DependencyStore | None = None,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> EnrichmentResult:
    """Write registry hashes onto the product's dependency nodes. Never raises."""
    settings = settings or get_settings()
    stats = EnrichmentResult()
    started = time.monotonic()

    try:
        if store is None:
            from vulnfeed.core.graph import Neo4jDependencyStore

            store = Neo4jDependencyStore()
        owns_client = client is None
        http = client or httpx.AsyncClient(
            timeout=settings.hash_request_timeout_seconds,
            headers={"Accept": "application/json", "User-Agent": settings.user_agent},
        )
        try:
            await _enrich(product_id, packages, store, http, settings, stats)
        finally:
            if owns_client:
                await http.aclose()
    except Exception:
        logger.exception("Hash enrichment aborted", product_id=product_id)

    logger.info(
        "Hash enrichment complete",
        product_id=product_id,
        enriched=stats.enriched,
        skipped=stats.skipped,
        failed=stats.failed,
        no_version=stats.gaps.no_version,
        unsupported=stats.gaps.unsupported_ecosystem,
        not_found=stats.gaps.not_found,
        fetch_error=stats.gaps.fetch_error,
        duration_s=round(time.monotonic() - started, 2),
    )
    return stats


async def _enrich(
    product_id: str,
    packages: Sequence[DetectedPackage],
    store: DependencyStore,
    client: httpx.AsyncClient,
    settings: Settings,
    stats: EnrichmentResult,
) -> None:
    gap_entries: list[tuple[str, str]] = []
    success_purls: list[str] = []

    candidates: list[DetectedPackage] = []
    for pkg in packages:
        if not pkg.version:
            stats.gaps.no_version += 1
            stats.skipped += 1
            gap_entries.append((pkg.purl, "no_version"))
        elif pkg.ecosystem not in SUPPORTED_ECOSYSTEMS:
            stats.gaps.unsupported_ecosystem += 1
            stats.skipped += 1
            gap_entries.append((pkg.purl, "unsupported_ecosystem"))
        else:
            candidates.append(pkg)

    pending: list[DetectedPackage] = []
    if candidates:
        already = await store.hashed_purls(product_id)
        for pkg in candidates:
            if pkg.purl in already:
                stats.skipped += 1
            else:
                pending.append(pkg)

    logger.info(
        "Hash enrichment starting",
        product_id=product_id,
        packages=len(packages),
        graph_dependencies=await store.dependency_count(product_id),
        to_fetch=len(pending),
        skipped=stats.skipped,
    )

    width = settings.hash_batch_size
    for start in range(0, len(pending), width):
        batch = pending[start:start + width]
        timeout = settings.hash_request_timeout_seconds
        results = await asyncio.gather(
            *(_lookup(client, pkg, timeout) for pkg in batch), return_exceptions=True
        )

        for outcome in results:
            if isinstance(outcome, BaseException):
                stats.gaps.fetch_error += 1
                stats.failed += 1
                logger.warning("Registry lookup crashed", error=str(outcome))
                continue

            pkg, info, fetch_failed = outcome
            if fetch_failed:
                stats.gaps.fetch_error += 1
                stats.failed += 1
                gap_entries.append((pkg.purl, "fetch_error"))
                continue
            if info is None:
                stats.gaps.not_found += 1
                stats.failed += 1
                gap_entries.append((pkg.purl, "not_found"))
                continue

            try:
                await store.write_hash(
                    pkg.purl,
                    hash_value=info.hash,
                    algorithm=info.algorithm,
                    download_url=info.download_url,
                )
            except Exception as exc:
                logger.warning("Graph write failed", purl=pkg.purl, error=str(exc))
                stats.gaps.fetch_error += 1
                stats.failed += 1
                gap_entries.append((pkg.purl, "fetch_error"))
                continue
            stats.enriched += 1
            success_purls.append(pkg.purl)

        if start + width < len(pending):
            await asyncio.sleep(settings.hash_batch_delay_ms / 1000)

    await store.write_gap_reasons(gap_entries)
    await store.clear_gap_reasons(success_purls)
