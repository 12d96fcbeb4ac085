"""Shared plumbing for the feed syncers: HTTP client, downloads, extraction,
timestamp parsing and capped error logging."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

import httpx

from vulnfeed.core.config import Settings
from vulnfeed.core.logging import get_logger
from vulnfeed.sync.errors import FeedDownloadError, FeedExtractionError

logger = get_logger(__name__)

T = TypeVar("T")

_CHUNK_SIZE = 1024 * 1024


def build_client(settings: Settings) -> httpx.AsyncClient:
    """HTTP client used for every feed request of one sync cycle."""
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": settings.user_agent},
    )


def new_batch_id() -> str:
    return uuid.uuid4().hex


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an upstream ISO-8601 timestamp; None for missing or malformed."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


async def download_to_file(client: httpx.AsyncClient, url: str, dest: Path) -> int:
    """Stream *url* into *dest*. Returns the number of bytes written."""
    written = 0
    try:
        async with client.stream("GET", url) as resp:
            if resp.status_code != 200:
                raise FeedDownloadError(url, f"HTTP {resp.status_code}")
            with dest.open("wb") as fh:
                async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                    fh.write(chunk)
                    written += len(chunk)
    except httpx.HTTPError as exc:
        raise FeedDownloadError(url, str(exc) or type(exc).__name__) from exc
    logger.info("Feed downloaded", url=url, size_mb=round(written / 1024 / 1024, 1))
    return written


async def fetch_text(client: httpx.AsyncClient, url: str) -> str:
    try:
        resp = await client.get(url)
    except httpx.HTTPError as exc:
        raise FeedDownloadError(url, str(exc) or type(exc).__name__) from exc
    if resp.status_code != 200:
        raise FeedDownloadError(url, f"HTTP {resp.status_code}")
    return resp.text


async def run_bounded(
    func: Callable[..., T], *args: Any, timeout: float, what: str
) -> T:
    """Run blocking extraction work in a thread, bounded by *timeout* seconds.

    On timeout the worker thread cannot be interrupted; it finishes in the
    background while the caller moves on with a FeedExtractionError.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise FeedExtractionError(f"{what} timed out after {timeout:.0f}s") from exc
    except FeedExtractionError:
        raise
    except Exception as exc:
        raise FeedExtractionError(f"{what} failed: {exc}") from exc


class ErrorTally:
    """Counts malformed items; logs only the first few of them."""

    def __init__(self, source: str, limit: int = 5) -> None:
        self.source = source
        self.limit = limit
        self.count = 0

    def record(self, item: str, exc: BaseException | str) -> None:
        self.count += 1
        if self.count <= self.limit:
            logger.warning(
                "Skipping malformed feed item",
                source=self.source,
                item=item,
                error=str(exc),
            )

    def summarize(self) -> None:
        if self.count > self.limit:
            logger.warning(
                "Further malformed items suppressed",
                source=self.source,
                total=self.count,
                suppressed=self.count - self.limit,
            )
