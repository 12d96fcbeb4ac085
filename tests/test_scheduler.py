"""Tests for the background sync scheduler."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from vulnfeed.core import scheduler
from vulnfeed.models.sync_status import SyncStatus
from vulnfeed.sync import status as sync_status

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _synced(source, hours_ago):
    last = NOW - timedelta(hours=hours_ago) if hours_ago is not None else None
    return SyncStatus(source=source, status="completed", last_sync_at=last)


def test_due_when_nothing_has_synced():
    assert scheduler.sync_due([], now=NOW, interval_hours=24)
    assert scheduler.sync_due([_synced("npm", None)], now=NOW, interval_hours=24)


def test_not_due_within_interval():
    statuses = [_synced("npm", 30), _synced("nvd", 2)]
    assert not scheduler.sync_due(statuses, now=NOW, interval_hours=24)


def test_due_after_interval():
    statuses = [_synced("npm", 30), _synced("nvd", 25)]
    assert scheduler.sync_due(statuses, now=NOW, interval_hours=24)


def test_naive_timestamps_are_utc():
    status = _synced("npm", 1)
    status.last_sync_at = status.last_sync_at.replace(tzinfo=None)
    assert not scheduler.sync_due([status], now=NOW, interval_hours=24)


def test_recent_attempt_counts_even_without_success():
    status = SyncStatus(source="npm", status="error", last_attempt_at=NOW - timedelta(hours=2))
    assert not scheduler.sync_due([status], now=NOW, interval_hours=24)
    assert scheduler.sync_due([status], now=NOW + timedelta(hours=23), interval_hours=24)


@pytest.mark.asyncio
async def test_failed_cycle_is_not_retried_until_interval(db_session):
    for source in ("npm", "nvd"):
        await sync_status.mark_running(db_session, source)
        await sync_status.mark_error(db_session, source, "HTTP 503")

    statuses = await sync_status.list_statuses(db_session)
    assert [(s.source, s.status, s.last_sync_at) for s in statuses] == [
        ("npm", "error", None),
        ("nvd", "error", None),
    ]

    now = datetime.now(timezone.utc)
    assert not scheduler.sync_due(statuses, now=now + timedelta(seconds=60), interval_hours=24)
    assert scheduler.sync_due(statuses, now=now + timedelta(hours=25), interval_hours=24)


@pytest.mark.asyncio
async def test_loop_survives_check_errors(monkeypatch):
    calls = 0

    async def failing_check():
        nonlocal calls
        calls += 1
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(scheduler, "_check_and_run_sync", failing_check)

    task = asyncio.create_task(scheduler.scheduler_loop(check_interval_seconds=0))
    while calls < 3:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert calls >= 3
