"""Tests for the sync cycle driver, single-flight guard and stats."""

import httpx
import pytest
from sqlalchemy import select

from helpers import left_pad_advisory, nvd_feed, nvd_item, osv_zip
from vulnfeed.models.notification import Notification
from vulnfeed.models.sync_status import SyncStatus
from vulnfeed.sync import orchestrator
from vulnfeed.sync.orchestrator import (
    SYNC_ERROR_NOTIFICATION,
    CycleReport,
    get_vuln_db_stats,
    run_sync_cycle,
    sync_in_progress,
    trigger_sync,
)


def _client(routes: dict[str, bytes]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        body = routes.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


ALL_FEEDS = {
    "https://osv.test/npm/all.zip": osv_zip(left_pad_advisory()),
    "https://nvd.test/CVE-2024.json.xz": nvd_feed(nvd_item()),
}


async def _notifications(session):
    result = await session.execute(
        select(Notification.user_id, Notification.type, Notification.metadata_json)
    )
    return result.all()


@pytest.mark.asyncio
async def test_clean_cycle_sends_no_notification(session_factory, db_session, settings, admin_user):
    async with _client(ALL_FEEDS) as client:
        report = await run_sync_cycle(
            session_factory=session_factory, client=client, settings=settings
        )

    assert report.started is True
    assert report.errors == []
    assert await _notifications(db_session) == []

    stats = await get_vuln_db_stats(db_session)
    assert [s.source for s in stats.sources] == ["npm", "nvd"]
    assert stats.total_advisories == 1
    assert stats.total_cves == 1


@pytest.mark.asyncio
async def test_failing_source_does_not_stop_the_others(
    session_factory, db_session, settings, admin_user, regular_user
):
    two = settings.model_copy(update={"osv_ecosystems": ["PyPI", "npm"]})
    async with _client(ALL_FEEDS) as client:
        report = await run_sync_cycle(session_factory=session_factory, client=client, settings=two)

    assert report.started is True
    assert len(report.errors) == 1
    assert report.errors[0].startswith("PyPI: ")

    statuses = {s.source: s.status for s in (await get_vuln_db_stats(db_session)).sources}
    assert statuses == {"PyPI": "error", "npm": "completed", "nvd": "completed"}

    sent = await _notifications(db_session)
    assert len(sent) == 1
    user_id, type_, metadata = sent[0]
    assert user_id == admin_user.id
    assert type_ == SYNC_ERROR_NOTIFICATION
    assert metadata["errors"] == report.errors


@pytest.mark.asyncio
async def test_cycle_never_raises(session_factory, settings):
    async with _client({}) as client:
        report = await run_sync_cycle(
            session_factory=session_factory, client=client, settings=settings
        )
    assert report.started is True
    assert [e.split(":")[0] for e in report.errors] == ["npm", "nvd"]


@pytest.mark.asyncio
async def test_second_cycle_is_refused_while_one_runs(session_factory, settings):
    async with orchestrator._cycle_lock:
        assert sync_in_progress() is True
        report = await run_sync_cycle(session_factory=session_factory, settings=settings)
        assert report == CycleReport(started=False)
        assert trigger_sync() is False
    assert sync_in_progress() is False


@pytest.mark.asyncio
async def test_trigger_sync_runs_in_background(monkeypatch):
    calls = []

    async def fake_cycle(**kwargs):
        calls.append(kwargs)
        return CycleReport(started=True)

    monkeypatch.setattr(orchestrator, "run_sync_cycle", fake_cycle)

    assert trigger_sync() is True
    await orchestrator._sync_task
    assert calls == [{}]


@pytest.mark.asyncio
async def test_stats_totals(db_session):
    db_session.add_all([
        SyncStatus(source="npm", status="completed", advisory_count=10, package_count=4),
        SyncStatus(source="PyPI", status="error", advisory_count=5, package_count=2,
                   error_message="boom"),
        SyncStatus(source="nvd", status="completed", advisory_count=100, package_count=0),
    ])
    await db_session.commit()

    stats = await get_vuln_db_stats(db_session)

    assert [s.source for s in stats.sources] == ["PyPI", "npm", "nvd"]
    assert stats.total_advisories == 15
    assert stats.total_cves == 100
    assert stats.as_dict()["sources"][0]["error_message"] == "boom"
