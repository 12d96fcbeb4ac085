"""Admin vulnerability-database endpoints: auth, status and trigger."""

from datetime import timedelta

import pytest

from helpers import auth_headers, make_token
from vulnfeed.api.routers import vulndb
from vulnfeed.models.sync_status import SyncStatus

STATUS_URL = "/api/v1/admin/vuln-db/status"
SYNC_URL = "/api/v1/admin/vuln-db/sync"


@pytest.mark.asyncio
async def test_status_requires_token(client):
    r = await client.get(STATUS_URL)
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_invalid_and_expired_tokens_are_rejected(client, admin_user):
    r = await client.get(STATUS_URL, headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    expired = make_token(admin_user.id, expires_in=timedelta(minutes=-5))
    r = await client.get(STATUS_URL, headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Token expired"


@pytest.mark.asyncio
async def test_non_admin_is_forbidden(client, regular_user):
    r = await client.get(STATUS_URL, headers=auth_headers(regular_user))
    assert r.status_code == 403
    r = await client.post(SYNC_URL, headers=auth_headers(regular_user))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_disabled_admin_is_forbidden(client, disabled_admin):
    r = await client.get(STATUS_URL, headers=auth_headers(disabled_admin))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_status_empty(client, admin_user):
    r = await client.get(STATUS_URL, headers=auth_headers(admin_user))
    assert r.status_code == 200
    data = r.json()
    assert data["sources"] == []
    assert data["total_advisories"] == 0
    assert data["total_cves"] == 0
    assert data["sync_in_progress"] is False


@pytest.mark.asyncio
async def test_status_lists_sources(client, db_session, admin_user):
    db_session.add_all([
        SyncStatus(source="npm", status="completed", advisory_count=12, package_count=7),
        SyncStatus(source="nvd", status="error", advisory_count=40, package_count=0,
                   error_message="Failed to download"),
    ])
    await db_session.commit()

    r = await client.get(STATUS_URL, headers=auth_headers(admin_user))
    assert r.status_code == 200
    data = r.json()
    assert [s["source"] for s in data["sources"]] == ["npm", "nvd"]
    assert data["sources"][1]["error_message"] == "Failed to download"
    assert data["total_advisories"] == 12
    assert data["total_cves"] == 40


@pytest.mark.asyncio
async def test_trigger_sync_accepted(client, admin_user, monkeypatch):
    monkeypatch.setattr(vulndb, "trigger_sync", lambda: True)
    r = await client.post(SYNC_URL, headers=auth_headers(admin_user))
    assert r.status_code == 202
    assert r.json()["accepted"] is True


@pytest.mark.asyncio
async def test_trigger_sync_while_running(client, admin_user, monkeypatch):
    monkeypatch.setattr(vulndb, "trigger_sync", lambda: False)
    r = await client.post(SYNC_URL, headers=auth_headers(admin_user))
    assert r.status_code == 202
    data = r.json()
    assert data["accepted"] is False
    assert data["message"] == "A sync cycle is already running"
