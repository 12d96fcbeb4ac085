"""Tests for the advisory/CVE dedup and upsert engine."""

import pytest
from sqlalchemy import func, select

from vulnfeed.models.advisory import Advisory
from vulnfeed.models.nvd_cve import NvdCve
from vulnfeed.sync.upsert import (
    AdvisoryRow,
    CveRow,
    count_advisories,
    count_cves,
    dedupe_advisories,
    dedupe_cves,
    delete_stale,
    reassign_batch,
    upsert_advisories,
    upsert_cves,
)


def _row(advisory_id="GHSA-1", package="left-pad", **kwargs):
    return AdvisoryRow(
        source="github",
        advisory_id=advisory_id,
        ecosystem="npm",
        package_name=package,
        **kwargs,
    )


# ── Dedup ───────────────────────────────────────────────────────────────────


def test_dedupe_merges_rows_sharing_a_key():
    a = _row(
        affected_ranges=[{"type": "SEMVER", "events": [{"introduced": "0"}]}],
        affected_versions=["1.0.0", "1.1.0"],
    )
    b = _row(
        affected_ranges=[{"type": "SEMVER", "events": [{"fixed": "2.0.0"}]}],
        affected_versions=["1.1.0", "1.2.0"],
        fixed_version="2.0.0",
    )
    c = _row(fixed_version="3.0.0")

    merged = dedupe_advisories([a, b, c])

    assert len(merged) == 1
    row = merged[0]
    assert len(row.affected_ranges) == 2
    assert row.affected_versions == ["1.0.0", "1.1.0", "1.2.0"]
    assert row.fixed_version == "2.0.0"


def test_dedupe_does_not_mutate_input():
    a = _row(affected_versions=["1.0.0"])
    b = _row(affected_versions=["2.0.0"])
    dedupe_advisories([a, b])
    assert a.affected_versions == ["1.0.0"]
    assert b.affected_versions == ["2.0.0"]


def test_dedupe_is_idempotent():
    rows = [
        _row(affected_versions=["1.0.0"]),
        _row(affected_versions=["1.0.0", "1.0.1"], fixed_version="1.0.2"),
        _row(advisory_id="GHSA-2", affected_versions=["0.9"]),
        _row(package="right-pad"),
    ]
    once = dedupe_advisories(rows)
    twice = dedupe_advisories(once)
    assert twice == once
    assert len(once) == 3


def test_dedupe_cves_last_wins():
    rows = [CveRow(cve_id="CVE-1", severity="low"), CveRow(cve_id="CVE-1", severity="high")]
    result = dedupe_cves(rows)
    assert len(result) == 1
    assert result[0].severity == "high"


# ── Upsert ──────────────────────────────────────────────────────────────────


async def _stored(session):
    result = await session.execute(
        select(
            Advisory.advisory_id,
            Advisory.package_name,
            Advisory.severity,
            Advisory.fixed_version,
            Advisory.affected_versions,
            Advisory.sync_batch_id,
            Advisory.updated_at,
        ).order_by(Advisory.advisory_id, Advisory.package_name)
    )
    return result.all()


@pytest.mark.asyncio
async def test_upsert_inserts_then_updates(db_session):
    written = await upsert_advisories(db_session, [_row(severity="low")], "batch-1")
    assert written == 1

    written = await upsert_advisories(
        db_session, [_row(severity="high", fixed_version="1.3.0")], "batch-2"
    )
    assert written == 1

    rows = await _stored(db_session)
    assert len(rows) == 1
    assert rows[0].severity == "high"
    assert rows[0].fixed_version == "1.3.0"
    assert rows[0].sync_batch_id == "batch-2"


@pytest.mark.asyncio
async def test_upsert_duplicate_keys_in_one_call(db_session):
    rows = [
        _row(affected_versions=["1.0.0"]),
        _row(affected_versions=["1.1.0"], fixed_version="1.2.0"),
    ]
    written = await upsert_advisories(db_session, rows, "batch-1")
    assert written == 1

    stored = await _stored(db_session)
    assert len(stored) == 1
    assert stored[0].affected_versions == ["1.0.0", "1.1.0"]
    assert stored[0].fixed_version == "1.2.0"


@pytest.mark.asyncio
async def test_upsert_same_input_twice_is_stable(db_session):
    rows = [_row(), _row(advisory_id="GHSA-2"), _row(package="right-pad")]
    await upsert_advisories(db_session, rows, "batch-1")
    first = [(r.advisory_id, r.package_name, r.fixed_version) for r in await _stored(db_session)]
    await upsert_advisories(db_session, rows, "batch-1")
    second = [(r.advisory_id, r.package_name, r.fixed_version) for r in await _stored(db_session)]
    assert first == second
    assert len(second) == 3


@pytest.mark.asyncio
async def test_failed_batch_is_dropped_and_others_kept(db_session):
    rows = [_row("GHSA-1"), _row("GHSA-2", package=None), _row("GHSA-3")]
    written = await upsert_advisories(db_session, rows, "batch-1", batch_size=1)
    assert written == 2
    ids = [r.advisory_id for r in await _stored(db_session)]
    assert ids == ["GHSA-1", "GHSA-3"]


@pytest.mark.asyncio
async def test_upsert_empty_is_noop(db_session):
    assert await upsert_advisories(db_session, [], "batch-1") == 0
    assert await upsert_cves(db_session, [], "batch-1") == 0


# ── Sweeps ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_delete_stale_removes_untouched_rows_of_ecosystem(db_session):
    await upsert_advisories(db_session, [_row("GHSA-old")], "batch-1")
    other = AdvisoryRow(
        source="osv", advisory_id="PYSEC-1", ecosystem="PyPI", package_name="requests"
    )
    await upsert_advisories(db_session, [other], "batch-1")
    await upsert_advisories(db_session, [_row("GHSA-new")], "batch-2")

    removed = await delete_stale(db_session, Advisory, "batch-2", Advisory.ecosystem == "npm")

    assert removed == 1
    assert await count_advisories(db_session, "npm") == (1, 1)
    assert await count_advisories(db_session, "PyPI") == (1, 1)


@pytest.mark.asyncio
async def test_reassign_batch_retags_without_touching_updated_at(db_session):
    await upsert_advisories(db_session, [_row("GHSA-old")], "batch-1")
    before = (await _stored(db_session))[0]

    await upsert_advisories(db_session, [_row("GHSA-new")], "batch-2")
    retagged = await reassign_batch(db_session, Advisory, "batch-2", Advisory.ecosystem == "npm")

    assert retagged == 1
    rows = {r.advisory_id: r for r in await _stored(db_session)}
    assert rows["GHSA-old"].sync_batch_id == "batch-2"
    assert rows["GHSA-old"].updated_at == before.updated_at
    # a later full sweep keeps it
    assert await delete_stale(db_session, Advisory, "batch-2") == 0


@pytest.mark.asyncio
async def test_count_advisories_counts_distinct_packages(db_session):
    await upsert_advisories(
        db_session,
        [_row("GHSA-1"), _row("GHSA-2"), _row("GHSA-1", package="right-pad")],
        "batch-1",
    )
    assert await count_advisories(db_session, "npm") == (3, 2)


@pytest.mark.asyncio
async def test_upsert_cves(db_session):
    await upsert_cves(db_session, [CveRow(cve_id="CVE-2024-1", severity="low")], "b1")
    await upsert_cves(
        db_session,
        [CveRow(cve_id="CVE-2024-1", severity="high"), CveRow(cve_id="CVE-2024-2")],
        "b2",
    )
    assert await count_cves(db_session) == 2
    severity = (
        await db_session.execute(select(NvdCve.severity).where(NvdCve.cve_id == "CVE-2024-1"))
    ).scalar_one()
    assert severity == "high"
    batches = (
        await db_session.execute(select(func.count()).where(NvdCve.sync_batch_id == "b2"))
    ).scalar_one()
    assert batches == 2
