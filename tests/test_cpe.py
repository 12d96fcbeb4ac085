"""Tests for CPE parsing and the CPE index."""

import pytest
from sqlalchemy import select

from vulnfeed.models.cpe_index import CpeIndexEntry
from vulnfeed.sync.cpe import (
    index_rows,
    parse_cpe,
    rebuild_cpe_index,
    refresh_cpe_index,
    split_cpe,
    unescape,
)
from vulnfeed.sync.upsert import CveRow, upsert_cves


def _match(criteria, vulnerable=True, **ranges):
    return {"criteria": criteria, "vulnerable": vulnerable, **ranges}


def test_split_cpe_plain():
    fields = split_cpe("cpe:2.3:a:openssl:openssl:1.1.1:*:*:*:*:*:*:*")
    assert len(fields) == 13
    assert fields[3:6] == ["openssl", "openssl", "1.1.1"]


def test_split_cpe_keeps_escaped_colons():
    fields = split_cpe(r"cpe:2.3:a:vendor\:inc:product:1.0:*:*:*:*:*:*:*")
    assert fields[3] == r"vendor\:inc"
    assert unescape(fields[3]) == "vendor:inc"


def test_unescape():
    assert unescape(r"node\.js") == "node.js"
    assert unescape(r"a\\b") == "a\\b"
    assert unescape("plain") == "plain"


def test_parse_cpe_normalises_product_and_target():
    cpe = parse_cpe("cpe:2.3:a:Apache:Log4J:2.14.1:*:*:*:*:Java:*:*")
    assert cpe.part == "a"
    assert cpe.vendor == "Apache"
    assert cpe.product == "log4j"
    assert cpe.version == "2.14.1"
    assert cpe.target_sw == "java"


def test_parse_cpe_rejects_malformed():
    assert parse_cpe("not-a-cpe") is None
    assert parse_cpe("cpe:2.3:a:vendor") is None
    assert parse_cpe("xpe:2.3:a:v:p:1:*:*:*:*:*:*:*") is None


def test_index_rows_keeps_vulnerable_matches_only():
    matches = [
        _match("cpe:2.3:a:acme:libfoo:1.2.3:*:*:*:*:*:*:*"),
        _match(
            "cpe:2.3:a:acme:libbar:*:*:*:*:*:*:*:*",
            versionStartIncluding="1.0",
            versionEndExcluding="2.0",
        ),
        _match("cpe:2.3:o:linux:linux_kernel:-:*:*:*:*:*:*:*", vulnerable=False),
        _match("garbage"),
        {"vulnerable": True},
        "not a dict",
    ]
    rows = index_rows("CVE-2024-1", matches)
    assert len(rows) == 2
    exact, ranged = rows
    assert exact["version_exact"] == "1.2.3"
    assert exact["target_sw"] == "*"
    assert ranged["version_exact"] is None
    assert ranged["version_start_incl"] == "1.0"
    assert ranged["version_end_excl"] == "2.0"
    assert ranged["version_end_incl"] is None


async def _index(session):
    result = await session.execute(
        select(CpeIndexEntry.cve_id, CpeIndexEntry.product).order_by(
            CpeIndexEntry.cve_id, CpeIndexEntry.product
        )
    )
    return [tuple(r) for r in result.all()]


@pytest.mark.asyncio
async def test_rebuild_and_refresh(db_session):
    await upsert_cves(
        db_session,
        [
            CveRow(
                cve_id="CVE-2024-1",
                cpe_matches=[_match("cpe:2.3:a:acme:libfoo:1.0:*:*:*:*:*:*:*")],
            ),
            CveRow(
                cve_id="CVE-2024-2",
                cpe_matches=[
                    _match("cpe:2.3:a:acme:libbar:*:*:*:*:*:*:*:*"),
                    _match("cpe:2.3:a:acme:libbaz:*:*:*:*:*:*:*:*"),
                ],
            ),
        ],
        "b1",
    )

    assert await rebuild_cpe_index(db_session) == 3
    assert await rebuild_cpe_index(db_session) == 3
    assert await _index(db_session) == [
        ("CVE-2024-1", "libfoo"),
        ("CVE-2024-2", "libbar"),
        ("CVE-2024-2", "libbaz"),
    ]

    await upsert_cves(
        db_session,
        [CveRow(cve_id="CVE-2024-2", cpe_matches=[_match("cpe:2.3:a:acme:libqux:1:*:*:*:*:*:*:*")])],
        "b2",
    )
    assert await refresh_cpe_index(db_session, ["CVE-2024-2"]) == 1
    assert await _index(db_session) == [
        ("CVE-2024-1", "libfoo"),
        ("CVE-2024-2", "libqux"),
    ]
