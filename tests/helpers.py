"""Plain helpers for building tokens and feed payloads in tests."""

from __future__ import annotations

import io
import json
import lzma
import uuid
import zipfile
from datetime import datetime, timedelta, timezone

import jwt

from vulnfeed.core.config import get_settings


def make_token(user_id: uuid.UUID, *, expires_in: timedelta = timedelta(minutes=15)) -> str:
    """Sign a token the way the web application does."""
    s = get_settings()
    payload = {
        "sub": str(user_id),
        "iss": s.jwt_issuer,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, s.jwt_secret_key, algorithm=s.jwt_algorithm)


def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user.id)}"}


def osv_zip(*advisories: dict) -> bytes:
    """An in-memory ``all.zip`` holding one JSON file per advisory."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for adv in advisories:
            zf.writestr(f"{adv['id']}.json", json.dumps(adv))
    return buf.getvalue()


def nvd_feed(*items: dict) -> bytes:
    """An xz-compressed mirror-shaped NVD feed."""
    return lzma.compress(json.dumps({"cve_items": list(items)}).encode())


def left_pad_advisory(**overrides) -> dict:
    adv = {
        "id": "GHSA-xxxx-yyyy-zzzz",
        "summary": "Prototype pollution in left-pad",
        "details": "left-pad before 1.3.0 is vulnerable.",
        "aliases": ["CVE-2024-0001"],
        "modified": "2024-05-01T10:00:00Z",
        "published": "2024-04-01T10:00:00Z",
        "database_specific": {"severity": "HIGH"},
        "affected": [
            {
                "package": {
                    "ecosystem": "npm",
                    "name": "left-pad",
                    "purl": "pkg:npm/left-pad",
                },
                "ranges": [
                    {
                        "type": "SEMVER",
                        "events": [{"introduced": "0"}, {"fixed": "1.3.0"}],
                    }
                ],
                "versions": ["1.0.0", "1.1.0"],
            }
        ],
        "references": [{"type": "ADVISORY", "url": "https://example.test/adv"}],
    }
    adv.update(overrides)
    return adv


def nvd_item(cve_id: str = "CVE-2024-1234", **overrides) -> dict:
    item = {
        "id": cve_id,
        "vulnStatus": "Analyzed",
        "published": "2024-02-01T00:00:00.000",
        "lastModified": "2024-03-01T00:00:00.000",
        "descriptions": [
            {"lang": "es", "value": "Desbordamiento"},
            {"lang": "en", "value": "Buffer overflow in libfoo."},
        ],
        "metrics": {
            "cvssMetricV31": [
                {
                    "cvssData": {
                        "baseScore": 9.8,
                        "baseSeverity": "CRITICAL",
                        "vectorString": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
                    }
                }
            ],
            "cvssMetricV2": [
                {"cvssData": {"baseScore": 5.0, "vectorString": "AV:N/AC:L/Au:N/C:N/I:N/A:P"}}
            ],
        },
        "configurations": [
            {
                "nodes": [
                    {
                        "cpeMatch": [
                            {
                                "vulnerable": True,
                                "criteria": "cpe:2.3:a:acme:libfoo:*:*:*:*:*:*:*:*",
                                "versionStartIncluding": "1.0",
                                "versionEndExcluding": "1.4",
                            },
                            {
                                "vulnerable": False,
                                "criteria": "cpe:2.3:o:linux:linux_kernel:-:*:*:*:*:*:*:*",
                            },
                        ]
                    }
                ]
            }
        ],
        "references": [
            {"url": "https://github.com/acme/libfoo/releases/tag/v1.4.0", "source": "acme"},
        ],
    }
    item.update(overrides)
    return item
