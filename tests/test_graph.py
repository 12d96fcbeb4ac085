"""Tests for graph-store number decoding and the dependency store."""

from decimal import Decimal

import pytest

from vulnfeed.core.graph import Neo4jDependencyStore, decode_number


class WrappedInt:
    """Integer wrapper of the kind some drivers hand back."""

    def __init__(self, value):
        self.value = value

    def __index__(self):
        return self.value


def test_decode_number_plain_values():
    assert decode_number(None) is None
    assert decode_number(7) == 7
    assert decode_number(2.5) == 2.5
    assert decode_number(True) == 1


def test_decode_number_strings():
    assert decode_number("42") == 42
    assert isinstance(decode_number("42"), int)
    assert decode_number(" 3.5 ") == 3.5
    with pytest.raises(ValueError):
        decode_number("many")


def test_decode_number_wrappers():
    assert decode_number(WrappedInt(12)) == 12
    assert decode_number(Decimal("1.25")) == 1.25
    with pytest.raises(TypeError):
        decode_number(object())


class FakeResult:
    def __init__(self, records):
        self.records = records

    async def single(self):
        return self.records[0] if self.records else None

    async def data(self):
        return self.records

    async def consume(self):
        return None


class FakeSession:
    def __init__(self, driver):
        self.driver = driver

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def run(self, query, **params):
        self.driver.calls.append((" ".join(query.split()), params))
        return FakeResult(self.driver.records)


class FakeDriver:
    def __init__(self, records=()):
        self.records = list(records)
        self.calls = []

    def session(self):
        return FakeSession(self)


@pytest.mark.asyncio
async def test_dependency_count_decodes_numbers():
    store = Neo4jDependencyStore(FakeDriver([{"total": "17"}]))
    assert await store.dependency_count("prod-1") == 17
    assert await Neo4jDependencyStore(FakeDriver()).dependency_count("prod-1") == 0


@pytest.mark.asyncio
async def test_hashed_purls_ignores_missing_purls():
    driver = FakeDriver([{"purl": "pkg:npm/a@1"}, {"purl": None}])
    store = Neo4jDependencyStore(driver)
    assert await store.hashed_purls("prod-1") == {"pkg:npm/a@1"}
    assert driver.calls[0][1] == {"productId": "prod-1"}


@pytest.mark.asyncio
async def test_gap_reason_writes_skip_empty_input():
    driver = FakeDriver()
    store = Neo4jDependencyStore(driver)
    await store.write_gap_reasons([])
    await store.clear_gap_reasons([])
    assert driver.calls == []

    await store.write_gap_reasons([("pkg:npm/a@1", "not_found")])
    assert driver.calls[0][1] == {"entries": [{"purl": "pkg:npm/a@1", "reason": "not_found"}]}


@pytest.mark.asyncio
async def test_write_hash_parameters():
    driver = FakeDriver()
    await Neo4jDependencyStore(driver).write_hash(
        "pkg:npm/a@1", hash_value="abc", algorithm="SHA-512", download_url="https://x/a.tgz"
    )
    query, params = driver.calls[0]
    assert "SET d.hash = $hash" in query
    assert params == {
        "purl": "pkg:npm/a@1",
        "hash": "abc",
        "hashAlgorithm": "SHA-512",
        "downloadUrl": "https://x/a.tgz",
    }
