"""Graph store access: per-product Dependency nodes in Neo4j.

The service only reads dependency lists and writes hash properties onto
existing nodes; it never creates or deletes nodes.
"""

from __future__ import annotations

import operator
from typing import Any

from neo4j import AsyncDriver, AsyncGraphDatabase

from vulnfeed.core.config import get_settings
from vulnfeed.core.logging import get_logger

logger = get_logger(__name__)

_driver: AsyncDriver | None = None


def get_driver() -> AsyncDriver:
    global _driver
    if _driver is None:
        settings = get_settings()
        _driver = AsyncGraphDatabase.driver(
            settings.neo4j_uri,
            auth=(settings.neo4j_user, settings.neo4j_password),
        )
    return _driver


async def close_driver() -> None:
    global _driver
    if _driver is not None:
        await _driver.close()
    _driver = None


def decode_number(value: Any) -> int | float | None:
    """Turn a graph property into a plain Python number.

    Values may arrive as ints, floats, numeric strings or integer-like wrapper
    objects depending on how they were written; everything past this function
    sees ``int``/``float``/``None`` only.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    try:
        return operator.index(value)
    except TypeError:
        pass
    if hasattr(value, "__float__"):
        return float(value)
    raise TypeError(f"Cannot decode {type(value).__name__} as a number")


class Neo4jDependencyStore:
    """Dependency-node reads and hash writes against Neo4j."""

    def __init__(self, driver: AsyncDriver | None = None) -> None:
        self._driver = driver or get_driver()

    async def hashed_purls(self, product_id: str) -> set[str]:
        async with self._driver.session() as session:
            result = await session.run(
                """
                MATCH (p:Product {id: $productId})-[:DEPENDS_ON]->(d:Dependency)
                WHERE d.hash IS NOT NULL
                RETURN d.purl AS purl
                """,
                productId=product_id,
            )
            records = await result.data()
        return {r["purl"] for r in records if r.get("purl")}

    async def dependency_count(self, product_id: str) -> int:
        async with self._driver.session() as session:
            result = await session.run(
                """
                MATCH (p:Product {id: $productId})-[:DEPENDS_ON]->(d:Dependency)
                RETURN count(d) AS total
                """,
                productId=product_id,
            )
            record = await result.single()
        if record is None:
            return 0
        return int(decode_number(record["total"]) or 0)

    async def write_hash(
        self, purl: str, *, hash_value: str, algorithm: str, download_url: str
    ) -> None:
        async with self._driver.session() as session:
            result = await session.run(
                """
                MATCH (d:Dependency {purl: $purl})
                SET d.hash = $hash,
                    d.hashAlgorithm = $hashAlgorithm,
                    d.downloadUrl = $downloadUrl,
                    d.hashEnrichedAt = datetime()
                """,
                purl=purl,
                hash=hash_value,
                hashAlgorithm=algorithm,
                downloadUrl=download_url,
            )
            await result.consume()

    async def write_gap_reasons(self, entries: list[tuple[str, str]]) -> None:
        if not entries:
            return
        async with self._driver.session() as session:
            result = await session.run(
                """
                UNWIND $entries AS entry
                MATCH (d:Dependency {purl: entry.purl})
                SET d.hashGapReason = entry.reason
                """,
                entries=[{"purl": purl, "reason": reason} for purl, reason in entries],
            )
            await result.consume()

    async def clear_gap_reasons(self, purls: list[str]) -> None:
        if not purls:
            return
        async with self._driver.session() as session:
            result = await session.run(
                """
                UNWIND $purls AS purl
                MATCH (d:Dependency {purl: purl})
                SET d.hashGapReason = null
                """,
                purls=purls,
            )
            await result.consume()
