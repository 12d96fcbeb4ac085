"""Base plugin contract: every language plugin implements this interface.

Plugins are pure: no I/O, no shared state. Given the same content and file
name, ``detect`` and ``extract_imports`` always return the same result.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class PluginMetadata:
    id: str                  # Unique slug (e.g. "python")
    label: str               # Human-readable language name
    extensions: tuple[str, ...]
    order: int               # Position in registry iteration


@dataclass(frozen=True)
class ImportEntry:
    raw: str
    module: str
    is_stdlib: bool


@dataclass
class DetectedPackage:
    name: str
    version: str
    ecosystem: str
    purl: str


def patterns(*sources: str, flags: int = 0) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, flags) for source in sources)


def file_extension(filename: str) -> str:
    """Text from the last dot; the whole name when there is no dot."""
    idx = filename.rfind(".")
    return filename[idx:] if idx >= 0 else filename


def dedupe_imports(entries: Iterable[ImportEntry]) -> list[ImportEntry]:
    """Keep the first entry per module, preserving order."""
    seen: set[str] = set()
    result: list[ImportEntry] = []
    for entry in entries:
        if entry.module not in seen:
            seen.add(entry.module)
            result.append(entry)
    return result


class LanguagePlugin(ABC):
    """Abstract base class for language plugins.

    Subclass this, set ``metadata`` and ``detect_patterns``, and implement the
    three abstract methods. The registry auto-discovers concrete subclasses
    found in ``vulnfeed/plugins/*.py``.
    """

    metadata: ClassVar[PluginMetadata]

    # +15 each when found in the content
    detect_patterns: ClassVar[tuple[re.Pattern[str], ...]] = ()
    # Any match forces a score of 0 unless the file already scored 100
    negative_patterns: ClassVar[tuple[re.Pattern[str], ...]] = ()

    def detect(self, content: str, filename: str) -> int:
        """Confidence (0-100) that *content* is written in this language.

        Reaching 100 returns at once; negative patterns are only checked
        for files that score below that.
        """
        score = 0
        ext = file_extension(filename).lower()
        if any(ext == known.lower() for known in self.metadata.extensions):
            score += 40
        for pattern in self.detect_patterns:
            if pattern.search(content):
                score += 15
                if score >= 100:
                    return 100
        for pattern in self.negative_patterns:
            if pattern.search(content):
                return 0
        return score

    @abstractmethod
    def extract_imports(self, content: str) -> list[ImportEntry]:
        """Import/use/require statements found in *content*, one per module."""

    @abstractmethod
    def is_stdlib(self, module: str) -> bool:
        """True when *module* ships with the language toolchain."""

    @abstractmethod
    def map_to_package(self, module: str) -> DetectedPackage | None:
        """Package identity for *module*, or None for standard-library modules."""

    # ── Helpers for subclasses ──────────────────────────────────────────────

    def _entry(self, raw: str, module: str, is_stdlib: bool | None = None) -> ImportEntry:
        if is_stdlib is None:
            is_stdlib = self.is_stdlib(module)
        return ImportEntry(raw=raw, module=module, is_stdlib=is_stdlib)

    @staticmethod
    def _package(name: str, ecosystem: str, purl_name: str | None = None) -> DetectedPackage:
        return DetectedPackage(
            name=name,
            version="",
            ecosystem=ecosystem,
            purl=f"pkg:{ecosystem}/{purl_name if purl_name is not None else name}",
        )

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        # Concrete subclasses must declare metadata
        if not getattr(cls, "__abstractmethods__", None):
            if not hasattr(cls, "metadata"):
                raise TypeError(
                    f"Plugin {cls.__name__} must define a 'metadata' class variable."
                )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.metadata.id!r}>"
