"""Import-statement scanning: source files → Detected Packages.

The fallback identity source for repositories without lockfiles. Each file is
assigned the language plugin that detects it with the highest confidence; the
imports of every assigned file are then deduplicated per language, stripped of
standard-library modules and mapped to package identities (deduplicated by
purl). Import scanning alone never yields more than ``medium`` confidence.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from vulnfeed.core.logging import get_logger
from vulnfeed.core.registry import PluginRegistry, get_registry
from vulnfeed.plugins.base import DetectedPackage, LanguagePlugin

logger = get_logger(__name__)

MAX_SOURCE_FILES = 500
MAX_FILE_SIZE_BYTES = 1 * 1024 * 1024
MAX_TOTAL_CONTENT_BYTES = 50 * 1024 * 1024
DETECTION_THRESHOLD = 40
MEDIUM_CONFIDENCE_PACKAGES = 5

_SKIPPED_DIRS = frozenset({".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv"})


@dataclass
class ImportScanResult:
    languages: list[str] = field(default_factory=list)
    total_imports: int = 0
    packages: list[DetectedPackage] = field(default_factory=list)
    confidence: str = "low"
    files_scanned: int = 0
    files_skipped: int = 0


def detect_language(
    content: str, filename: str, registry: PluginRegistry | None = None
) -> tuple[LanguagePlugin, int] | None:
    """Best plugin for one file and its confidence, or None below the threshold.

    Plugins claiming the file by extension are tried first; every other plugin
    then gets a chance to win on content alone. Ties keep the earlier plugin.
    """
    registry = registry or get_registry()
    candidates = registry.for_file(filename)
    best: LanguagePlugin | None = None
    best_score = 0

    ordered = candidates + [p for p in registry.all() if p not in candidates]
    for plugin in ordered:
        score = plugin.detect(content, filename)
        if score > best_score:
            best, best_score = plugin, score

    if best is None or best_score < DETECTION_THRESHOLD:
        return None
    return best, best_score


def scan_sources(
    files: Mapping[str, str], registry: PluginRegistry | None = None
) -> ImportScanResult:
    """Scan already-loaded file contents keyed by path."""
    registry = registry or get_registry()
    result = ImportScanResult(files_scanned=len(files))

    assigned: dict[str, LanguagePlugin] = {}
    for path, content in files.items():
        detected = detect_language(content, path, registry)
        if detected is None:
            continue
        plugin, _ = detected
        assigned[path] = plugin
        if plugin.metadata.id not in result.languages:
            result.languages.append(plugin.metadata.id)

    if not result.languages:
        logger.info("No languages detected above confidence threshold", files=len(files))
        return result

    # pluginId:module -> plugin, first occurrence wins
    imports: dict[str, tuple[LanguagePlugin, str]] = {}
    for path, plugin in assigned.items():
        for entry in plugin.extract_imports(files[path]):
            imports.setdefault(f"{plugin.metadata.id}:{entry.module}", (plugin, entry.module))
    result.total_imports = len(imports)

    by_purl: dict[str, DetectedPackage] = {}
    for plugin, module in imports.values():
        if plugin.is_stdlib(module):
            continue
        pkg = plugin.map_to_package(module)
        if pkg is not None and pkg.purl and pkg.purl not in by_purl:
            by_purl[pkg.purl] = pkg
    result.packages = list(by_purl.values())

    if len(result.packages) >= MEDIUM_CONFIDENCE_PACKAGES:
        result.confidence = "medium"

    logger.info(
        "Import scan complete",
        languages=result.languages,
        imports=result.total_imports,
        packages=len(result.packages),
        confidence=result.confidence,
    )
    return result


def collect_sources(
    root: Path, registry: PluginRegistry | None = None
) -> tuple[dict[str, str], int]:
    """Read source files under *root*, honouring the file-count and size caps.

    Returns (contents keyed by relative path, number of files skipped).
    """
    registry = registry or get_registry()
    paths = sorted(
        p for p in root.rglob("*")
        if p.is_file()
        and not _SKIPPED_DIRS.intersection(p.relative_to(root).parts[:-1])
        and registry.is_source_file(p.name)
    )

    skipped = 0
    if len(paths) > MAX_SOURCE_FILES:
        skipped += len(paths) - MAX_SOURCE_FILES
        logger.info("Source file cap reached", skipped=skipped, cap=MAX_SOURCE_FILES)
        paths = paths[:MAX_SOURCE_FILES]

    contents: dict[str, str] = {}
    total_bytes = 0
    for index, path in enumerate(paths):
        try:
            raw = path.read_bytes()
        except OSError as exc:
            logger.warning("Could not read source file", path=str(path), error=str(exc))
            skipped += 1
            continue
        if len(raw) > MAX_FILE_SIZE_BYTES:
            skipped += 1
            continue
        if total_bytes + len(raw) > MAX_TOTAL_CONTENT_BYTES:
            skipped += len(paths) - index
            logger.info(
                "Content cap reached, stopping",
                read_mb=round(total_bytes / 1024 / 1024, 1),
                skipped=len(paths) - index,
            )
            break
        total_bytes += len(raw)
        contents[path.relative_to(root).as_posix()] = raw.decode("utf-8", errors="replace")

    return contents, skipped


def scan_directory(root: Path | str, registry: PluginRegistry | None = None) -> ImportScanResult:
    """Collect and scan every source file below *root*."""
    started = time.monotonic()
    registry = registry or get_registry()
    contents, skipped = collect_sources(Path(root), registry)
    result = scan_sources(contents, registry)
    result.files_skipped = skipped
    logger.info(
        "Directory scanned",
        root=str(root),
        files=len(contents),
        skipped=skipped,
        duration_s=round(time.monotonic() - started, 2),
    )
    return result
