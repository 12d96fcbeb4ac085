"""Managed-runtime and app-platform languages: Java, C#, Dart and Swift."""

from __future__ import annotations

import re

from vulnfeed.plugins.base import (
    DetectedPackage,
    ImportEntry,
    LanguagePlugin,
    PluginMetadata,
    dedupe_imports,
    patterns,
)

SWIFT_FRAMEWORKS = frozenset({
    "Foundation", "UIKit", "SwiftUI", "Combine", "CoreData", "CoreGraphics",
    "CoreLocation", "MapKit", "AVFoundation", "CloudKit", "GameKit", "HealthKit",
    "HomeKit", "Metal", "MetalKit", "SceneKit", "SpriteKit", "StoreKit",
    "WatchKit", "AppKit", "Cocoa", "Darwin", "Dispatch", "ObjectiveC", "os",
    "Swift", "XCTest", "Accelerate", "CoreFoundation", "CoreImage", "CoreML",
    "CoreMotion", "CoreText", "CryptoKit", "NaturalLanguage", "Network",
    "PDFKit", "QuartzCore", "RealityKit", "Security", "Vision", "WebKit",
})

_JAVA_STDLIB = re.compile(r"^(java|javax|sun|jdk)\.")
_DOTNET_STDLIB = re.compile(r"^(System|Microsoft|Windows)\.")


def _leading(name: str, sep: str, count: int) -> str:
    """First *count* segments of *name*, or *name* itself when it is shorter."""
    segments = name.split(sep)
    return sep.join(segments[:count]) if len(segments) >= count else name


class JavaPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="java", label="Java", extensions=(".java",), order=3)
    detect_patterns = patterns(
        r"\bpublic class\b",
        r"\bimport java\.",
        r"\bpackage com\.",
        r"System\.out",
        r"\bprivate ",
        r"\bprotected ",
    )

    _IMPORT = re.compile(r"^import\s+(?:static\s+)?([\w.]+)", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = []
        for m in self._IMPORT.finditer(content):
            full = m.group(1)
            # Standard-library status is decided on the full import path
            entries.append(self._entry(m.group(0), _leading(full, ".", 3), self.is_stdlib(full)))
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return _JAVA_STDLIB.match(module) is not None

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(_leading(module, ".", 3), "maven")


class CSharpPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="csharp", label="C#", extensions=(".cs",), order=4)
    detect_patterns = patterns(
        r"\busing System",
        r"\bnamespace ",
        r"\bpublic class\b",
        r"Console\.Write",
        r"\bvar ",
        r"\basync Task",
    )

    _USING = re.compile(r"^using\s+([\w.]+)\s*;", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in self._USING.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module == "System" or _DOTNET_STDLIB.match(module) is not None

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(_leading(module, ".", 2), "nuget")


class DartPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="dart", label="Dart", extensions=(".dart",), order=9)
    detect_patterns = patterns(
        r"""import ['"]package:""",
        r"void main\(\)",
        r"class \w+ extends",
        r"\bWidget ",
        r"@override",
    )

    _PACKAGE = re.compile(r"""^import\s+['"]package:([^/'"]+)""", re.M)
    _CORE = re.compile(r"""^import\s+['"]dart:([^'"]+)['"]""", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = [
            self._entry(m.group(0), m.group(1), is_stdlib=False)
            for m in self._PACKAGE.finditer(content)
        ]
        entries += [
            self._entry(m.group(0), f"dart:{m.group(1)}", is_stdlib=True)
            for m in self._CORE.finditer(content)
        ]
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module.startswith("dart:")

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "pub")


class SwiftPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="swift", label="Swift", extensions=(".swift",), order=11)
    detect_patterns = patterns(
        r"\bimport Foundation",
        r"\bfunc ",
        r"\blet ",
        r"\bvar ",
        r"\bstruct ",
        r"\bclass ",
        r"\bprotocol ",
        r"\bguard let",
    )

    _IMPORT = re.compile(r"^import\s+(\w+)", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in self._IMPORT.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module in SWIFT_FRAMEWORKS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "swift")
