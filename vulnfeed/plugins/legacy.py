"""Long-lived compiled languages: Fortran, COBOL, Ada and Pascal.

Everything outside the toolchain's own units is reported under the
``generic`` ecosystem; none of these languages has a registry purl type.
"""

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

FORTRAN_INTRINSIC_MODULES = frozenset({
    "iso_fortran_env", "iso_c_binding", "ieee_arithmetic", "ieee_exceptions",
    "ieee_features", "omp_lib", "openacc",
})

PASCAL_UNITS = frozenset({
    "System", "SysUtils", "Classes", "Math", "StrUtils", "Types", "DateUtils",
    "Variants", "IniFiles", "Registry", "FileUtil", "LazUtils", "LCLType",
    "LCLIntf", "Forms", "Controls", "Graphics", "Dialogs", "StdCtrls",
    "ExtCtrls", "ComCtrls", "Menus", "ActnList", "Buttons",
})

_ADA_STDLIB = re.compile(r"^(Ada|System|Interfaces|GNAT)\.", re.I)


class FortranPlugin(LanguagePlugin):
    metadata = PluginMetadata(
        id="fortran",
        label="Fortran",
        extensions=(".f", ".f90", ".f95", ".f03", ".f08", ".for", ".fpp"),
        order=16,
    )
    detect_patterns = patterns(
        r"\bPROGRAM\b",
        r"\bSUBROUTINE\b",
        r"IMPLICIT NONE",
        r"\bINTEGER\b",
        r"\bREAL\b",
        r"\bCHARACTER\b",
        r"\bMODULE\b",
        r"\bCALL\b",
        r"\bDO\b",
        r"\bEND DO\b",
        flags=re.I,
    )

    _USE = re.compile(r"^\s*use\s+(\w+)", re.I | re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1).lower()) for m in self._USE.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module.lower() in FORTRAN_INTRINSIC_MODULES

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "generic")


class CobolPlugin(LanguagePlugin):
    metadata = PluginMetadata(
        id="cobol",
        label="COBOL",
        extensions=(".cob", ".cbl", ".cpy", ".CBL", ".COB"),
        order=17,
    )
    detect_patterns = patterns(
        r"IDENTIFICATION DIVISION",
        r"DATA DIVISION",
        r"PROCEDURE DIVISION",
        r"WORKING-STORAGE",
        r"\bPERFORM\b",
        r"\bMOVE\b",
        r"\bDISPLAY\b",
        flags=re.I,
    )

    _COPY = re.compile(r"COPY\s+(\S+)", re.I)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1).removesuffix("."), is_stdlib=False)
            for m in self._COPY.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        # Copybooks are project-local
        return False

    def map_to_package(self, module: str) -> DetectedPackage | None:
        return self._package(module, "generic")


class AdaPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="ada", label="Ada", extensions=(".adb", ".ads"), order=18)
    detect_patterns = patterns(
        r"\bwith Ada\.",
        r"\bprocedure ",
        r"\bpackage body",
        r"\bpragma ",
        r"\bbegin\b",
        r"\bend;",
        r"\bis\b",
        r"\bfunction .+return\b",
    )

    _WITH = re.compile(r"^with\s+([\w.]+)", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in self._WITH.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return _ADA_STDLIB.match(module) is not None

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "generic")


class PascalPlugin(LanguagePlugin):
    metadata = PluginMetadata(
        id="pascal", label="Pascal", extensions=(".pas", ".pp", ".lpr", ".dpr"), order=24
    )
    detect_patterns = patterns(
        r"\bprogram\b",
        r"\bbegin\b",
        r"\bend\.",
        r"\buses\b",
        r"\bprocedure\b",
        r"\bfunction\b",
        r"\bvar\b",
        r"\bconst\b",
        r"\btype\b",
        flags=re.I,
    )

    _USES = re.compile(r"uses\s+([\w,\s]+);", re.I)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = []
        for m in self._USES.finditer(content):
            for unit in (u.strip() for u in m.group(1).split(",")):
                if unit:
                    entries.append(self._entry(m.group(0), unit))
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module in PASCAL_UNITS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "generic")
