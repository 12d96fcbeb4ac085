"""Functional languages: Elixir, Erlang, Haskell and OCaml."""

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

ELIXIR_STDLIB = frozenset({
    "Kernel", "Enum", "Map", "String", "IO", "File", "Path", "List", "Tuple",
    "Agent", "Task", "GenServer", "Supervisor", "Application", "Logger", "Access",
    "Base", "Code", "Date", "DateTime", "Exception", "Float", "Function",
    "Integer", "Macro", "MapSet", "Module", "NaiveDateTime", "Process",
    "Protocol", "Range", "Regex", "Registry", "Stream", "System", "Time",
    "URI", "Version",
})

OTP_APPLICATIONS = frozenset({
    "kernel", "stdlib", "sasl", "mnesia", "inets", "crypto", "ssl",
    "public_key", "ssh", "snmp", "os_mon", "runtime_tools", "tools",
    "compiler", "syntax_tools", "parsetools", "et", "observer", "debugger",
    "wx", "xmerl", "edoc", "erl_interface", "jinterface", "megaco",
    "diameter", "eldap", "ftp", "tftp",
})

HASKELL_BASE_PREFIXES = (
    "Prelude", "Data.", "Control.", "System.", "GHC.", "Foreign.", "Numeric",
    "Text.Show", "Text.Read", "Type.",
)

# Module prefix -> Hackage package, for modules that live outside base
HASKELL_PACKAGES = {
    "Data.Aeson": "aeson",
    "Data.ByteString": "bytestring",
    "Data.Text": "text",
    "Data.Map": "containers",
    "Data.Set": "containers",
    "Data.HashMap": "unordered-containers",
    "Data.HashSet": "unordered-containers",
    "Data.Vector": "vector",
    "Data.Conduit": "conduit",
    "Network.HTTP": "http-client",
    "Network.Wai": "wai",
    "Database.Persist": "persistent",
    "Data.Yaml": "yaml",
    "Data.Csv": "cassava",
    "Text.Megaparsec": "megaparsec",
    "Text.Parsec": "parsec",
    "Options.Applicative": "optparse-applicative",
    "Lens": "lens",
}

OCAML_STDLIB = frozenset({
    "Stdlib", "Printf", "List", "Array", "String", "Hashtbl", "Map", "Set",
    "Buffer", "Bytes", "Char", "Complex", "Digest", "Filename", "Format",
    "Fun", "Gc", "In_channel", "Int", "Int32", "Int64", "Lazy", "Lexing",
    "Marshal", "Nativeint", "Obj", "Oo", "Option", "Out_channel", "Parsing",
    "Printexc", "Queue", "Random", "Result", "Scanf", "Seq", "Stack", "Sys",
    "Uchar", "Unit",
})


class ElixirPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="elixir", label="Elixir", extensions=(".ex", ".exs"), order=10)
    detect_patterns = patterns(
        r"\bdefmodule ",
        r"\bdef ",
        r"\buse ",
        r"\bimport ",
        r"\balias ",
        r"\|>",
        r"\bdo\b",
        r"\bend\b",
    )

    # mix.exs dependency tuples: {:phoenix, "~> 1.7"}
    _DEP = re.compile(r"""\{:(\w+),\s*["'](?:~>|>=|>)""")

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in self._DEP.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module in ELIXIR_STDLIB

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "hex")


class ErlangPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="erlang", label="Erlang", extensions=(".erl", ".hrl"), order=19)
    detect_patterns = patterns(
        r"-module\(",
        r"-export\(",
        r"\bspawn\(",
        r"\breceive\b",
        r"-spec",
        r"-behaviour",
        r"-record",
    )

    _INCLUDE = re.compile(r'-include\("([^"]+)"\)')
    _INCLUDE_LIB = re.compile(r'-include_lib\("([^/]+)/')
    _BEHAVIOUR = re.compile(r"-behaviour\((\w+)\)")

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = [
            self._entry(m.group(0), m.group(1), is_stdlib=False)
            for m in self._INCLUDE.finditer(content)
        ]
        entries += [self._entry(m.group(0), m.group(1)) for m in self._INCLUDE_LIB.finditer(content)]
        entries += [
            self._entry(m.group(0), m.group(1).lower()) for m in self._BEHAVIOUR.finditer(content)
        ]
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module.lower() in OTP_APPLICATIONS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "hex")


class HaskellPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="haskell", label="Haskell", extensions=(".hs", ".lhs"), order=20)
    detect_patterns = patterns(
        r"\bmodule ",
        r"import qualified",
        r"\bdata ",
        r"\bwhere\b",
        r"::",
        r"->",
        r"\bderiving\b",
        r"\binstance ",
        r"\bnewtype ",
    )

    _IMPORT = re.compile(r"^import\s+(?:qualified\s+)?([\w.]+)", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in self._IMPORT.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        if module in ("Prelude", "Numeric"):
            return True
        if not module.startswith(HASKELL_BASE_PREFIXES):
            return False
        # Data.Text and friends look like base but ship separately
        return not any(module.startswith(prefix) for prefix in HASKELL_PACKAGES)

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        known = [prefix for prefix in HASKELL_PACKAGES if module.startswith(prefix)]
        if known:
            name = HASKELL_PACKAGES[max(known, key=len)]
        else:
            name = module.split(".")[0].lower()
        return self._package(name, "hackage")


class OCamlPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="ocaml", label="OCaml", extensions=(".ml", ".mli"), order=21)
    detect_patterns = patterns(
        r"\blet ",
        r"\bopen ",
        r"\bmodule ",
        r"\bval ",
        r"\btype ",
        r"\bmatch\b",
        r"\bwith\b",
        r"->",
        r"\bfun ",
        r";;",
    )

    _OPEN = re.compile(r"^open\s+(\w+)", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in self._OPEN.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module in OCAML_STDLIB

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module.lower(), "opam")
