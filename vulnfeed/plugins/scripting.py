"""Dynamic and scripting languages: Python, JavaScript/TypeScript, Ruby, PHP,
R, Julia and shell."""

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

PYTHON_STDLIB = frozenset({
    "os", "sys", "json", "re", "math", "datetime", "collections", "typing",
    "pathlib", "unittest", "http", "urllib", "hashlib", "logging", "io", "abc",
    "asyncio", "functools", "itertools", "string", "textwrap", "struct",
    "codecs", "time", "calendar", "argparse", "getpass", "platform", "socket",
    "email", "html", "xml", "sqlite3", "csv", "configparser", "copy", "pprint",
    "enum", "dataclasses", "contextlib", "decimal", "fractions", "random",
    "statistics", "array", "queue", "heapq", "bisect", "weakref", "types",
    "traceback", "warnings", "subprocess", "multiprocessing", "threading",
    "signal", "mmap", "select", "selectors", "syslog", "shutil", "tempfile",
    "glob", "fnmatch", "zipfile", "tarfile", "gzip", "bz2", "lzma", "zlib",
    "pdb", "cProfile", "timeit", "doctest", "venv", "ensurepip", "distutils",
    "importlib", "pkgutil", "inspect",
})

NODE_BUILTINS = frozenset({
    "fs", "path", "http", "https", "os", "crypto", "stream", "events", "util",
    "url", "buffer", "querystring", "child_process", "cluster", "dgram", "dns",
    "net", "readline", "repl", "tls", "tty", "vm", "zlib", "assert",
    "perf_hooks", "worker_threads", "v8", "process", "console", "module",
    "timers",
})

RUBY_STDLIB = frozenset({
    "json", "csv", "net/http", "fileutils", "optparse", "set", "yaml", "erb",
    "logger", "open-uri", "uri", "ostruct", "benchmark", "bigdecimal", "date",
    "digest", "drb", "English", "fiddle", "forwardable", "io/console", "io/wait",
    "ipaddr", "irb", "matrix", "minitest", "monitor", "mutex_m", "net/ftp",
    "net/imap", "net/pop", "net/smtp", "observer", "open3", "openssl", "pathname",
    "pp", "prettyprint", "prime", "pstore", "racc", "readline", "reline",
    "resolv", "ripper", "securerandom", "shellwords", "singleton", "stringio",
    "strscan", "syslog", "tempfile", "timeout", "tmpdir", "tsort", "un",
    "weakref", "webrick", "zlib",
})

R_STDLIB = frozenset({
    "base", "utils", "stats", "graphics", "grDevices", "datasets", "methods",
    "grid", "parallel", "splines", "stats4", "tcltk", "tools", "compiler",
})

JULIA_STDLIB = frozenset({
    "Base", "Core", "LinearAlgebra", "Statistics", "Distributed", "Dates",
    "Printf", "Random", "SparseArrays", "Test", "UUIDs", "Unicode",
    "Markdown", "REPL", "Pkg", "InteractiveUtils", "Sockets", "SHA",
    "Serialization", "SharedArrays", "FileWatching", "LibGit2", "Logging",
    "Mmap", "Profile", "TOML", "DelimitedFiles",
})


class PythonPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="python", label="Python", extensions=(".py",), order=1)
    detect_patterns = patterns(
        r"\bdef ", r"\bimport ", r"\bfrom \S+ import", r"\bclass \w+.*:", r"if __name__"
    )

    _IMPORT = re.compile(r"^import\s+(\S+)", re.M)
    _FROM = re.compile(r"^from\s+(\S+)\s+import", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = []
        for regex in (self._IMPORT, self._FROM):
            for m in regex.finditer(content):
                entries.append(self._entry(m.group(0), m.group(1).split(".")[0]))
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module.split(".")[0] in PYTHON_STDLIB

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "pypi")


class JavaScriptPlugin(LanguagePlugin):
    metadata = PluginMetadata(
        id="jsts",
        label="JavaScript/TypeScript",
        extensions=(".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs"),
        order=2,
    )
    detect_patterns = patterns(
        r"\bconst ", r"require\(", r"\bimport ", r"\bexport ", r"\bfunction ", r"=>", r"\basync "
    )

    _SPECIFIERS = patterns(
        r"""require\(\s*['"]([^'"]+)['"]\s*\)""",
        r"""from\s+['"]([^'"]+)['"]""",
        r"""import\s+['"]([^'"]+)['"]""",
    )

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = []
        for regex in self._SPECIFIERS:
            for m in regex.finditer(content):
                specifier = m.group(1)
                if specifier.startswith((".", "/")):
                    continue
                # @scope/name/sub -> @scope/name, lodash/fp -> lodash
                if specifier.startswith("@"):
                    parts = specifier.split("/")
                    module = "/".join(parts[:2]) if len(parts) >= 2 else specifier
                else:
                    module = specifier.split("/")[0]
                entries.append(self._entry(m.group(0), module))
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module.removeprefix("node:") in NODE_BUILTINS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        encoded = "%40" + module[1:] if module.startswith("@") else module
        return self._package(module, "npm", encoded)


class RubyPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="ruby", label="Ruby", extensions=(".rb",), order=5)
    detect_patterns = patterns(
        r"""require ['"]""",
        r"class \w+ < ",
        r"\bdef ",
        r"\bend\b",
        r"attr_accessor",
        r"\bputs ",
        r"\bmodule ",
    )

    _REQUIRE = re.compile(r"""^require\s+['"]([^'"]+)['"]""", re.M)
    _GEM = re.compile(r"""^gem\s+['"]([^'"]+)['"]""", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        # require_relative is project-local and never matches
        entries = [self._entry(m.group(0), m.group(1)) for m in self._REQUIRE.finditer(content)]
        entries += [
            self._entry(m.group(0), m.group(1), is_stdlib=False)
            for m in self._GEM.finditer(content)
        ]
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module in RUBY_STDLIB

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "gem")


class PhpPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="php", label="PHP", extensions=(".php",), order=6)
    detect_patterns = patterns(
        r"<\?php", r"\bnamespace ", r"\buse ", r"\bfunction ", r"\bclass ", r"\becho ", r"\$"
    )

    _USE = re.compile(r"^use\s+([\w\\]+)", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = []
        for m in self._USE.finditer(content):
            segments = [s for s in m.group(1).split("\\") if s]
            if not segments:
                continue
            module = "/".join(s.lower() for s in segments[:2])
            entries.append(self._entry(m.group(0), module, is_stdlib=False))
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        # `use` only ever names userland namespaces
        return False

    def map_to_package(self, module: str) -> DetectedPackage | None:
        return self._package(module, "composer")


class RPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="r", label="R", extensions=(".R", ".r", ".Rmd"), order=22)
    detect_patterns = patterns(
        r"\blibrary\(",
        r"\brequire\(",
        r"<-",
        r"\bfunction\(",
        r"data\.frame",
        r"%>%",
        r"\bggplot\b",
        r"\btibble\b",
    )

    _LOADS = patterns(
        r"""library\(["']?(\w+)["']?\)""",
        r"""require\(["']?(\w+)["']?\)""",
        r"(\w+)::",
    )

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = [
            self._entry(m.group(0), m.group(1))
            for regex in self._LOADS
            for m in regex.finditer(content)
        ]
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module in R_STDLIB

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "cran")


class JuliaPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="julia", label="Julia", extensions=(".jl",), order=23)
    detect_patterns = patterns(
        r"\busing ",
        r"\bimport ",
        r"\bmodule ",
        r"\bfunction ",
        r"\bend\b",
        r"\bmutable struct\b",
        r"\babstract type\b",
        r"\bbegin\b",
        r"\bmacro ",
    )

    _LOADS = patterns(r"^using\s+([\w.]+)", r"^import\s+([\w.]+)", flags=re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = [
            self._entry(m.group(0), re.split(r"[.:]", m.group(1))[0])
            for regex in self._LOADS
            for m in regex.finditer(content)
        ]
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module in JULIA_STDLIB

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "julia")


class ShellPlugin(LanguagePlugin):
    metadata = PluginMetadata(
        id="bash", label="Bash/Shell", extensions=(".sh", ".bash", ".zsh"), order=25
    )
    detect_patterns = (
        *patterns(r"^#!/bin/bash", r"^#!/bin/sh", r"^#!/bin/zsh", flags=re.M),
        *patterns(
            r"\bsource ",
            r"\. /",
            r"\bexport ",
            r"if \[",
            r"\bfi\b",
            r"\bfunction ",
            r"\becho ",
        ),
    )

    _SOURCE = re.compile(r"source\s+(\S+)")
    _DOT = re.compile(r"\.\s+(\S+)")

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = [
            self._entry(m.group(0), m.group(1), is_stdlib=False)
            for m in self._SOURCE.finditer(content)
        ]
        for m in self._DOT.finditer(content):
            target = m.group(1)
            # `. file` only counts when the operand looks like a path
            if "/" in target or "." in target:
                entries.append(self._entry(m.group(0), target, is_stdlib=False))
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return False

    def map_to_package(self, module: str) -> DetectedPackage | None:
        name = module.split("/")[-1] or module
        return self._package(name, "generic")
