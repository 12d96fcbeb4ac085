"""Systems languages: Go, Rust, C, C++ and assembly."""

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

RUST_STDLIB = frozenset({"std", "core", "alloc", "proc_macro"})

C_HEADERS = frozenset({
    "stdio.h", "stdlib.h", "string.h", "math.h", "ctype.h", "errno.h",
    "float.h", "limits.h", "locale.h", "setjmp.h", "signal.h", "stdarg.h",
    "stddef.h", "time.h", "assert.h", "complex.h", "fenv.h", "inttypes.h",
    "iso646.h", "stdbool.h", "stdint.h", "tgmath.h", "wchar.h", "wctype.h",
    "stdalign.h", "stdatomic.h", "stdnoreturn.h", "threads.h", "uchar.h",
    "unistd.h", "fcntl.h", "sys/types.h", "sys/stat.h", "sys/socket.h",
    "sys/wait.h", "sys/mman.h", "netinet/in.h", "arpa/inet.h", "pthread.h",
    "dirent.h", "termios.h", "poll.h", "dlfcn.h", "semaphore.h",
})

CPP_HEADERS = C_HEADERS | {
    "iostream", "fstream", "sstream", "string", "vector", "map", "set",
    "unordered_map", "unordered_set", "list", "deque", "queue", "stack",
    "array", "algorithm", "functional", "numeric", "memory", "utility",
    "tuple", "optional", "variant", "any", "type_traits", "chrono", "thread",
    "mutex", "condition_variable", "future", "atomic", "bitset", "complex",
    "random", "regex", "filesystem", "format", "ranges", "span", "concepts",
    "coroutine", "source_location", "expected", "print",
}

LIBC_SYMBOLS = frozenset({
    "printf", "scanf", "malloc", "free", "calloc", "realloc", "exit", "memcpy",
    "memset", "memmove", "strlen", "strcpy", "strcmp", "strcat", "fopen",
    "fclose", "fread", "fwrite", "puts", "getchar", "putchar", "abs", "atoi",
    "atof", "rand", "srand",
})

_INCLUDE = re.compile(r"""^#include\s*[<"]([^>"]+)""", re.M)


class GoPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="go", label="Go", extensions=(".go",), order=7)
    detect_patterns = patterns(
        r"\bpackage ",
        r"\bfunc ",
        r'import "',
        r"\bgo func",
        r"\bvar ",
        r"\btype ",
        r"interface\s*\{",
    )

    _BLOCK = re.compile(r"import\s*\(([\s\S]*?)\)")
    _QUOTED = re.compile(r'"([^"]+)"')
    _SINGLE = re.compile(r'import\s+"([^"]+)"')

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = [
            self._entry(inner.group(0), inner.group(1))
            for block in self._BLOCK.finditer(content)
            for inner in self._QUOTED.finditer(block.group(1))
        ]
        entries += [self._entry(m.group(0), m.group(1)) for m in self._SINGLE.finditer(content)]
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        # Standard-library import paths have no domain component
        return "." not in module

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        segments = module.split("/")
        name = "/".join(segments[:3]) if len(segments) >= 3 else module
        return self._package(name, "golang")


class RustPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="rust", label="Rust", extensions=(".rs",), order=8)
    detect_patterns = patterns(
        r"fn main\(\)",
        r"\buse std::",
        r"\blet mut ",
        r"\bimpl ",
        r"\bpub fn",
        r"\bmatch ",
        r"#\[derive",
    )

    _USE = re.compile(r"^use\s+([a-z_][a-z0-9_]*)", re.M)

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in self._USE.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module in RUST_STDLIB

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "cargo")


class CPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="c", label="C", extensions=(".c", ".h"), order=13)
    # Any C++ construct rules the file out
    negative_patterns = patterns(
        r"\bstd::", r"\bnamespace ", r"template\s*<", r"\biostream\b", r"\bvector<", r"\bcout\b"
    )
    detect_patterns = patterns(
        r"#include\s*<",
        r"int main\(",
        r"\bvoid ",
        r"printf\(",
        r"malloc\(",
        r"sizeof\(",
        r"\btypedef ",
    )

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in _INCLUDE.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module in C_HEADERS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        # openssl/ssl.h -> openssl, zlib.h -> zlib
        name = re.sub(r"\.h$", "", module.split("/")[0])
        return self._package(name, "conan")


class CppPlugin(LanguagePlugin):
    metadata = PluginMetadata(
        id="cpp",
        label="C++",
        extensions=(".cpp", ".hpp", ".cc", ".cxx", ".hxx", ".hh"),
        order=14,
    )
    detect_patterns = patterns(
        r"#include\s*<iostream>",
        r"\bstd::",
        r"\bnamespace ",
        r"template\s*<",
        r"\bclass ",
        r"\bcout\b",
        r"vector<",
        r"map<",
        r"unique_ptr",
        r"shared_ptr",
    )

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1)) for m in _INCLUDE.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return module in CPP_HEADERS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        name = re.sub(r"\.h(pp)?$", "", module.split("/")[0])
        return self._package(name, "conan")


class AssemblyPlugin(LanguagePlugin):
    metadata = PluginMetadata(
        id="assembly", label="Assembly", extensions=(".asm", ".s", ".S"), order=15
    )
    detect_patterns = patterns(
        r"section \.text",
        r"global _start",
        r"\bmov ",
        r"\bextern ",
        r"%include",
        r"\.globl",
        r"\.section",
        r"\bpush\b",
        r"\bpop\b",
        r"\bcall ",
        r"\bret\b",
        r"\bjmp ",
        r"\bsyscall\b",
    )

    _EXTERN = re.compile(r"extern\s+(\w+)")
    _INCLUDES = patterns(r'%include\s+"([^"]+)"', r'\.include\s+"([^"]+)"')

    def extract_imports(self, content: str) -> list[ImportEntry]:
        entries = [self._entry(m.group(0), m.group(1)) for m in self._EXTERN.finditer(content)]
        entries += [
            self._entry(m.group(0), m.group(1), is_stdlib=False)
            for regex in self._INCLUDES
            for m in regex.finditer(content)
        ]
        return dedupe_imports(entries)

    def is_stdlib(self, module: str) -> bool:
        return module in LIBC_SYMBOLS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        # libc symbols resolve to libc itself rather than being dropped
        if self.is_stdlib(module):
            return self._package("libc", "generic")
        return self._package(module, "generic")
