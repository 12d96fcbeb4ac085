"""Tests for the language plugins: detection scoring and import extraction."""

import pytest

from vulnfeed.core.registry import PluginRegistry


@pytest.fixture(scope="module")
def registry():
    reg = PluginRegistry()
    reg.discover()
    return reg


def _modules(plugin, content):
    return [(e.module, e.is_stdlib) for e in plugin.extract_imports(content)]


def _purl(plugin, module):
    pkg = plugin.map_to_package(module)
    return pkg.purl if pkg else None


SAMPLES = {
    "app.py": "import os\nimport requests\nfrom flask import Flask\n",
    "index.ts": "import express from 'express';\nconst fs = require('fs');\n",
    "Main.java": "package com.acme;\nimport java.util.List;\npublic class Main {}\n",
    "main.go": 'package main\n\nimport (\n\t"fmt"\n\t"github.com/gin-gonic/gin"\n)\n',
    "lib.rs": "use std::io;\nuse serde::Deserialize;\nfn main() {}\n",
    "util.c": "#include <stdio.h>\n#include <openssl/ssl.h>\nint main(void) { return 0; }\n",
    "start.asm": "section .text\nglobal _start\nextern printf\n",
    "main.tf": 'module "vpc" {\n  source = "terraform-aws-modules/vpc/aws"\n}\n',
    "Main.hs": "module Main where\nimport qualified Data.Map.Strict as M\n",
}


def test_plugins_are_deterministic(registry):
    for plugin in registry.all():
        for filename, content in SAMPLES.items():
            assert plugin.detect(content, filename) == plugin.detect(content, filename)
            assert plugin.extract_imports(content) == plugin.extract_imports(content)


def test_detect_scores_stay_in_range(registry):
    for plugin in registry.all():
        for filename, content in SAMPLES.items():
            assert 0 <= plugin.detect(content, filename) <= 100


def test_detect_extension_and_patterns(registry):
    python = registry.get("python")
    assert python.detect("", "a.py") == 40
    assert python.detect("import os\n", "a.py") == 55
    assert python.detect("import os\n", "notes.txt") == 15


def test_detect_caps_at_100(registry):
    content = (
        "import os\nfrom x import y\ndef f():\n    pass\n"
        "class A(object):\n    pass\nif __name__ == '__main__':\n    f()\n"
    )
    assert registry.get("python").detect(content, "a.py") == 100


def test_python_imports(registry):
    python = registry.get("python")
    content = "import os.path\nimport requests\nfrom flask import Flask\nfrom requests import get\n"
    assert _modules(python, content) == [("os", True), ("requests", False), ("flask", False)]
    assert _purl(python, "flask") == "pkg:pypi/flask"
    assert python.map_to_package("os") is None


def test_javascript_imports(registry):
    js = registry.get("jsts")
    content = (
        "import React from 'react';\n"
        "import { get } from 'lodash/fp';\n"
        "import '@babel/polyfill/noConflict';\n"
        "const local = require('./local');\n"
        "const fs = require('node:fs');\n"
    )
    modules = [m for m, _ in _modules(js, content)]
    assert set(modules) == {"react", "lodash", "@babel/polyfill", "node:fs"}
    assert js.is_stdlib("node:fs")
    assert _purl(js, "@babel/polyfill") == "pkg:npm/%40babel/polyfill"


def test_java_imports_group_to_three_segments(registry):
    java = registry.get("java")
    content = (
        "import java.util.List;\n"
        "import org.apache.commons.lang3.StringUtils;\n"
        "import static org.junit.Assert.assertEquals;\n"
    )
    assert _modules(java, content) == [
        ("java.util.List", True),
        ("org.apache.commons", False),
        ("org.junit.Assert", False),
    ]
    assert _purl(java, "org.apache.commons") == "pkg:maven/org.apache.commons"


def test_csharp_imports(registry):
    cs = registry.get("csharp")
    content = "using System;\nusing System.Linq;\nusing Newtonsoft.Json.Linq;\n"
    assert _modules(cs, content) == [
        ("System", True),
        ("System.Linq", True),
        ("Newtonsoft.Json.Linq", False),
    ]
    assert _purl(cs, "Newtonsoft.Json.Linq") == "pkg:nuget/Newtonsoft.Json"


def test_go_imports(registry):
    go = registry.get("go")
    mods = _modules(go, SAMPLES["main.go"] + 'import "golang.org/x/net/html"\n')
    assert mods == [
        ("fmt", True),
        ("github.com/gin-gonic/gin", False),
        ("golang.org/x/net/html", False),
    ]
    assert _purl(go, "golang.org/x/net/html") == "pkg:golang/golang.org/x/net"


def test_rust_imports(registry):
    rust = registry.get("rust")
    assert _modules(rust, SAMPLES["lib.rs"]) == [("std", True), ("serde", False)]
    assert _purl(rust, "serde") == "pkg:cargo/serde"


def test_c_rejects_cpp_content(registry):
    c = registry.get("c")
    cpp_source = "#include <iostream>\nint main() { std::cout << 1; }\n"
    assert c.detect(cpp_source, "main.c") == 0
    assert registry.get("cpp").detect(cpp_source, "main.cpp") > 40


def test_extension_match_ignores_case(registry):
    c = registry.get("c")
    assert c.detect("", "UTIL.C") == 40
    assert registry.get("python").detect("", "Setup.PY") == 40


def test_full_score_is_kept_despite_cpp_markers(registry):
    c = registry.get("c")
    content = "#include <stdio.h>\nvoid f(void);\nint main() { printf(\"x\"); }\n// std::\n"
    assert c.detect(content, "main.c") == 100


def test_c_headers(registry):
    c = registry.get("c")
    assert c.detect(SAMPLES["util.c"], "util.c") >= 40
    assert _modules(c, SAMPLES["util.c"]) == [("stdio.h", True), ("openssl/ssl.h", False)]
    assert _purl(c, "openssl/ssl.h") == "pkg:conan/openssl"


def test_assembly_maps_libc_symbols_to_libc(registry):
    asm = registry.get("assembly")
    assert _modules(asm, SAMPLES["start.asm"]) == [("printf", True)]
    assert _purl(asm, "printf") == "pkg:generic/libc"


def test_terraform_module_sources(registry):
    tf = registry.get("terraform")
    assert _modules(tf, SAMPLES["main.tf"]) == [("terraform-aws-modules/vpc/aws", False)]
    assert _purl(tf, "terraform-aws-modules/vpc/aws") == "pkg:terraform/terraform-aws-modules/vpc"


def test_haskell_longest_prefix_wins(registry):
    hs = registry.get("haskell")
    assert hs.is_stdlib("Data.List")
    assert not hs.is_stdlib("Data.Map.Strict")
    assert _purl(hs, "Data.Map.Strict") == "pkg:hackage/containers"
    assert _purl(hs, "Data.HashMap.Strict") == "pkg:hackage/unordered-containers"
    assert _purl(hs, "Servant.API") == "pkg:hackage/servant"


def test_ruby_and_php(registry):
    ruby = registry.get("ruby")
    content = "require 'json'\nrequire 'rails'\nrequire_relative 'helper'\ngem 'nokogiri'\n"
    assert _modules(ruby, content) == [("json", True), ("rails", False), ("nokogiri", False)]
    assert _purl(ruby, "rails") == "pkg:gem/rails"

    php = registry.get("php")
    content = "<?php\nuse Symfony\\Component\\HttpFoundation\\Request;\n"
    assert _modules(php, content) == [("symfony/component", False)]
    assert _purl(php, "symfony/component") == "pkg:composer/symfony/component"


def test_dart_core_libraries(registry):
    dart = registry.get("dart")
    content = "import 'dart:async';\nimport 'package:http/http.dart';\n"
    assert _modules(dart, content) == [("http", False), ("dart:async", True)]
    assert dart.map_to_package("dart:async") is None
