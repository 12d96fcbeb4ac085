"""Infrastructure-as-code: Terraform modules and Nix derivations."""

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

NIX_BUILTINS = frozenset({
    "stdenv", "fetchurl", "fetchFromGitHub", "lib", "callPackage",
    "writeShellScriptBin", "runCommand", "writeText", "pkgs",
})


class TerraformPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="terraform", label="Terraform", extensions=(".tf",), order=12)
    detect_patterns = patterns(
        r'resource "', r'provider "', r'variable "', r'module "', r'data "', r'output "'
    )

    _SOURCE = re.compile(r'source\s*=\s*"([^"]+)"')

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(m.group(0), m.group(1), is_stdlib=False)
            for m in self._SOURCE.finditer(content)
        )

    def is_stdlib(self, module: str) -> bool:
        return False

    def map_to_package(self, module: str) -> DetectedPackage | None:
        # hashicorp/consul/aws -> hashicorp/consul
        segments = module.split("/")
        name = "/".join(segments[:2]) if len(segments) >= 2 else module
        return self._package(name, "terraform")


class NixPlugin(LanguagePlugin):
    metadata = PluginMetadata(id="nix", label="Nix", extensions=(".nix",), order=26)
    detect_patterns = patterns(
        r"\{ pkgs \? import",
        r"mkDerivation",
        r"buildInputs",
        r"fetchurl",
        r"fetchFromGitHub",
        r"\bstdenv\b",
        r"\blib\.",
        r"with pkgs;",
    )

    _INPUTS = re.compile(
        r"(?:buildInputs|nativeBuildInputs|propagatedBuildInputs)\s*=\s*"
        r"(?:with\s+\w+;\s*)?\[([^\]]+)\]"
    )
    _ITEM = re.compile(r"(?:pkgs\.)?([a-zA-Z0-9_-]+)")

    def extract_imports(self, content: str) -> list[ImportEntry]:
        return dedupe_imports(
            self._entry(item.group(0), item.group(1))
            for block in self._INPUTS.finditer(content)
            for item in self._ITEM.finditer(block.group(1))
        )

    def is_stdlib(self, module: str) -> bool:
        return module in NIX_BUILTINS

    def map_to_package(self, module: str) -> DetectedPackage | None:
        if self.is_stdlib(module):
            return None
        return self._package(module, "nix")
