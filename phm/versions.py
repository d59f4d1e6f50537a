#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
versions.py
Modelo de versões e nomes de pacotes.

Funcionalidades:
- Comparação numérica de versões separadas por ponto (compare_versions)
- Parse de nomes versionados: php8.5-cli (slot acompanhado) e php8.5.1-cli (slot fixo)
- Parse de restrições de dependência: "php8.5-common (>= 8.5.0)"
- Verificação de restrições (version_satisfies)
- Normalização de nomes antigos (php8.5.0-redis6.3.0 -> php8.5-redis)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

# pinned is tried first: "php8.5.1-cli" also matches the tracked pattern's prefix
_PINNED_RE = re.compile(r"^([A-Za-z]+)(\d+)\.(\d+)\.(\d+)-(.+)$")
_TRACKED_RE = re.compile(r"^([A-Za-z]+)(\d+)\.(\d+)-(.+)$")

_DEP_PAREN_RE = re.compile(r"^([A-Za-z0-9._+-]+)\s*\(\s*([<>=]+)\s*([0-9][0-9A-Za-z.]*)\s*\)$")
_DEP_BARE_RE = re.compile(r"^([A-Za-z0-9._+-]+?)\s*([<>=]+)\s*([0-9][0-9A-Za-z.]*)$")

_SLOT_PATCH_RE = re.compile(r"^[A-Za-z]+(\d+\.\d+\.\d+)(?:-|$)")
_SLOT_MINOR_RE = re.compile(r"^[A-Za-z]+(\d+\.\d+)(?:-|$)")
_LEGACY_RE = re.compile(r"^([A-Za-z]+)(\d+\.\d+)\.\d+-([a-z]+)[\d.]*$")

OPERATORS = (">=", ">", "<=", "<", "=", "==")


def _component(part: str) -> int:
    try:
        return int(part)
    except ValueError:
        return 0


def compare_versions(a: str, b: str) -> int:
    """
    Compare two dot-separated versions component by component.
    Missing components count as zero, non-numeric ones too.
    Returns -1, 0 or 1.
    """
    parts_a = (a or "").split(".")
    parts_b = (b or "").split(".")
    for i in range(max(len(parts_a), len(parts_b))):
        num_a = _component(parts_a[i]) if i < len(parts_a) else 0
        num_b = _component(parts_b[i]) if i < len(parts_b) else 0
        if num_a < num_b:
            return -1
        if num_a > num_b:
            return 1
    return 0


def version_satisfies(version: str, constraint: str, required: str) -> bool:
    if not constraint or not required:
        return True
    cmp = compare_versions(version, required)
    if constraint == ">=":
        return cmp >= 0
    if constraint == ">":
        return cmp > 0
    if constraint == "<=":
        return cmp <= 0
    if constraint == "<":
        return cmp < 0
    if constraint in ("=", "=="):
        return cmp == 0
    return True


@dataclass(frozen=True)
class VersionInfo:
    """Resultado do parse de um nome versionado (php8.5-cli, php8.5.1-cli)."""

    prefix: str
    minor_version: str
    patch_version: str
    pinned: bool
    package_type: str

    @property
    def install_slot(self) -> str:
        return self.patch_version if self.pinned else self.minor_version

    @property
    def canonical_name(self) -> str:
        # pinned and tracked requests share one catalog entry
        return f"{self.prefix}{self.minor_version}-{self.package_type}"


def parse_package_name(name: str) -> Optional[VersionInfo]:
    """
    Parse a versioned package name.
    Returns None for names without a leading runtime version (e.g. "redis-server").
    """
    m = _PINNED_RE.match(name)
    if m:
        prefix, major, minor, patch, suffix = m.groups()
        return VersionInfo(
            prefix=prefix,
            minor_version=f"{major}.{minor}",
            patch_version=f"{major}.{minor}.{patch}",
            pinned=True,
            package_type=suffix,
        )
    m = _TRACKED_RE.match(name)
    if m:
        prefix, major, minor, suffix = m.groups()
        return VersionInfo(
            prefix=prefix,
            minor_version=f"{major}.{minor}",
            patch_version="",
            pinned=False,
            package_type=suffix,
        )
    return None


@dataclass(frozen=True)
class Dependency:
    name: str
    constraint: str = ""
    version: str = ""

    def satisfied_by(self, version: str) -> bool:
        return version_satisfies(version, self.constraint, self.version)

    def __str__(self) -> str:
        if self.constraint and self.version:
            return f"{self.name} ({self.constraint} {self.version})"
        return self.name


def parse_dependency(dep: str) -> Dependency:
    """
    Interpreta string de dependência: "nome", "nome (>= 1.0)" ou "nome >= 1.0".
    Operadores desconhecidos são mantidos; version_satisfies os trata como satisfeitos.
    """
    text = dep.strip()
    m = _DEP_PAREN_RE.match(text) or _DEP_BARE_RE.match(text)
    if m:
        return Dependency(name=m.group(1), constraint=m.group(2), version=m.group(3))
    return Dependency(name=text)


def extract_slot(name: str) -> str:
    """php8.5.1-cli -> 8.5.1, php8.5-cli -> 8.5, redis -> ''"""
    m = _SLOT_PATCH_RE.match(name)
    if m:
        return m.group(1)
    m = _SLOT_MINOR_RE.match(name)
    if m:
        return m.group(1)
    return ""


def source_slot(version: str) -> str:
    """First two components of a package version: 8.5.0 -> 8.5."""
    parts = (version or "").split(".")
    if len(parts) >= 2:
        return f"{parts[0]}.{parts[1]}"
    return ""


def normalize_package_name(name: str) -> str:
    """
    Converte nomes antigos para o nome canônico:
      php8.5.0-cli        -> php8.5-cli
      php8.5.0-redis6.3.0 -> php8.5-redis
      php8.5-cli          -> php8.5-cli
    """
    m = _LEGACY_RE.match(name)
    if m:
        return f"{m.group(1)}{m.group(2)}-{m.group(3)}"
    return name


def is_pinned_slot(slot: str) -> bool:
    return slot.count(".") >= 2
