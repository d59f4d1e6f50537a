#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
meta.py
Metadados de pacotes binários (entradas do índice e registros instalados).

Responsabilidades:
- Package: entrada imutável do índice (index.json / pkginfo.json)
- InstalledPackage: Package + arquivos instalados, slot e flag de fixação
- Index: índice completo por plataforma
- Conversão de/para dicionários JSON com validação de campos obrigatórios
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


class MetaError(ValueError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _str_list(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


# -----------------------
# Package
# -----------------------
@dataclass(frozen=True)
class Package:
    name: str
    version: str
    revision: int = 0
    php_version: str = ""
    description: str = ""
    platform: str = ""
    depends: Tuple[str, ...] = ()
    conflicts: Tuple[str, ...] = ()
    provides: Tuple[str, ...] = ()
    installed_size: int = 0
    maintainer: str = ""
    url: str = ""
    sha256: str = ""
    size: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Package":
        if not isinstance(d, dict):
            raise MetaError(f"package entry must be a mapping, got {type(d).__name__}")
        name = d.get("name")
        if not name or not isinstance(name, str):
            raise MetaError("package entry without 'name'")
        version = d.get("version")
        if version is None or version == "":
            raise MetaError(f"{name}: missing 'version'")
        try:
            return cls(
                name=name,
                version=str(version),
                revision=int(d.get("revision") or 0),
                php_version=str(d.get("php_version") or ""),
                description=str(d.get("description") or ""),
                platform=str(d.get("platform") or ""),
                depends=_str_list(d.get("depends")),
                conflicts=_str_list(d.get("conflicts")),
                provides=_str_list(d.get("provides")),
                installed_size=int(d.get("installed_size") or 0),
                maintainer=str(d.get("maintainer") or ""),
                url=str(d.get("url") or ""),
                sha256=str(d.get("sha256") or ""),
                size=int(d.get("size") or 0),
            )
        except (TypeError, ValueError) as e:
            raise MetaError(f"{name}: invalid field: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "revision": self.revision,
            "description": self.description,
            "platform": self.platform,
            "depends": list(self.depends),
            "provides": list(self.provides),
            "installed_size": self.installed_size,
        }
        # omitempty fields
        if self.php_version:
            out["php_version"] = self.php_version
        if self.conflicts:
            out["conflicts"] = list(self.conflicts)
        for key in ("maintainer", "url", "sha256"):
            val = getattr(self, key)
            if val:
                out[key] = val
        if self.size:
            out["size"] = self.size
        return out

    @property
    def filename(self) -> str:
        return f"{self.name}_{self.version}-{self.revision}_{self.platform}.tar.zst"

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"


# -----------------------
# InstalledPackage
# -----------------------
@dataclass
class InstalledPackage:
    package: Package
    installed_at: str = field(default_factory=_now_iso)
    installed_files: List[str] = field(default_factory=list)
    install_slot: str = ""
    pinned: bool = False

    # convenience passthroughs
    @property
    def name(self) -> str:
        return self.package.name

    @property
    def version(self) -> str:
        return self.package.version

    @property
    def php_version(self) -> str:
        return self.package.php_version

    @property
    def depends(self) -> Tuple[str, ...]:
        return self.package.depends

    def renamed(self, name: str) -> "InstalledPackage":
        return replace(self, package=replace(self.package, name=name))

    def to_dict(self) -> Dict[str, Any]:
        d = self.package.to_dict()
        d["installed_at"] = self.installed_at
        d["installed_files"] = list(self.installed_files)
        d["install_slot"] = self.install_slot
        d["pinned"] = self.pinned
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "InstalledPackage":
        pkg = Package.from_dict(d)
        files = d.get("installed_files") or []
        if not isinstance(files, list):
            raise MetaError(f"{pkg.name}: 'installed_files' must be a list")
        return cls(
            package=pkg,
            installed_at=str(d.get("installed_at") or _now_iso()),
            installed_files=[str(f) for f in files],
            install_slot=str(d.get("install_slot") or ""),
            pinned=bool(d.get("pinned", False)),
        )


# -----------------------
# Index
# -----------------------
@dataclass
class Index:
    version: int = 1
    generated: str = ""
    platforms: Dict[str, List[Package]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Index":
        if not isinstance(d, dict):
            raise MetaError("index root is not a mapping")
        platforms: Dict[str, List[Package]] = {}
        for plat, entry in (d.get("platforms") or {}).items():
            raw = entry.get("packages") if isinstance(entry, dict) else None
            platforms[plat] = [Package.from_dict(p) for p in raw or []]
        return cls(
            version=int(d.get("version") or 1),
            generated=str(d.get("generated") or ""),
            platforms=platforms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "generated": self.generated,
            "platforms": {
                plat: {"packages": [p.to_dict() for p in pkgs]}
                for plat, pkgs in self.platforms.items()
            },
        }

    def packages_for(self, platform: str) -> List[Package]:
        return list(self.platforms.get(platform, []))


class PackageState(enum.Enum):
    NOT_INSTALLED = "not installed"
    INSTALLED = "installed"
    UPGRADABLE = "upgradable"

    def __str__(self) -> str:
        return self.value


@dataclass
class PackageInfo:
    package: Package
    state: PackageState
    installed: Optional[InstalledPackage] = None
    dependents: List[str] = field(default_factory=list)

    @property
    def installed_version(self) -> Optional[str]:
        return self.installed.version if self.installed else None

