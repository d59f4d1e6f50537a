#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
manager.py
Orquestração de instalação, atualização e remoção de pacotes.

Funcionalidades:
- Expande meta-pacotes (php8.5-slim, php8.5-full)
- Interpreta pedidos versionados (php8.5-cli acompanhado, php8.5.1-cli fixado)
- Planeja instalações com dependências resolvidas e deduplicadas
- Atualiza automaticamente pacotes irmãos do mesmo slot (política configurável)
- Verifica e aplica atualizações, incluindo nomes antigos (php8.5.0-redis6.3.0)
- Remove pacotes bloqueando os que ainda têm dependentes
- Consultas de estado para listagem e informações
- Falhas são registradas por pacote e o lote continua
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .catalog import Repository
from .config import Config
from .db import PackageDB
from .deps import DependencyResolver
from .errors import (DependencyError, DependentsError, NotInstalledError,
                     PackageNotFoundError, PhmError)
from .installer import InstallOptions, Installer
from .log import get_logger
from .meta import InstalledPackage, Package, PackageInfo, PackageState
from .privileged import PrivilegedExecutor, make_executor
from .versions import (compare_versions, extract_slot, is_pinned_slot,
                       normalize_package_name, parse_package_name)

logger = get_logger("manager")

SLIM_COMPONENTS = ("common", "cli", "fpm", "cgi", "dev", "pear")
_META_RE = re.compile(r"^php(\d+\.\d+)-(slim|full)$")


@dataclass
class InstallRequest:
    requested_name: str   # ledger key, e.g. php8.5.1-cli
    canonical_name: str   # catalog name, e.g. php8.5-cli
    install_slot: str
    pinned: bool
    package: Package


@dataclass
class InstallPlan:
    requests: List[InstallRequest] = field(default_factory=list)
    slots: Set[str] = field(default_factory=set)
    errors: Dict[str, PhmError] = field(default_factory=dict)

    @property
    def requested_names(self) -> Set[str]:
        return {r.requested_name for r in self.requests}


@dataclass
class OperationReport:
    installed: List[str] = field(default_factory=list)
    upgraded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    failed: Dict[str, PhmError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class UpgradeCandidate:
    installed_name: str
    canonical_name: str
    old_version: str
    new_version: str
    package: Package


def _writable(path: str) -> bool:
    p = Path(path)
    while not p.exists() and p != p.parent:
        p = p.parent
    return os.access(p, os.W_OK)


class PackageManager:
    def __init__(self, cfg: Config, repo: Optional[Repository] = None,
                 db: Optional[PackageDB] = None, executor: Optional[PrivilegedExecutor] = None):
        self.cfg = cfg
        self.repo = repo or Repository(cfg)
        self.db = db or PackageDB(cfg.installed_db_path).load()
        self.installer = Installer(cfg.install_prefix, self.db, executor or make_executor(cfg))

    # -----------------------
    # Catálogo
    # -----------------------
    def update(self) -> int:
        """Atualiza o índice remoto; retorna o número de pacotes da plataforma."""
        self.repo.fetch_index()
        return len(self.repo.get_packages())

    def _packages(self) -> List[Package]:
        if self.repo.index is None:
            self.repo.load_index()
        return self.repo.get_packages()

    def search(self, query: str) -> List[Package]:
        self._packages()
        return self.repo.search_packages(query)

    # -----------------------
    # Planejamento
    # -----------------------
    def expand_meta_packages(self, names: Iterable[str]) -> List[str]:
        """
        php8.5-slim -> common, cli, fpm, cgi, dev, pear (os que existirem no catálogo)
        php8.5-full -> slim + todos os outros php8.5-* do catálogo
        """
        available = {p.name for p in self._packages()}
        result: List[str] = []
        for name in names:
            m = _META_RE.match(name)
            if not m:
                result.append(name)
                continue
            prefix = f"php{m.group(1)}-"
            core = [prefix + c for c in SLIM_COMPONENTS]
            expanded = [n for n in core if n in available]
            if m.group(2) == "full":
                for pkg in self._packages():
                    if pkg.name.startswith(prefix) and pkg.name not in core and pkg.name not in expanded:
                        expanded.append(pkg.name)
            logger.info("Expandindo %s para: %s", name, ", ".join(expanded))
            result.extend(expanded)
        return result

    def parse_install_request(self, name: str) -> Optional[InstallRequest]:
        info = parse_package_name(name)
        if info is None:
            pkg = self.repo.get_package(name)
            if pkg is None:
                return None
            return InstallRequest(name, name, "", False, pkg)

        pkg = self.repo.get_package(info.canonical_name)
        if pkg is None:
            return None
        # a pinned request is only valid for the exact build the catalog carries
        if info.pinned and pkg.version != info.patch_version:
            logger.debug("%s: catálogo tem %s, pedido fixa %s", name, pkg.version, info.patch_version)
            return None
        return InstallRequest(name, info.canonical_name, info.install_slot, info.pinned, pkg)

    def plan_install(self, names: Iterable[str]) -> InstallPlan:
        resolver = DependencyResolver(self._packages(), self.db)
        plan = InstallPlan()
        seen: Set[str] = set()

        for name in self.expand_meta_packages(names):
            req = self.parse_install_request(name)
            if req is None:
                pkg = self.repo.get_package(name)
                if pkg is None:
                    plan.errors[name] = PackageNotFoundError(f"package not found: {name}", package=name)
                    continue
                req = InstallRequest(name, name, extract_slot(name), False, pkg)

            try:
                order = resolver.resolve(req.package)
            except DependencyError as e:
                logger.error("Falha ao resolver dependências de %s: %s", name, e)
                plan.errors[name] = e
                continue

            for pkg in order:
                req_name = pkg.name
                if pkg.name == req.canonical_name:
                    req_name = req.requested_name
                elif req.pinned:
                    # dependencies of a pinned request land in the same pinned slot
                    info = parse_package_name(pkg.name)
                    if info is not None:
                        req_name = f"{info.prefix}{req.install_slot}-{info.package_type}"
                if req_name in seen:
                    continue
                seen.add(req_name)
                plan.requests.append(InstallRequest(req_name, pkg.name, req.install_slot, req.pinned, pkg))
                if req.install_slot:
                    plan.slots.add(req.install_slot)
        return plan

    def plan_sibling_upgrades(self, plan: InstallPlan) -> List[InstallRequest]:
        """
        Pacotes já instalados nos slots acompanhados do plano que têm versão
        mais nova no catálogo. Slots e registros fixados ficam de fora.
        """
        requested = plan.requested_names
        upgrades: List[InstallRequest] = []
        for slot in sorted(plan.slots):
            if is_pinned_slot(slot):
                continue
            for rec in self.db.get_by_prefix(f"php{slot}-"):
                if rec.name in requested or rec.pinned:
                    continue
                available = self.repo.get_package(rec.name)
                if available is not None and compare_versions(available.version, rec.version) > 0:
                    upgrades.append(InstallRequest(rec.name, rec.name, slot, False, available))
        return upgrades

    # -----------------------
    # Operações
    # -----------------------
    def _lock(self):
        return self.db.lock(timeout=float(self.cfg.get("install", "lock_timeout", default=30)))

    def _ensure_privileges(self) -> None:
        validate = getattr(self.installer.executor, "validate", None)
        if validate is not None and not _writable(self.cfg.install_prefix):
            validate()

    def _install_one(self, req: InstallRequest, report: OperationReport) -> bool:
        try:
            path = self.repo.download_package(req.package)
            self.installer.install(path, InstallOptions(
                install_slot=req.install_slot,
                pinned=req.pinned,
                custom_name=req.requested_name,
            ))
        except PhmError as e:
            logger.error("Falha ao instalar %s: %s", req.requested_name, e)
            report.failed[req.requested_name] = e
            return False
        return True

    def install(self, names: Iterable[str], force: bool = False) -> OperationReport:
        names = list(names)
        report = OperationReport()
        with self._lock():
            self.db.load()
            plan = self.plan_install(names)
            report.failed.update(plan.errors)
            if not plan.requests:
                logger.info("Nenhum pacote para instalar.")
                return report
            self._ensure_privileges()

            if self.cfg.get("install", "auto_upgrade_siblings", default=True):
                for req in self.plan_sibling_upgrades(plan):
                    logger.info("Atualizando %s para %s (mesmo slot)", req.requested_name, req.package.version)
                    if self._install_one(req, report):
                        report.upgraded.append(req.requested_name)

            for req in plan.requests:
                if self.db.is_installed(req.requested_name) and not force:
                    logger.info("%s já instalado", req.requested_name)
                    report.skipped.append(req.requested_name)
                    continue
                logger.info("Instalando %s (%s)", req.requested_name, req.package.version)
                if self._install_one(req, report):
                    report.installed.append(req.requested_name)
        return report

    def _find_installed(self, name: str) -> Optional[InstalledPackage]:
        rec = self.db.get(name)
        if rec is not None:
            return rec
        normalized = normalize_package_name(name)
        for cand in self.db.get_all():
            if normalize_package_name(cand.name) == normalized:
                return cand
        return None

    def _needs_upgrade(self, pkg: Package) -> bool:
        rec = self._find_installed(pkg.name)
        if rec is None:
            return True
        cmp = compare_versions(pkg.version, rec.version)
        if cmp != 0:
            return cmp > 0
        return compare_versions(pkg.php_version, rec.php_version) > 0

    def check_upgrades(self, names: Optional[Iterable[str]] = None) -> List[UpgradeCandidate]:
        self._packages()
        to_check = list(names) if names else [r.name for r in self.db.get_all()]
        candidates: List[UpgradeCandidate] = []
        for name in to_check:
            rec = self.db.get(name)
            if rec is None:
                continue
            canonical = normalize_package_name(name)
            available = self.repo.get_package(canonical)
            if available is None:
                continue
            new_version = self.installer.check_upgrade(name, available.version, available.php_version)
            if new_version:
                candidates.append(UpgradeCandidate(name, canonical, rec.version, new_version, available))
        return candidates

    def upgrade(self, names: Optional[Iterable[str]] = None) -> OperationReport:
        report = OperationReport()
        with self._lock():
            self.db.load()
            candidates = self.check_upgrades(names)
            if not candidates:
                logger.info("Todos os pacotes estão atualizados")
                return report
            self._ensure_privileges()
            resolver = DependencyResolver(self._packages(), self.db)
            for cand in candidates:
                logger.info("%s: %s -> %s", cand.canonical_name, cand.old_version, cand.new_version)
                try:
                    order = resolver.resolve(cand.package)
                except DependencyError as e:
                    logger.error("Falha ao resolver dependências de %s: %s", cand.canonical_name, e)
                    report.failed[cand.installed_name] = e
                    continue
                for pkg in order:
                    if not self._needs_upgrade(pkg):
                        continue
                    rec = self._find_installed(pkg.name)
                    slot = extract_slot(pkg.name) or (rec.install_slot if rec is not None else "")
                    req = InstallRequest(pkg.name, pkg.name, slot, False, pkg)
                    if self._install_one(req, report):
                        report.upgraded.append(pkg.name)
        return report

    def remove(self, names: Iterable[str], force: bool = False) -> OperationReport:
        report = OperationReport()
        with self._lock():
            self.db.load()
            self._ensure_privileges()
            for name in names:
                if not self.db.is_installed(name):
                    logger.warning("Pacote %s não está instalado", name)
                    report.failed[name] = NotInstalledError(f"package not installed: {name}", package=name)
                    continue
                dependents = self.db.get_dependents(name)
                if dependents and not force:
                    err = DependentsError(name, dependents)
                    logger.error("%s", err)
                    report.failed[name] = err
                    continue
                try:
                    result = self.installer.remove(name)
                except PhmError as e:
                    logger.error("Falha ao remover %s: %s", name, e)
                    report.failed[name] = e
                    continue
                if result.failed:
                    logger.warning("%s: %d arquivo(s) não puderam ser removidos", name, len(result.failed))
                report.removed.append(name)
        return report

    # -----------------------
    # Consultas
    # -----------------------
    def package_state(self, pkg: Package) -> PackageState:
        rec = self.db.get(pkg.name)
        if rec is None:
            return PackageState.NOT_INSTALLED
        if compare_versions(pkg.version, rec.version) > 0:
            return PackageState.UPGRADABLE
        return PackageState.INSTALLED

    def list_packages(self, pattern: str = "", installed_only: bool = False) -> List[PackageInfo]:
        if installed_only:
            return [PackageInfo(rec.package, PackageState.INSTALLED, installed=rec)
                    for rec in self.db.get_all() if pattern in rec.name]
        return [PackageInfo(pkg, self.package_state(pkg), installed=self.db.get(pkg.name))
                for pkg in self._packages() if pattern in pkg.name]

    def info(self, name: str) -> PackageInfo:
        self._packages()
        available = self.repo.get_package(name)
        rec = self.db.get(name)
        if available is None and rec is None:
            raise PackageNotFoundError(f"package not found: {name}", package=name)
        pkg = available if available is not None else rec.package
        state = self.package_state(pkg) if rec is not None else PackageState.NOT_INSTALLED
        dependents = self.db.get_dependents(name) if rec is not None else []
        return PackageInfo(pkg, state, installed=rec, dependents=dependents)
