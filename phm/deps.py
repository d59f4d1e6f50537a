#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
deps.py
Resolvedor de dependências.

Funcionalidades:
- Lê as restrições "depends" de cada pacote do catálogo
- Resolve dependências recursivas (busca em profundidade)
- Dependências já instaladas e satisfeitas são puladas
- Ordenação: dependências sempre antes dos dependentes, sem repetição
- Detecta ciclos de dependências
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from .db import PackageDB
from .errors import CircularDependencyError, DependencyError
from .log import get_logger
from .meta import Package
from .versions import Dependency, compare_versions, parse_dependency

logger = get_logger("deps")


class DependencyResolver:
    def __init__(self, packages: Iterable[Package], db: Optional[PackageDB] = None):
        # highest version wins when the catalog lists a name more than once
        self.index: Dict[str, Package] = {}
        for pkg in packages:
            cur = self.index.get(pkg.name)
            if cur is None or compare_versions(pkg.version, cur.version) > 0:
                self.index[pkg.name] = pkg
        self.db = db

    def resolve(self, target: Package) -> List[Package]:
        """
        Resolve todas as dependências de target.
        Retorna lista ordenada em ordem de instalação, terminando no próprio target.
        """
        logger.debug("Resolvendo dependências de %s", target.name)
        resolved: Set[str] = set()
        in_progress: List[str] = []
        order: List[Package] = []

        def visit(pkg: Package) -> None:
            if pkg.name in resolved:
                return
            if pkg.name in in_progress:
                cycle = in_progress[in_progress.index(pkg.name):] + [pkg.name]
                raise CircularDependencyError(cycle)
            in_progress.append(pkg.name)

            for raw in pkg.depends:
                dep = parse_dependency(raw)
                if self._installed_satisfies(dep):
                    continue
                visit(self._lookup(dep, pkg))

            in_progress.pop()
            resolved.add(pkg.name)
            order.append(pkg)

        visit(target)
        logger.debug("Ordem resolvida: %s", [p.name for p in order])
        return order

    def _installed_satisfies(self, dep: Dependency) -> bool:
        if self.db is None:
            return False
        rec = self.db.get(dep.name)
        return rec is not None and dep.satisfied_by(rec.version)

    def _lookup(self, dep: Dependency, parent: Package) -> Package:
        cand = self.index.get(dep.name)
        if cand is None:
            raise DependencyError(f"dependency not found: {dep.name} (required by {parent.name})",
                                  package=dep.name)
        if not dep.satisfied_by(cand.version):
            raise DependencyError(
                f"unsatisfied dependency: {dep} (required by {parent.name}), "
                f"catalog has {cand.version}",
                package=dep.name,
            )
        return cand
