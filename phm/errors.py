# phm/errors.py
"""
Hierarquia de exceções do phm.

Todas as falhas esperadas herdam de PhmError; o chamador (CLI/TUI) decide
se continua um lote ou encerra o processo.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union


class PhmError(Exception):
    """Base exception for every expected phm failure."""

    code: str = "UNKNOWN"

    def __init__(self, message: str, *, package: Optional[str] = None,
                 path: Optional[Union[str, Path]] = None) -> None:
        super().__init__(message)
        self.package = package
        self.path = str(path) if path is not None else None


class ConfigError(PhmError):
    code = "CONFIG_ERROR"


class CatalogError(PhmError):
    """Package index could not be fetched, read or parsed."""

    code = "CATALOG_UNAVAILABLE"


class PackageNotFoundError(CatalogError):
    code = "PACKAGE_NOT_FOUND"


class DownloadError(PhmError):
    code = "DOWNLOAD_FAILED"


class DependencyError(PhmError):
    """A dependency is missing from the catalog or cannot satisfy its constraint."""

    code = "DEPENDENCY_MISSING"


class CircularDependencyError(DependencyError):
    code = "DEPENDENCY_CYCLE"

    def __init__(self, cycle: List[str]) -> None:
        super().__init__("circular dependency: " + " -> ".join(cycle), package=cycle[0] if cycle else None)
        self.cycle = list(cycle)


class InstallError(PhmError):
    code = "INSTALL_FAILED"


class NotInstalledError(PhmError):
    code = "NOT_INSTALLED"


class DependentsError(PhmError):
    """Removal refused because installed packages still depend on the target."""

    code = "HAS_DEPENDENTS"

    def __init__(self, package: str, dependents: List[str]) -> None:
        super().__init__(f"cannot remove {package}, required by: {', '.join(dependents)}", package=package)
        self.dependents = list(dependents)


class PrivilegeError(PhmError):
    code = "PRIVILEGE_FAILED"


class LedgerError(PhmError):
    """A ledger record could not be written or deleted."""

    code = "LEDGER_WRITE_FAILED"


class LedgerLockError(LedgerError):
    code = "LEDGER_LOCKED"
