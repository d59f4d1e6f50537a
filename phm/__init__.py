# phm/__init__.py
"""
phm - gerenciador de pacotes binários de PHP (runtime e extensões).
"""

from .catalog import Repository
from .config import Config
from .db import PackageDB
from .deps import DependencyResolver
from .errors import PhmError
from .installer import InstallOptions, Installer, RemovalReport
from .manager import PackageManager
from .meta import Index, InstalledPackage, Package, PackageInfo, PackageState
from .versions import compare_versions, parse_dependency, parse_package_name

__version__ = "0.1.0"

__all__ = [
    "Config",
    "DependencyResolver",
    "Index",
    "InstallOptions",
    "InstalledPackage",
    "Installer",
    "Package",
    "PackageDB",
    "PackageInfo",
    "PackageManager",
    "PackageState",
    "PhmError",
    "RemovalReport",
    "Repository",
    "compare_versions",
    "parse_dependency",
    "parse_package_name",
]
