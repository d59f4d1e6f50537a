"""Dependency resolution over the catalog and the installed ledger."""

from __future__ import annotations

from pathlib import Path

import pytest

from phm.db import PackageDB
from phm.deps import DependencyResolver
from phm.errors import CircularDependencyError, DependencyError
from phm.meta import InstalledPackage, Package


def _p(name: str, version: str, *depends: str) -> Package:
    return Package(name=name, version=version, depends=depends)


@pytest.fixture
def empty_db(tmp_path: Path) -> PackageDB:
    return PackageDB(tmp_path / "installed").load()


def _install(db: PackageDB, name: str, version: str) -> None:
    db.save(InstalledPackage(package=Package(name=name, version=version), install_slot="8.5"))


class TestResolve:
    def test_dependencies_precede_dependents(self, empty_db: PackageDB) -> None:
        catalog = [
            _p("php8.5-common", "1.0"),
            _p("php8.5-cli", "1.0", "php8.5-common>=1.0"),
            _p("php8.5-redis", "2.0", "php8.5-cli>=1.0"),
        ]
        order = DependencyResolver(catalog, empty_db).resolve(catalog[2])
        assert [p.name for p in order] == ["php8.5-common", "php8.5-cli", "php8.5-redis"]

    def test_each_package_once(self, empty_db: PackageDB) -> None:
        catalog = [
            _p("base", "1.0"),
            _p("left", "1.0", "base"),
            _p("right", "1.0", "base"),
            _p("top", "1.0", "left", "right", "base"),
        ]
        order = [p.name for p in DependencyResolver(catalog, empty_db).resolve(catalog[3])]
        assert order == ["base", "left", "right", "top"]
        assert len(order) == len(set(order))

    def test_without_ledger(self) -> None:
        catalog = [_p("a", "1.0"), _p("b", "1.0", "a")]
        assert [p.name for p in DependencyResolver(catalog).resolve(catalog[1])] == ["a", "b"]

    def test_picks_highest_catalog_version(self, empty_db: PackageDB) -> None:
        catalog = [_p("a", "1.0"), _p("a", "1.2"), _p("a", "1.1"), _p("b", "1.0", "a (>= 1.2)")]
        order = DependencyResolver(catalog, empty_db).resolve(catalog[3])
        assert order[0].version == "1.2"


class TestInstalledDependencies:
    def test_satisfied_installed_dependency_is_skipped(self, empty_db: PackageDB) -> None:
        _install(empty_db, "a", "2.0")
        catalog = [_p("a", "2.0"), _p("b", "1.0", "a (>= 1.0)")]
        order = DependencyResolver(catalog, empty_db).resolve(catalog[1])
        assert [p.name for p in order] == ["b"]

    def test_unsatisfied_installed_dependency_uses_catalog(self, empty_db: PackageDB) -> None:
        _install(empty_db, "a", "2.0")
        catalog = [_p("a", "3.0"), _p("b", "1.0", "a (>= 3.0)")]
        order = DependencyResolver(catalog, empty_db).resolve(catalog[1])
        assert [p.name for p in order] == ["a", "b"]

    def test_unsatisfied_everywhere_fails(self, empty_db: PackageDB) -> None:
        _install(empty_db, "a", "2.0")
        catalog = [_p("a", "2.5"), _p("b", "1.0", "a (>= 3.0)")]
        with pytest.raises(DependencyError, match="unsatisfied") as exc:
            DependencyResolver(catalog, empty_db).resolve(catalog[1])
        assert exc.value.package == "a"


class TestFailures:
    def test_missing_dependency_named(self, empty_db: PackageDB) -> None:
        catalog = [_p("b", "1.0", "ghost (>= 1.0)")]
        with pytest.raises(DependencyError, match="ghost") as exc:
            DependencyResolver(catalog, empty_db).resolve(catalog[0])
        assert exc.value.package == "ghost"
        assert exc.value.code == "DEPENDENCY_MISSING"

    def test_cycle_detected(self, empty_db: PackageDB) -> None:
        catalog = [_p("a", "1.0", "b"), _p("b", "1.0", "c"), _p("c", "1.0", "a")]
        with pytest.raises(CircularDependencyError) as exc:
            DependencyResolver(catalog, empty_db).resolve(catalog[0])
        assert exc.value.cycle == ["a", "b", "c", "a"]

    def test_self_dependency(self, empty_db: PackageDB) -> None:
        catalog = [_p("a", "1.0", "a")]
        with pytest.raises(CircularDependencyError):
            DependencyResolver(catalog, empty_db).resolve(catalog[0])
