"""Version comparison, versioned package names and dependency strings."""

from __future__ import annotations

import itertools

import pytest

from phm.versions import (Dependency, compare_versions, extract_slot, is_pinned_slot,
                          normalize_package_name, parse_dependency, parse_package_name,
                          source_slot, version_satisfies)

SAMPLE = ["1", "1.0", "1.0.1", "1.2", "1.10", "2.0.0", "8.5.0", "8.5.1", "10.0", "0.9.9", "1.x"]


class TestCompareVersions:
    @pytest.mark.parametrize("a,b,expected", [
        ("1.0", "1.0", 0),
        ("1.0", "1.0.0", 0),
        ("1.2", "1.10", -1),
        ("8.5.1", "8.5.0", 1),
        ("10.0", "9.9.9", 1),
        ("1.x", "1.0", 0),
        ("", "0", 0),
    ])
    def test_pairs(self, a: str, b: str, expected: int) -> None:
        assert compare_versions(a, b) == expected

    def test_total_order(self) -> None:
        for a in SAMPLE:
            assert compare_versions(a, a) == 0
        for a, b in itertools.product(SAMPLE, repeat=2):
            assert compare_versions(a, b) == -compare_versions(b, a)
        for a, b, c in itertools.product(SAMPLE, repeat=3):
            if compare_versions(a, b) < 0 and compare_versions(b, c) < 0:
                assert compare_versions(a, c) < 0


class TestSatisfies:
    @pytest.mark.parametrize("version,op,required,expected", [
        ("2.0", ">=", "1.0", True),
        ("2.0", ">=", "3.0", False),
        ("2.0", ">", "2.0", False),
        ("2.0", "<=", "2.0", True),
        ("1.9", "<", "2.0", True),
        ("2.0", "=", "2.0.0", True),
        ("2.0", "==", "2.1", False),
        ("2.0", "", "", True),
        ("2.0", ">=", "", True),
        ("2.0", "~>", "9.0", True),
    ])
    def test_operators(self, version: str, op: str, required: str, expected: bool) -> None:
        assert version_satisfies(version, op, required) is expected


class TestParsePackageName:
    def test_tracked(self) -> None:
        info = parse_package_name("php8.5-cli")
        assert info is not None
        assert info.minor_version == "8.5"
        assert info.patch_version == ""
        assert info.pinned is False
        assert info.package_type == "cli"
        assert info.install_slot == "8.5"
        assert info.canonical_name == "php8.5-cli"

    def test_pinned(self) -> None:
        info = parse_package_name("php8.5.1-cli")
        assert info is not None
        assert info.minor_version == "8.5"
        assert info.patch_version == "8.5.1"
        assert info.pinned is True
        assert info.package_type == "cli"
        assert info.install_slot == "8.5.1"
        assert info.canonical_name == "php8.5-cli"

    def test_suffix_with_dash(self) -> None:
        info = parse_package_name("php8.4-pecl-redis")
        assert info is not None
        assert info.package_type == "pecl-redis"

    @pytest.mark.parametrize("name", ["redis-server", "php", "php8-cli", "composer"])
    def test_unversioned(self, name: str) -> None:
        assert parse_package_name(name) is None


class TestParseDependency:
    def test_parenthesised(self) -> None:
        dep = parse_dependency("php8.5-common (>= 8.5.0)")
        assert dep == Dependency("php8.5-common", ">=", "8.5.0")
        assert str(dep) == "php8.5-common (>= 8.5.0)"

    def test_bare_operator(self) -> None:
        assert parse_dependency("php8.5-common>=1.0") == Dependency("php8.5-common", ">=", "1.0")

    def test_name_only(self) -> None:
        dep = parse_dependency("  libzip ")
        assert dep == Dependency("libzip")
        assert dep.satisfied_by("0.0.1")

    def test_satisfied_by(self) -> None:
        dep = parse_dependency("php8.5-cli (< 2.0)")
        assert dep.satisfied_by("1.9")
        assert not dep.satisfied_by("2.0")


class TestSlots:
    @pytest.mark.parametrize("name,slot", [
        ("php8.5.1-cli", "8.5.1"),
        ("php8.5-cli", "8.5"),
        ("redis", ""),
    ])
    def test_extract_slot(self, name: str, slot: str) -> None:
        assert extract_slot(name) == slot

    def test_source_slot(self) -> None:
        assert source_slot("8.5.0") == "8.5"
        assert source_slot("6") == ""

    def test_is_pinned_slot(self) -> None:
        assert is_pinned_slot("8.5.1")
        assert not is_pinned_slot("8.5")

    @pytest.mark.parametrize("name,expected", [
        ("php8.5.0-cli", "php8.5-cli"),
        ("php8.5.0-redis6.3.0", "php8.5-redis"),
        ("php8.5-cli", "php8.5-cli"),
        ("redis-server", "redis-server"),
    ])
    def test_normalize_package_name(self, name: str, expected: str) -> None:
        assert normalize_package_name(name) == expected
