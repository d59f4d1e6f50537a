"""Shared fixtures: isolated config, .tar.zst archive builder, recording executor."""

from __future__ import annotations

import io
import json
import tarfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pytest
import zstandard

from phm.config import Config
from phm.db import PackageDB
from phm.meta import Package
from phm.privileged import DirectExecutor

FileSpec = Union[bytes, Tuple[bytes, int]]


@pytest.fixture
def cfg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Config:
    monkeypatch.delenv("PHM_CONF", raising=False)
    return Config.load(str(tmp_path / "missing.yaml"), overrides={
        "global": {
            "install_prefix": str(tmp_path / "opt" / "php"),
            "cache_dir": str(tmp_path / "cache"),
            "data_dir": str(tmp_path / "data"),
            "config_dir": str(tmp_path / "config"),
            "repo_url": "https://repo.example.test/packages",
        },
        "fetch": {"retry": 2},
        "privileged": {"use_sudo": False},
    })


@pytest.fixture
def prefix(cfg: Config) -> str:
    return cfg.install_prefix


@pytest.fixture
def db(cfg: Config) -> PackageDB:
    return PackageDB(cfg.installed_db_path).load()


def _add(tar: tarfile.TarFile, info: tarfile.TarInfo, data: Optional[bytes] = None) -> None:
    if data is None:
        tar.addfile(info)
    else:
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))


def build_archive(path: Path, manifest: Optional[dict], files: Dict[str, FileSpec],
                  dirs: Optional[List[str]] = None, links: Optional[Dict[str, str]] = None) -> Path:
    """pkginfo.json first, then files/<absolute destination>."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        if manifest is not None:
            _add(tar, tarfile.TarInfo("pkginfo.json"), json.dumps(manifest).encode())
        for d in dirs or []:
            info = tarfile.TarInfo("files/" + d.lstrip("/"))
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            _add(tar, info)
        for dest, entry in files.items():
            data, mode = entry if isinstance(entry, tuple) else (entry, 0o644)
            info = tarfile.TarInfo("files/" + dest.lstrip("/"))
            info.mode = mode
            _add(tar, info, data)
        for dest, target in (links or {}).items():
            info = tarfile.TarInfo("files/" + dest.lstrip("/"))
            info.type = tarfile.SYMTYPE
            info.linkname = target
            info.mode = 0o777
            _add(tar, info)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(zstandard.ZstdCompressor().compress(buf.getvalue()))
    return path


@pytest.fixture
def make_archive(tmp_path: Path):
    def _make(name: str, version: str, files: Dict[str, FileSpec], *,
              depends: Optional[List[str]] = None, php_version: str = "",
              dirs: Optional[List[str]] = None, links: Optional[Dict[str, str]] = None,
              target: Optional[Path] = None) -> Path:
        manifest = {"name": name, "version": version, "revision": 1,
                    "depends": depends or [], "platform": "linux-amd64"}
        if php_version:
            manifest["php_version"] = php_version
        path = target or tmp_path / "archives" / f"{name}_{version}.tar.zst"
        return build_archive(path, manifest, files, dirs, links)
    return _make


def pkg(name: str, version: str, depends: Optional[List[str]] = None, **kw) -> Package:
    return Package(name=name, version=version, depends=tuple(depends or ()), **kw)


@pytest.fixture
def make_pkg():
    return pkg


class RecordingExecutor(DirectExecutor):
    """Performs the operations in-process and records every call."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def mkdir(self, path) -> None:
        self.calls.append(("mkdir", str(path)))
        super().mkdir(path)

    def copy(self, src, dest) -> None:
        self.calls.append(("copy", str(src), str(dest)))
        super().copy(src, dest)

    def remove(self, path) -> None:
        self.calls.append(("remove", str(path)))
        super().remove(path)

    def chmod(self, path, mode: int) -> None:
        self.calls.append(("chmod", str(path), mode))
        super().chmod(path, mode)

    def symlink(self, target: str, dest) -> None:
        self.calls.append(("symlink", target, str(dest)))
        super().symlink(target, dest)


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()
