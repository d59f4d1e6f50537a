# phm/installer.py
"""
Installer do phm
- Lê pacotes .tar.zst (pkginfo.json + árvore files/)
- Reescreve caminhos para outro slot (ex.: /opt/php/8.5 -> /opt/php/8.5.1)
- Substitui {{PHM_USER}}/{{PHM_GROUP}} em arquivos de configuração
- Extrai tudo para uma área de staging e só então grava no sistema
- Escala para o executor privilegiado quando a escrita direta falha
- Registra no PackageDB; remoção usa a lista de arquivos do registro
"""

from __future__ import annotations

import grp
import json
import os
import posixpath
import pwd
import shutil
import tarfile
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

import zstandard

from .db import PackageDB
from .errors import InstallError, NotInstalledError, PrivilegeError
from .log import get_logger
from .meta import InstalledPackage, MetaError, Package
from .privileged import DirectExecutor, PrivilegedExecutor
from .versions import compare_versions, source_slot

logger = get_logger("installer")

MANIFEST_NAME = "pkginfo.json"
FILES_PREFIX = "files/"
USER_PLACEHOLDER = b"{{PHM_USER}}"
GROUP_PLACEHOLDER = b"{{PHM_GROUP}}"
DEFAULT_GROUP = "staff"
CONFIG_EXTENSIONS = (".conf", ".ini", "")


@dataclass
class InstallOptions:
    install_slot: str = ""  # empty: slot embedded in the archive
    pinned: bool = False
    custom_name: str = ""   # ledger key override (php8.5.1-cli sharing php8.5-cli metadata)


@dataclass
class RemovalReport:
    name: str
    removed: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class _StagedEntry:
    dest: str
    mode: int
    kind: str  # "file", "dir" or "symlink"
    staged: Optional[Path] = None
    linkname: str = ""


def get_installing_user() -> Tuple[str, str]:
    """
    Usuário que invocou a instalação (SUDO_USER tem prioridade sobre USER)
    e o nome do seu grupo primário.
    """
    username = os.environ.get("SUDO_USER") or os.environ.get("USER", "")
    groupname = DEFAULT_GROUP
    try:
        gid = pwd.getpwnam(username).pw_gid
        groupname = grp.getgrgid(gid).gr_name
    except KeyError:
        pass
    return username, groupname


def is_config_file(path: str) -> bool:
    if "/etc/" not in path:
        return False
    return posixpath.splitext(path)[1] in CONFIG_EXTENSIONS


def replace_config_placeholders(data: bytes) -> bytes:
    username, groupname = get_installing_user()
    return data.replace(USER_PLACEHOLDER, username.encode()).replace(GROUP_PLACEHOLDER, groupname.encode())


class Installer:
    def __init__(self, install_prefix: Union[str, Path], db: PackageDB,
                 executor: Optional[PrivilegedExecutor] = None):
        self.install_prefix = str(install_prefix).rstrip("/") or "/"
        self.db = db
        self.executor = executor or DirectExecutor()

    # ---------------- Install ----------------

    def install(self, archive: Union[str, Path], options: Optional[InstallOptions] = None) -> InstalledPackage:
        """
        Instala um arquivo .tar.zst e grava o registro no banco.

        Nada é gravado no sistema antes de o arquivo inteiro ter sido lido;
        uma falha durante a gravação levanta InstallError com o caminho,
        deixando no lugar o que já foi gravado.
        """
        opts = options or InstallOptions()
        archive = Path(archive)
        staging = Path(tempfile.mkdtemp(prefix="phm-stage-"))
        try:
            pkg, entries = self._stage(archive, staging)
            src_slot = source_slot(pkg.version)
            slot = opts.install_slot or src_slot
            for entry in entries:
                entry.dest = self._rewrite_slot(entry.dest, src_slot, slot)
                if entry.linkname.startswith("/"):
                    entry.linkname = self._rewrite_slot(entry.linkname, src_slot, slot)
            name = opts.custom_name or pkg.name
            logger.info("Instalando %s %s (slot %s)", name, pkg.version, slot)
            files = self._commit(entries, name)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        record = InstalledPackage(
            package=pkg,
            installed_files=files,
            install_slot=slot,
            pinned=opts.pinned,
        )
        if opts.custom_name:
            record = record.renamed(opts.custom_name)
        self.db.save(record)
        logger.info("%s %s instalado (%d arquivos)", record.name, pkg.version, len(files))
        return record

    def _stage(self, archive: Path, staging: Path) -> Tuple[Package, List[_StagedEntry]]:
        pkg: Optional[Package] = None
        entries: List[_StagedEntry] = []
        dctx = zstandard.ZstdDecompressor()
        try:
            with open(archive, "rb") as fh, dctx.stream_reader(fh) as reader, \
                    tarfile.open(fileobj=reader, mode="r|") as tar:
                for member in tar:
                    if member.name == MANIFEST_NAME:
                        pkg = self._read_manifest(tar, member, archive)
                        continue
                    if not member.name.startswith(FILES_PREFIX):
                        continue
                    rel = member.name[len(FILES_PREFIX):].strip("/")
                    if not rel:
                        continue
                    if ".." in rel.split("/"):
                        raise InstallError(f"unsafe path in archive: {member.name}", path=archive)
                    dest = "/" + rel
                    if member.isdir():
                        entries.append(_StagedEntry(dest=dest, mode=member.mode, kind="dir"))
                    elif member.issym():
                        entries.append(_StagedEntry(dest=dest, mode=member.mode, kind="symlink",
                                                    linkname=member.linkname))
                    elif member.isfile():
                        src = tar.extractfile(member)
                        data = src.read() if src is not None else b""
                        if is_config_file(dest):
                            data = replace_config_placeholders(data)
                        staged = staging / str(len(entries))
                        staged.write_bytes(data)
                        entries.append(_StagedEntry(dest=dest, mode=member.mode, kind="file", staged=staged))
                    else:
                        logger.warning("Ignorando entrada não suportada: %s", member.name)
        except (OSError, tarfile.TarError, zstandard.ZstdError) as e:
            raise InstallError(f"failed to read archive {archive}: {e}", path=archive) from e
        if pkg is None:
            raise InstallError(f"archive {archive} has no {MANIFEST_NAME}", path=archive)
        return pkg, entries

    def _read_manifest(self, tar: tarfile.TarFile, member: tarfile.TarInfo, archive: Path) -> Package:
        src = tar.extractfile(member)
        if src is None:
            raise InstallError(f"invalid {MANIFEST_NAME} in {archive}", path=archive)
        try:
            return Package.from_dict(json.loads(src.read()))
        except (ValueError, MetaError) as e:
            raise InstallError(f"invalid {MANIFEST_NAME} in {archive}: {e}", path=archive) from e

    def _rewrite_slot(self, dest: str, src_slot: str, slot: str) -> str:
        """/opt/php/8.5/bin/php -> /opt/php/8.5.1/bin/php"""
        if not src_slot or not slot or src_slot == slot:
            return dest
        old = f"{self.install_prefix}/{src_slot}/"
        if dest.startswith(old):
            return f"{self.install_prefix}/{slot}/" + dest[len(old):]
        return dest

    def _commit(self, entries: List[_StagedEntry], name: str) -> List[str]:
        files: List[str] = []
        for entry in entries:
            try:
                if entry.kind == "dir":
                    self._ensure_dir(entry.dest)
                    continue
                self._ensure_dir(posixpath.dirname(entry.dest))
                if entry.kind == "symlink":
                    self._place_symlink(entry)
                else:
                    self._place_file(entry)
            except (OSError, PrivilegeError) as e:
                raise InstallError(f"failed to install {entry.dest}: {e}", package=name, path=entry.dest) from e
            files.append(entry.dest)
        return files

    def _ensure_dir(self, path: str) -> None:
        try:
            os.makedirs(path, mode=0o755, exist_ok=True)
        except PermissionError:
            self.executor.mkdir(path)

    def _place_file(self, entry: _StagedEntry) -> None:
        mode = entry.mode & 0o7777
        try:
            shutil.move(str(entry.staged), entry.dest)
            os.chmod(entry.dest, mode)
        except PermissionError:
            logger.debug("Sem permissão para %s, usando executor privilegiado", entry.dest)
            self.executor.copy(entry.staged, entry.dest)
            self.executor.chmod(entry.dest, mode)

    def _place_symlink(self, entry: _StagedEntry) -> None:
        try:
            if os.path.lexists(entry.dest):
                os.remove(entry.dest)
            os.symlink(entry.linkname, entry.dest)
        except PermissionError:
            logger.debug("Sem permissão para %s, usando executor privilegiado", entry.dest)
            self.executor.symlink(entry.linkname, entry.dest)

    # ---------------- Remove ----------------

    def remove(self, name: str) -> RemovalReport:
        """
        Remove os arquivos registrados do pacote e o seu registro.
        Só os caminhos registrados são apagados; arquivos já ausentes são ignorados
        e diretórios ficam no lugar.
        """
        rec = self.db.get(name)
        if rec is None:
            raise NotInstalledError(f"package not installed: {name}", package=name)

        report = RemovalReport(name=name)
        for path in rec.installed_files:
            if not os.path.lexists(path):
                report.missing.append(path)
                continue
            try:
                os.remove(path)
            except FileNotFoundError:
                report.missing.append(path)
                continue
            except PermissionError:
                try:
                    self.executor.remove(path)
                except PrivilegeError as e:
                    logger.warning("Falha removendo %s: %s", path, e)
                    report.failed.append(path)
                    continue
            except OSError as e:
                logger.warning("Falha removendo %s: %s", path, e)
                report.failed.append(path)
                continue
            report.removed.append(path)

        self.db.remove(name)
        logger.info("%s removido (%d arquivos, %d ausentes, %d falhas)",
                    name, len(report.removed), len(report.missing), len(report.failed))
        return report

    # ---------------- Upgrades ----------------

    def check_upgrade(self, name: str, available_version: str, available_php_version: str = "") -> str:
        """
        Versão disponível se for uma atualização do pacote instalado, senão "".
        Pacotes fixados (pinned) nunca são atualizados. Com versões iguais,
        um build para runtime mais novo também conta como atualização.
        """
        rec = self.db.get(name)
        if rec is None or rec.pinned:
            return ""
        cmp = compare_versions(available_version, rec.version)
        if cmp > 0:
            return available_version
        if cmp == 0 and available_php_version and rec.php_version:
            if compare_versions(available_php_version, rec.php_version) > 0:
                return available_version
        return ""
