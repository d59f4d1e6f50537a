# phm/db.py
# -*- coding: utf-8 -*-
"""
PackageDB - registro local de pacotes instalados para phm

Funcionalidades:
- Um arquivo JSON por pacote em <data_dir>/installed/<nome>.json
- Persistência atômica com .tmp + rename
- Carga tolerante: registros corrompidos são ignorados (com aviso)
- Lock de arquivo (portalocker) no diretório do registro para operações mutáveis
- API: is_installed/get/get_by_prefix/get_dependents/get_all/save/remove
"""

from __future__ import annotations

import contextlib
import json
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import portalocker

from .errors import LedgerError, LedgerLockError
from .log import get_logger
from .meta import InstalledPackage, MetaError
from .utils import ensure_dir, write_atomic
from .versions import extract_slot, parse_dependency

logger = get_logger("db")

LOCK_FILENAME = ".lock"
DEFAULT_LOCK_TIMEOUT = 30.0


class PackageDB:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._installed: Dict[str, InstalledPackage] = {}

    # ---------------- Persistence ----------------

    def _record_path(self, name: str) -> Path:
        return self.path / f"{name}.json"

    def load(self) -> "PackageDB":
        """
        Lê todos os registros do diretório. Registros ilegíveis ou inválidos
        são ignorados; o pacote passa a constar como não instalado.
        """
        ensure_dir(self.path)
        self._installed = {}
        for entry in sorted(self.path.glob("*.json")):
            try:
                data = json.loads(entry.read_text(encoding="utf-8"))
                rec = InstalledPackage.from_dict(data)
            except (OSError, ValueError, MetaError) as e:
                logger.warning("Ignorando registro corrompido %s: %s", entry, e)
                continue
            self._installed[rec.name] = rec
        logger.debug("Carregados %d pacotes instalados de %s", len(self._installed), self.path)
        return self

    def save(self, record: InstalledPackage) -> None:
        """Grava (sobrescreve) o registro de um pacote."""
        data = json.dumps(record.to_dict(), indent=2, ensure_ascii=False)
        try:
            write_atomic(self._record_path(record.name), data + "\n")
        except OSError as e:
            raise LedgerError(f"failed to save ledger record for {record.name}: {e}",
                              package=record.name, path=self._record_path(record.name)) from e
        self._installed[record.name] = record
        logger.debug("Registro salvo: %s", record.name)

    def remove(self, name: str) -> None:
        try:
            self._record_path(name).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise LedgerError(f"failed to delete ledger record for {name}: {e}",
                              package=name, path=self._record_path(name)) from e
        self._installed.pop(name, None)

    # ---------------- Queries ----------------

    def is_installed(self, name: str) -> bool:
        return name in self._installed

    def get(self, name: str) -> Optional[InstalledPackage]:
        return self._installed.get(name)

    def get_by_prefix(self, prefix: str) -> List[InstalledPackage]:
        return [rec for name, rec in sorted(self._installed.items()) if name.startswith(prefix)]

    def get_dependents(self, name: str) -> List[str]:
        """Nomes dos pacotes instalados cujas dependências citam `name`."""
        dependents = []
        for pkg_name, rec in self._installed.items():
            if pkg_name == name:
                continue
            if any(parse_dependency(d).name == name for d in rec.depends):
                dependents.append(pkg_name)
        return sorted(dependents)

    def get_all(self) -> List[InstalledPackage]:
        return [self._installed[n] for n in sorted(self._installed)]

    def installed_versions(self) -> List[str]:
        slots = {extract_slot(n) for n in self._installed if n.startswith("php")}
        slots.discard("")
        return sorted(slots)

    def __len__(self) -> int:
        return len(self._installed)

    def __contains__(self, name: object) -> bool:
        return name in self._installed

    # ---------------- Locking ----------------

    @contextlib.contextmanager
    def lock(self, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
        """
        Lock exclusivo (advisory) em <ledger>/.lock enquanto durar o bloco.
        """
        ensure_dir(self.path)
        lock_path = self.path / LOCK_FILENAME
        try:
            lock = portalocker.Lock(str(lock_path), mode="a", timeout=timeout,
                                    flags=portalocker.LockFlags.EXCLUSIVE | portalocker.LockFlags.NON_BLOCKING)
            lock.acquire()
        except portalocker.LockException as e:
            raise LedgerLockError(f"another phm process holds the ledger lock ({lock_path})",
                                  path=lock_path) from e
        logger.debug("Lock adquirido: %s", lock_path)
        try:
            yield
        finally:
            lock.release()
