# phm/privileged.py
# -*- coding: utf-8 -*-
"""
Executor de operações privilegiadas no sistema de arquivos.

O instalador sempre tenta a operação direta primeiro e só recorre ao
executor quando ela falha por permissão. Testes injetam um executor
falso no lugar do sudo.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import List, Protocol, Union

from .config import Config
from .errors import PrivilegeError
from .log import get_logger
from .utils import CommandError, safe_run

logger = get_logger("privileged")

PathLike = Union[str, Path]


class PrivilegedExecutor(Protocol):
    """File-system mutations performed with elevated rights."""

    def mkdir(self, path: PathLike) -> None:
        ...

    def copy(self, src: PathLike, dest: PathLike) -> None:
        ...

    def remove(self, path: PathLike) -> None:
        ...

    def chmod(self, path: PathLike, mode: int) -> None:
        ...

    def symlink(self, target: str, dest: PathLike) -> None:
        ...


class SudoExecutor:
    """Runs each mutation through `sudo`; `-n` never prompts for a password."""

    def __init__(self, non_interactive: bool = False):
        self.non_interactive = non_interactive

    def _sudo(self, *args: str) -> None:
        cmd: List[str] = ["sudo"]
        if self.non_interactive:
            cmd.append("-n")
        cmd.extend(args)
        try:
            safe_run(cmd)
        except CommandError as e:
            raise PrivilegeError(str(e), path=args[-1] if args else None) from e

    def validate(self) -> None:
        """Ask for credentials once so later calls reuse the sudo timestamp."""
        self._sudo("-v")

    def mkdir(self, path: PathLike) -> None:
        self._sudo("mkdir", "-p", str(path))

    def copy(self, src: PathLike, dest: PathLike) -> None:
        self._sudo("cp", str(src), str(dest))

    def remove(self, path: PathLike) -> None:
        self._sudo("rm", "-f", str(path))

    def chmod(self, path: PathLike, mode: int) -> None:
        self._sudo("chmod", format(mode & 0o7777, "o"), str(path))

    def symlink(self, target: str, dest: PathLike) -> None:
        self._sudo("ln", "-sfn", target, str(dest))


class DirectExecutor:
    """In-process implementation, for when the caller already has the rights it needs."""

    def mkdir(self, path: PathLike) -> None:
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise PrivilegeError(f"mkdir {path}: {e}", path=path) from e

    def copy(self, src: PathLike, dest: PathLike) -> None:
        try:
            shutil.copyfile(src, dest)
        except OSError as e:
            raise PrivilegeError(f"copy {src} -> {dest}: {e}", path=dest) from e

    def remove(self, path: PathLike) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PrivilegeError(f"remove {path}: {e}", path=path) from e

    def chmod(self, path: PathLike, mode: int) -> None:
        try:
            os.chmod(path, mode & 0o7777)
        except OSError as e:
            raise PrivilegeError(f"chmod {path}: {e}", path=path) from e

    def symlink(self, target: str, dest: PathLike) -> None:
        try:
            if os.path.lexists(dest):
                os.remove(dest)
            os.symlink(target, dest)
        except OSError as e:
            raise PrivilegeError(f"symlink {dest} -> {target}: {e}", path=dest) from e


def make_executor(cfg: Config) -> PrivilegedExecutor:
    """Sudo unless disabled in config or already running as root."""
    if not cfg.get("privileged", "use_sudo", default=True) or os.geteuid() == 0:
        return DirectExecutor()
    return SudoExecutor(non_interactive=bool(cfg.get("privileged", "non_interactive", default=False)))
