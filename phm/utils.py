#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
utils.py
Funções utilitárias para phm.

Responsabilidades:
- Execução segura de subprocessos (captura de saída, erro tipado).
- Manipulação de arquivos (escrita atômica, criação de diretórios).
- Checksums (SHA256).
"""

from __future__ import annotations

import hashlib
import os
import subprocess
import tempfile
from pathlib import Path
from typing import List, Tuple, Union

from .log import get_logger

logger = get_logger("utils")

# -----------------------
# Execução segura
# -----------------------
class CommandError(Exception):
    def __init__(self, cmd: List[str], returncode: int, stdout: str, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"Command {' '.join(cmd)} failed with code {returncode}{detail}")

def safe_run(cmd: List[str], check: bool = True) -> Tuple[int, str, str]:
    """
    Run a command and capture its output.
    Args:
        cmd: list of str
        check: raise CommandError if non-zero
    Returns:
        (returncode, stdout, stderr)
    """
    logger.debug("exec: %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise CommandError(list(cmd), 127, "", str(e)) from e

    out = proc.stdout or ""
    err = proc.stderr or ""
    if check and proc.returncode != 0:
        raise CommandError(list(cmd), proc.returncode, out, err)
    return (proc.returncode, out, err)

# -----------------------
# Arquivos
# -----------------------
def ensure_dir(path: Union[str, Path], mode: int = 0o755) -> Path:
    """
    Cria diretório recursivamente se não existir.
    """
    p = Path(path)
    if not p.exists():
        p.mkdir(parents=True, mode=mode, exist_ok=True)
    return p

def write_atomic(path: Union[str, Path], data: Union[str, bytes], mode: int = 0o644) -> None:
    """
    Escreve arquivo de forma atômica (em tmp e depois rename).
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(p.parent), prefix=f".{p.name}.", suffix=".tmp")
    try:
        if isinstance(data, bytes):
            with os.fdopen(tmp_fd, 'wb') as f:
                f.write(data)
        else:
            with os.fdopen(tmp_fd, 'w', encoding='utf-8') as f:
                f.write(data)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, p)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise

# -----------------------
# Checksums
# -----------------------
def sha256sum(path: Union[str, Path]) -> str:
    """
    Calcula sha256 de um arquivo.
    """
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()

def verify_checksum(path: Union[str, Path], expected: str) -> bool:
    """
    Verifica sha256 contra valor esperado.
    Aceita "abc..." ou "sha256:abc...".
    """
    if ":" in expected:
        _, expected = expected.split(":", 1)
    actual = sha256sum(path)
    if actual.lower() != expected.lower():
        logger.error("Checksum mismatch for %s: expected %s, got %s", path, expected, actual)
        return False
    logger.debug("Checksum OK for %s", path)
    return True
