#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
catalog.py
Cliente do repositório de pacotes binários.

Funcionalidades:
- Baixa o índice (index.json) com parâmetro anti-cache e grava cópia local
- Fallback para o índice em cache quando a rede falha
- Modo offline / repositório local (repo_path)
- Busca de pacotes (nome, maior versão, substring em nome/descrição)
- Download de arquivos .tar.zst com cache, barra de progresso (tqdm),
  retry e verificação de checksum SHA256

Integração:
- Usa config.Config para URLs, diretórios, timeout/retry
- Usa utils.verify_checksum e utils.write_atomic
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import List, Optional

import requests
from tqdm import tqdm

from .config import Config
from .errors import CatalogError, DownloadError
from .log import get_logger
from .meta import Index, MetaError, Package
from .utils import ensure_dir, verify_checksum, write_atomic
from .versions import compare_versions

logger = get_logger("catalog")

CHUNK_SIZE = 64 * 1024


class Repository:
    def __init__(self, cfg: Config, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.index: Optional[Index] = None
        self.platform = cfg.platform

    @property
    def timeout(self) -> int:
        return int(self.cfg.get("fetch", "http_timeout", default=60))

    @property
    def retries(self) -> int:
        return int(self.cfg.get("fetch", "retry", default=3))

    # -----------------------
    # Índice
    # -----------------------
    def fetch_index(self) -> Index:
        """
        Baixa o índice remoto, grava os bytes em cache e substitui o índice em memória.
        No modo offline lê o índice do repositório local.
        """
        if self.cfg.offline:
            return self.load_cached_index()

        url = f"{self.cfg.repo_url}/index.json?t={int(time.time())}"
        logger.info("Atualizando índice: %s", url)
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise CatalogError(f"failed to fetch index: {e}") from e
        if resp.status_code != 200:
            raise CatalogError(f"failed to fetch index: HTTP {resp.status_code}")

        content = resp.content
        index = self._parse(content, url)
        try:
            write_atomic(self.cfg.index_path, content)
        except OSError as e:
            logger.warning("Não foi possível gravar cache do índice %s: %s", self.cfg.index_path, e)
        self.index = index
        return index

    def load_cached_index(self) -> Index:
        path = self.cfg.index_path
        try:
            content = path.read_bytes()
        except FileNotFoundError as e:
            raise CatalogError(f"no cached index at {path}", path=path) from e
        except OSError as e:
            raise CatalogError(f"failed to read index {path}: {e}", path=path) from e
        self.index = self._parse(content, str(path))
        return self.index

    def load_index(self) -> Index:
        """Índice remoto quando possível, senão o último índice em cache."""
        if self.cfg.offline:
            return self.load_cached_index()
        try:
            return self.fetch_index()
        except CatalogError as e:
            logger.warning("%s; usando índice em cache", e)
            return self.load_cached_index()

    def _parse(self, content: bytes, source: str) -> Index:
        try:
            return Index.from_dict(json.loads(content))
        except (ValueError, MetaError) as e:
            raise CatalogError(f"failed to parse index from {source}: {e}") from e

    # -----------------------
    # Consultas
    # -----------------------
    def get_packages(self) -> List[Package]:
        if self.index is None:
            return []
        return self.index.packages_for(self.platform)

    def get_package(self, name: str) -> Optional[Package]:
        best: Optional[Package] = None
        for pkg in self.get_packages():
            if pkg.name == name and (best is None or compare_versions(pkg.version, best.version) > 0):
                best = pkg
        return best

    def search_packages(self, query: str) -> List[Package]:
        q = query.lower()
        return [p for p in self.get_packages()
                if q in p.name.lower() or q in p.description.lower()]

    # -----------------------
    # Download
    # -----------------------
    def package_url(self, pkg: Package) -> str:
        return pkg.url or f"{self.cfg.repo_url}/{pkg.filename}"

    def download_package(self, pkg: Package, progress: bool = True) -> Path:
        """
        Retorna o caminho local do arquivo do pacote, baixando-o se necessário.
        """
        dest = self.cfg.package_path(pkg.filename)
        verify = bool(self.cfg.get("security", "verify_checksums", default=True)) and bool(pkg.sha256)

        if self.cfg.offline:
            if not dest.exists():
                raise DownloadError(f"package file not found: {dest}", package=pkg.name, path=dest)
            if verify and not verify_checksum(dest, pkg.sha256):
                raise DownloadError(f"checksum mismatch for {dest}", package=pkg.name, path=dest)
            return dest

        if dest.exists():
            if not verify or verify_checksum(dest, pkg.sha256):
                logger.debug("Usando cache para %s", dest.name)
                return dest
            logger.warning("Arquivo em cache corrompido, baixando novamente: %s", dest)
            dest.unlink()

        url = self.package_url(pkg)
        ensure_dir(dest.parent)
        last_err: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                self._download(url, dest, progress=progress)
            except (requests.RequestException, OSError, DownloadError) as e:
                logger.warning("Falha ao baixar %s (tentativa %d/%d): %s", url, attempt, self.retries, e)
                last_err = e
                continue
            if verify and not verify_checksum(dest, pkg.sha256):
                dest.unlink()
                last_err = DownloadError(f"checksum mismatch for {pkg.filename}", package=pkg.name)
                logger.warning("Checksum inválido para %s (tentativa %d/%d)", url, attempt, self.retries)
                continue
            logger.info("Baixado: %s", dest.name)
            return dest
        raise DownloadError(f"failed to download {pkg.name}: {last_err}", package=pkg.name, path=dest) from last_err

    def _download(self, url: str, dest: Path, progress: bool = True) -> None:
        part = dest.with_name(dest.name + ".part")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as r:
                if not 200 <= r.status_code < 300:
                    raise DownloadError(f"HTTP {r.status_code} for {url}")
                total = int(r.headers.get("Content-Length", 0) or 0)
                with open(part, "wb") as f, tqdm(
                    total=total or None,
                    unit="B", unit_scale=True, desc=dest.name,
                    disable=not progress, leave=False,
                ) as bar:
                    for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
                            bar.update(len(chunk))
            part.replace(dest)
        finally:
            if part.exists():
                part.unlink()
