#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
config.py
Config loader/validator for phm.

Responsabilidades:
- Carregar arquivo YAML de configuração (path explícito, PHM_CONF ou ~/.config/phm/config.yaml).
- Mesclar com valores padrão.
- Expandir variáveis de ambiente (~ e ${VAR}).
- Derivar caminhos (índice, cache de pacotes, banco de instalados) e a plataforma atual.
- Fornecer acesso conveniente via Config.get(...) e propriedades.

Uso:
    cfg = Config.load('/etc/phm/config.yaml')     # carrega do arquivo
    cfg = Config.load()                           # usa env PHM_CONF ou ~/.config/phm/config.yaml
    cfg.get('fetch', 'http_timeout')              # retorna valor
"""

from __future__ import annotations

import copy
import os
import platform as _platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .utils import ensure_dir

# -----------------------
# Defaults
# -----------------------
DEFAULT_REPO_URL = "https://raw.githubusercontent.com/phm-dev/php-packages/main"

DEFAULT_CONFIG: Dict[str, Any] = {
    'global': {
        'install_prefix': '/opt/php',
        'cache_dir': '~/.cache/phm',
        'data_dir': '~/.local/share/phm',
        'config_dir': '~/.config/phm',
        'repo_url': DEFAULT_REPO_URL,
        'repo_path': '',        # local repository (implies offline)
        'offline': False,
        'debug': False,
    },
    'fetch': {
        'http_timeout': 60,
        'retry': 3,
    },
    'security': {
        'verify_checksums': True,
    },
    'install': {
        'auto_upgrade_siblings': True,
        'lock_timeout': 30,     # seconds to wait for the ledger lock
    },
    'privileged': {
        'use_sudo': True,
        'non_interactive': False,
    },
    'logging': {
        'level': 'INFO',
        'logfile': None,
        'console': True,
        'console_colors': True,
    },
}

_PATH_KEYS = ('install_prefix', 'cache_dir', 'data_dir', 'config_dir', 'repo_path')

# -----------------------
# Utilities
# -----------------------
def _expand_path(val: Any) -> Any:
    """Expand ~ and environment variables in path-like strings."""
    if not isinstance(val, str) or not val:
        return val
    return os.path.expanduser(os.path.expandvars(val))

def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively update base with override and return new dict.
    Dict values are merged, non-dict override replaces.
    """
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_update(result[k], v)
        else:
            result[k] = v
    return result

def _as_int(val: Any, default: int, minimum: int = 0) -> int:
    try:
        n = int(val)
    except (TypeError, ValueError):
        return default
    return n if n >= minimum else default

# -----------------------
# Config dataclass
# -----------------------
@dataclass
class Config:
    raw: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_CONFIG))
    source_path: Optional[Path] = None

    @classmethod
    def load(cls, path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> 'Config':
        """
        Load configuration.
        Resolution order:
          1. explicit `path` argument,
          2. environment variable PHM_CONF,
          3. ~/.config/phm/config.yaml (if exists),
          4. fallback to DEFAULT_CONFIG
        `overrides` (same shape as the file) are merged last.
        """
        cfg_path: Optional[Path] = None
        if path:
            cfg_path = Path(path)
        else:
            envp = os.environ.get('PHM_CONF')
            if envp:
                cfg_path = Path(envp)
            elif Path.home().joinpath('.config/phm/config.yaml').exists():
                cfg_path = Path.home().joinpath('.config/phm/config.yaml')

        base = copy.deepcopy(DEFAULT_CONFIG)

        if cfg_path and cfg_path.exists():
            try:
                raw_user = yaml.safe_load(cfg_path.read_text(encoding='utf-8')) or {}
            except (yaml.YAMLError, OSError) as e:
                raise ConfigError(f"failed to parse config file {cfg_path}: {e}", path=cfg_path) from e
            if not isinstance(raw_user, dict):
                raise ConfigError(f"config file {cfg_path} must contain a mapping", path=cfg_path)
            base = _deep_update(base, raw_user)
        else:
            cfg_path = None

        if overrides:
            base = _deep_update(base, overrides)

        cfg = cls(raw=base, source_path=cfg_path)
        cfg._normalize()
        return cfg

    def _normalize(self) -> None:
        g = self.raw.setdefault('global', {})
        for k in _PATH_KEYS:
            val = g.get(k)
            if val is None:
                val = DEFAULT_CONFIG['global'][k]
            g[k] = _expand_path(str(val))
        g['install_prefix'] = g['install_prefix'].rstrip('/') or '/'
        g['repo_url'] = str(g.get('repo_url') or DEFAULT_REPO_URL).rstrip('/')

        # coerce booleans; a local repository means offline
        for bkey in ('offline', 'debug'):
            g[bkey] = bool(g.get(bkey, False))
        if g['repo_path']:
            g['offline'] = True

        f = self.raw.setdefault('fetch', {})
        f['http_timeout'] = _as_int(f.get('http_timeout'), DEFAULT_CONFIG['fetch']['http_timeout'], 1)
        f['retry'] = _as_int(f.get('retry'), DEFAULT_CONFIG['fetch']['retry'], 1)

        for section in ('security', 'install', 'privileged'):
            node = self.raw.setdefault(section, {})
            for k, v in DEFAULT_CONFIG[section].items():
                if isinstance(v, bool):
                    node[k] = bool(node.get(k, v))
        inst = self.raw['install']
        inst['lock_timeout'] = _as_int(inst.get('lock_timeout'), DEFAULT_CONFIG['install']['lock_timeout'])

        logs = self.raw.setdefault('logging', {})
        if logs.get('logfile'):
            logs['logfile'] = _expand_path(str(logs['logfile']))
        if g['debug']:
            logs['level'] = 'DEBUG'

    # Convenience getters
    def get(self, *keys, default: Any = None) -> Any:
        """
        cfg.get('global', 'install_prefix') or cfg.get('fetch', 'http_timeout')
        """
        node = self.raw
        for k in keys:
            if isinstance(node, dict) and k in node:
                node = node[k]
            else:
                return default
        return node

    @property
    def install_prefix(self) -> str:
        return self.get('global', 'install_prefix')

    @property
    def cache_dir(self) -> Path:
        return Path(self.get('global', 'cache_dir'))

    @property
    def data_dir(self) -> Path:
        return Path(self.get('global', 'data_dir'))

    @property
    def config_dir(self) -> Path:
        return Path(self.get('global', 'config_dir'))

    @property
    def repo_url(self) -> str:
        return self.get('global', 'repo_url')

    @property
    def repo_path(self) -> str:
        return self.get('global', 'repo_path')

    @property
    def offline(self) -> bool:
        return self.get('global', 'offline', default=False)

    @property
    def index_path(self) -> Path:
        """index.json: local repository in offline mode, cache otherwise."""
        if self.offline:
            return Path(self.repo_path or './dist') / 'index.json'
        return self.cache_dir / 'index.json'

    def package_path(self, filename: str) -> Path:
        if self.offline:
            return Path(self.repo_path or './dist') / filename
        return self.cache_dir / 'packages' / filename

    @property
    def installed_db_path(self) -> Path:
        return self.data_dir / 'installed'

    @property
    def platform(self) -> str:
        return current_platform()

    def ensure_dirs(self) -> None:
        for d in (self.cache_dir, self.cache_dir / 'packages', self.data_dir,
                  self.installed_db_path, self.config_dir):
            ensure_dir(d)


_OS_NAMES = {'Darwin': 'darwin', 'Linux': 'linux'}
_ARCH_NAMES = {'x86_64': 'amd64', 'amd64': 'amd64', 'AMD64': 'amd64',
               'arm64': 'arm64', 'aarch64': 'arm64'}


def current_platform() -> str:
    """Platform identifier used as key in index.json, e.g. darwin-arm64."""
    system = _platform.system()
    machine = _platform.machine()
    os_name = _OS_NAMES.get(system, system.lower())
    arch = _ARCH_NAMES.get(machine, machine.lower())
    return f"{os_name}-{arch}"
