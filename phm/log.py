# phm/log.py
# -*- coding: utf-8 -*-
"""
Módulo de logging para phm
- init_logging(conf) para inicializar a infraestrutura (console colorido + arquivo rotativo)
- get_logger(name) para obter logger por módulo
- set_level(level) para ajuste dinâmico
- shutdown_logging() para fechar handlers
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from logging import Logger
from pathlib import Path
from typing import Any, Dict, List, Optional

_GLOBAL: Dict[str, Any] = {
    "initialized": False,
    "handlers": [],
    "config_snapshot": None,
}

# Default logging configuration when config is absent or invalid
_DEFAULT_LOG_CONFIG: Dict[str, Any] = {
    "level": "INFO",
    "logfile": None,
    "rotate": True,
    "max_size_mb": 10,
    "backup_count": 3,
    "console": True,
    "console_colors": True,
    "json_format": False,
    "levels": {},  # per-namespace levels
}

_CONSOLE_FMT = "%(asctime)s [%(levelname)s] %(name)s -> %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


# ---------------- Formatters ----------------

class ColorFormatter(logging.Formatter):
    COLOR_MAP = {
        "DEBUG": "\033[94m",    # light blue
        "INFO": "\033[92m",     # green
        "WARNING": "\033[93m",  # yellow
        "ERROR": "\033[91m",    # red
        "CRITICAL": "\033[95m", # magenta
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt, style="%")
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if self.use_colors and record.levelname in self.COLOR_MAP:
            return f"{self.COLOR_MAP[record.levelname]}{msg}{self.RESET}"
        return msg


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        obj = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(obj, ensure_ascii=False)


# ---------------- Utilities ----------------

def _merge_with_defaults(conf: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    base = dict(_DEFAULT_LOG_CONFIG)
    base["levels"] = {}
    if not conf:
        return base
    for k, v in conf.items():
        if k == "levels" and isinstance(v, dict):
            base["levels"].update(v)
        elif v is not None or k == "logfile":
            base[k] = v
    return base


def _level_str_to_int(level: Any) -> int:
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


# ---------------- Initialization / teardown ----------------

def init_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Inicializa a infraestrutura de logging do namespace "phm".

    - config: dicionário com opções (normalmente cfg.get('logging')).
    """
    conf = _merge_with_defaults(config)
    shutdown_logging()

    root = logging.getLogger("phm")
    level = _level_str_to_int(conf.get("level", "INFO"))
    root.setLevel(level)
    root.propagate = False

    handlers: List[logging.Handler] = []

    if conf.get("console", True):
        ch = logging.StreamHandler(sys.stderr)
        use_colors = bool(conf.get("console_colors", True)) and sys.stderr.isatty()
        ch.setFormatter(ColorFormatter(_CONSOLE_FMT, datefmt=_DATEFMT, use_colors=use_colors))
        ch.setLevel(level)
        handlers.append(ch)

    logfile = conf.get("logfile")
    if logfile:
        try:
            Path(logfile).parent.mkdir(parents=True, exist_ok=True)
            if conf.get("rotate", True):
                fh: logging.Handler = logging.handlers.RotatingFileHandler(
                    logfile,
                    maxBytes=int(conf.get("max_size_mb", 10)) * 1024 * 1024,
                    backupCount=int(conf.get("backup_count", 3)),
                    encoding="utf-8",
                )
            else:
                fh = logging.FileHandler(logfile, encoding="utf-8")
            if conf.get("json_format", False):
                fh.setFormatter(JsonFormatter())
            else:
                fh.setFormatter(logging.Formatter(_CONSOLE_FMT, datefmt=_DATEFMT))
            fh.setLevel(level)
            handlers.append(fh)
        except OSError:
            # fallback to stderr only
            root.warning("Não foi possível criar arquivo de log '%s', usando apenas stderr.", logfile)

    for h in handlers:
        root.addHandler(h)

    for name, lvl in (conf.get("levels") or {}).items():
        logging.getLogger(name).setLevel(_level_str_to_int(lvl))

    _GLOBAL["initialized"] = True
    _GLOBAL["handlers"] = handlers
    _GLOBAL["config_snapshot"] = conf
    root.debug("Logging inicializado. Config: %s", conf)


def shutdown_logging() -> None:
    """
    Fecha e remove os handlers instalados por init_logging.
    """
    root = logging.getLogger("phm")
    for h in _GLOBAL.get("handlers") or []:
        try:
            h.flush()
            h.close()
        finally:
            root.removeHandler(h)
    root.propagate = True
    _GLOBAL["handlers"] = []
    _GLOBAL["initialized"] = False


def set_level(level: str) -> None:
    lvl = _level_str_to_int(level)
    root = logging.getLogger("phm")
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)


def get_logger(name: str) -> Logger:
    """
    Retorna um logger sob o namespace phm ("installer" -> "phm.installer").
    """
    if name != "phm" and not name.startswith("phm."):
        name = f"phm.{name}"
    return logging.getLogger(name)
