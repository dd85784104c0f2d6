from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Union

from prepxl.core.trace import current_trace_id

ROOT_LOGGER = "prepxl"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | trace=%(trace_id)s | %(message)s"


class LoginTraceFilter(logging.Filter):
    """Stamps each record with the login-cycle id bound by `login_trace` ("-" outside one)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = current_trace_id() or "-"
        return True


def _level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(log_dir: str = "logs", *, level: Union[int, str] = logging.INFO, console: bool = True) -> logging.Logger:
    """
    Install a rotating prepxl.log under `log_dir` (and optionally a console handler)
    on the package root logger. Safe to call more than once.
    """
    os.makedirs(log_dir, exist_ok=True)
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(_level(level))
    root.propagate = False

    log_path = os.path.abspath(os.path.join(log_dir, "prepxl.log"))
    have_file = any(isinstance(h, RotatingFileHandler) and h.baseFilename == log_path for h in root.handlers)
    if not have_file:
        fh = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        fh.setFormatter(logging.Formatter(FILE_FORMAT))
        fh.addFilter(LoginTraceFilter())
        root.addHandler(fh)

    have_console = any(type(h) is logging.StreamHandler for h in root.handlers)
    if console and not have_console:
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        sh.addFilter(LoginTraceFilter())
        root.addHandler(sh)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
